# app/monitor.py

"""
Device monitor: polls an adb-connected phone, feeds the ride offer detector and
prints every analysis to the console.
"""

import argparse
import json
import os
import sys
import time
import zlib
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from app_classifier import classify_package
from detector import RideOfferDetector
from detector_config import DEFAULT_CONFIG, STRICT_CONFIG, DetectorConfig, DriverPreferences
from device import connect_device, dump_notifications, focused_package, get_screen_resolution
from models import AppSource, EventKind, RideAnalysis, RideOffer, UiEvent, WindowCapture
from runtime import _log
from screen_ocr import ScreenRecognizer
from ui_tree import UiTreeProvider, window_text

TREND_WINDOW_S = 15 * 60


class SessionStats:
    """In-memory session aggregator: offers and acceptances per app, recent demand."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.offers: Counter = Counter()
        self.accepted: Counter = Counter()
        self.recent: Deque[float] = deque()
        self.price_total = 0.0

    def record_offer(self, offer: RideOffer) -> None:
        self.offers[offer.app_source.value] += 1
        self.price_total += offer.price
        self.recent.append(self._clock())
        self._prune()

    def mark_accepted(self, app_source: AppSource) -> None:
        self.accepted[app_source.value] += 1

    def _prune(self) -> None:
        cutoff = self._clock() - 2 * TREND_WINDOW_S
        while self.recent and self.recent[0] < cutoff:
            self.recent.popleft()

    def summary(self) -> Dict[str, Any]:
        self._prune()
        now = self._clock()
        last = sum(1 for t in self.recent if now - t <= TREND_WINDOW_S)
        previous = len(self.recent) - last
        if last > previous:
            trend = "rising"
        elif last < previous:
            trend = "falling"
        else:
            trend = "stable"
        total = sum(self.offers.values())
        return {
            "offers": dict(self.offers),
            "accepted": dict(self.accepted),
            "offers_last_15min": last,
            "offers_previous_15min": previous,
            "trend": trend,
            "avg_price": round(self.price_total / total, 2) if total else 0.0,
        }


class ConsoleListener:
    """Presentation layer for the terminal."""

    def on_offer_detected(self, analysis: RideAnalysis) -> None:
        offer = analysis.offer
        est = " (est.)" if offer.distance_estimated or offer.time_estimated else ""
        print("\n" + "=" * 60)
        print(f"🚗 {offer.app_source.value}  R$ {offer.price:.2f}  "
              f"{offer.ride_distance_km:.1f} km / {offer.ride_time_min} min{est}")
        if offer.pickup_distance_km is not None or offer.pickup_time_min is not None:
            print(f"📍 Pickup: {offer.pickup_distance_km or '?'} km / {offer.pickup_time_min or '?'} min")
        if offer.pickup_address or offer.dropoff_address:
            print(f"🗺️  {offer.pickup_address or '?'} -> {offer.dropoff_address or '?'}")
        if offer.user_rating is not None:
            print(f"⭐ Rating: {offer.user_rating:.2f}")
        print(f"📊 Score {analysis.score}/100 -> {analysis.recommendation.value}")
        print(f"💰 R$ {analysis.price_per_km:.2f}/km (net {analysis.net_price_per_km:.2f}), "
              f"R$ {analysis.earnings_per_hour:.2f}/h")
        for reason in analysis.reasons:
            print(f"   - {reason}")
        print("=" * 60, flush=True)

    def on_offer_accepted(self, app_source: AppSource) -> None:
        print(f"✅ Offer accepted on {app_source.value}", flush=True)


class PolledWindows:
    """Caches one UI dump per poll cycle so acquisition and acceptance share it."""

    def __init__(self, provider: Callable[[], List[WindowCapture]]):
        self._provider = provider
        self._windows: List[WindowCapture] = []

    def refresh(self) -> List[WindowCapture]:
        self._windows = self._provider()
        return self._windows

    def __call__(self) -> List[WindowCapture]:
        return self._windows


class Monitor:
    def __init__(self, device, detector: RideOfferDetector, windows: PolledWindows,
                 recognizer: Callable[..., str]):
        self.device = device
        self.detector = detector
        self.windows = windows
        self.recognizer = recognizer
        self._last_package = ""
        self._seen_notifications: Set[Tuple[str, str]] = set()

    def _window_key(self, package: str) -> str:
        text = "\n".join(window_text(w.nodes) for w in self.windows())
        return f"{package}:{zlib.crc32(text.encode('utf-8')):08x}"

    def _poll_notifications(self) -> None:
        current = set()
        for package, text in dump_notifications(self.device):
            if classify_package(package) == AppSource.UNKNOWN:
                continue
            current.add((package, text))
            if (package, text) in self._seen_notifications:
                continue
            self.detector.on_event(UiEvent(kind=EventKind.NOTIFICATION, package_name=package, text=text))
        self._seen_notifications = current

    def _run_recognitions(self) -> None:
        for request in self.detector.drain_recognition_requests():
            text = self.recognizer(request)
            self.detector.on_recognition_result(request.request_id, text)

    def poll_once(self) -> None:
        package = focused_package(self.device)
        self.windows.refresh()
        if package and package != self.detector.cfg.own_package:
            kind = EventKind.WINDOW_STATE if package != self._last_package else EventKind.CONTENT_CHANGED
            self.detector.on_event(UiEvent(kind=kind, package_name=package, window_key=self._window_key(package)))
        self._last_package = package
        self._poll_notifications()
        self._run_recognitions()
        self.detector.tick()


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Ride offer monitor")

    parser.add_argument(
        "--config", "-c",
        choices=["default", "strict"],
        default="default",
        help="Detection threshold preset (default: default)"
    )
    parser.add_argument(
        "--device-ip",
        type=str,
        default=None,
        help="adb server host (default: ADB_HOST or 127.0.0.1)"
    )
    parser.add_argument(
        "--serial",
        type=str,
        default=None,
        help="Device serial when several are attached (default: DEVICE_SERIAL or first device)"
    )
    parser.add_argument(
        "--interval", "-i",
        type=float,
        default=0.5,
        help="Polling interval in seconds (default: 0.5)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable diagnostic logging"
    )
    return parser.parse_args(argv)


def get_config(config_name: str) -> DetectorConfig:
    configs = {
        "default": DEFAULT_CONFIG,
        "strict": STRICT_CONFIG,
    }
    return configs[config_name]


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    if args.verbose:
        os.environ["RIDEWATCH_DEBUG"] = "1"

    cfg = get_config(args.config)
    prefs = DriverPreferences.from_env()
    _log(f"[MONITOR] Configuration: {args.config}")
    _log(f"[MONITOR] Preferences: {json.dumps(prefs.__dict__)}")

    device = connect_device(host=args.device_ip, serial=args.serial)
    if device is None:
        return 1
    try:
        width, height = get_screen_resolution(device)
        _log(f"[MONITOR] Screen: {width}x{height}")
    except (ValueError, IndexError) as e:
        _log(f"[MONITOR] Could not read screen size: {e}")

    windows = PolledWindows(UiTreeProvider(device, max_depth=cfg.max_node_depth))
    stats = SessionStats()
    detector = RideOfferDetector(
        cfg=cfg,
        prefs=prefs,
        windows_provider=windows,
        listener=ConsoleListener(),
        aggregator=stats,
    )
    monitor = Monitor(device, detector, windows, ScreenRecognizer(device))

    started_at = datetime.now(timezone.utc)
    start_perf = time.perf_counter()
    try:
        while True:
            monitor.poll_once()
            time.sleep(args.interval)
    except KeyboardInterrupt:
        print("\n⚠️  Monitor stopped by user")

    summary = {
        "started_at": started_at.isoformat(),
        "duration_seconds": round(time.perf_counter() - start_perf, 3),
        "emitted": detector.emitted_offers,
        "delivered": detector.delivered_offers,
        "lost": detector.lost_offers,
        **stats.summary(),
    }
    print("[RUN SUMMARY] " + json.dumps(summary, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
