# app/acquisition.py
"""
Snapshot acquisition: pick the cheapest channel that yields a usable offer text.

Channel order for one event:
  1. UI tree of the windows that belong to (or read like) a monitored app
  2. notification text, for notification events
  3. keyword search over the same tree for currency/distance/time/action tokens
  4. image recognition of a screen capture, requested asynchronously

Every channel degrades to "nothing" on failure. Image recognition is guarded by
`RecognitionCooldown`, which tracks the single in-flight request.
"""

import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from app_classifier import classify_package, classify_text
from detector_config import DetectorConfig
from models import (
    AppSource,
    EventKind,
    RecognitionRequest,
    ScreenSnapshot,
    SemanticNode,
    SnapshotChannel,
    UiEvent,
    WindowCapture,
)
from patterns import KEYWORD_QUERIES, KM_VALUE, METERS_VALUE, MIN_RANGE, MIN_VALUE, NOTIFICATION_RIDE_KEYWORDS
from runtime import LogThrottle, _debug, _log
from text_utils import contains_any
from ui_tree import keyword_search, window_text
from value_parsers import card_price, price_occurrences

WindowsProvider = Callable[[], List[WindowCapture]]


def has_offer_triple(text: str, min_price: float) -> bool:
    """Currency amount plus a distance and a time token."""
    if not text or not price_occurrences(text, min_price):
        return False
    has_distance = KM_VALUE.search(text) is not None or METERS_VALUE.search(text) is not None
    has_time = MIN_VALUE.search(text) is not None or MIN_RANGE.search(text) is not None
    return has_distance and has_time


def _app_for(text: str, hinted: AppSource) -> AppSource:
    by_content = classify_text(text)
    return hinted if by_content == AppSource.UNKNOWN else by_content


def is_usable_text(text: str, app_source: AppSource, min_price: float) -> bool:
    return has_offer_triple(text, min_price) or card_price(text, app_source, min_price) is not None


class RecognitionCooldown:
    """
    Adaptive rate limit for image recognition.

    Normal interval `ocr_min_interval_s`; `ocr_empty_tree_interval_s` while a
    monitored app shows an empty tree; each consecutive no-signal result
    multiplies the interval by `ocr_backoff_factor` up to `ocr_backoff_max_s`.
    """

    def __init__(self, cfg: DetectorConfig, clock: Callable[[], float] = time.monotonic):
        self.cfg = cfg
        self._clock = clock
        self._last_request_at: Optional[float] = None
        self._no_signal_streak = 0
        self._in_flight: Optional[RecognitionRequest] = None
        self._next_id = 1
        self._throttle = LogThrottle(clock=clock)

    @property
    def in_flight(self) -> Optional[RecognitionRequest]:
        self._expire_in_flight()
        return self._in_flight

    @property
    def no_signal_streak(self) -> int:
        return self._no_signal_streak

    def interval(self, tree_empty: bool = False) -> float:
        base = self.cfg.ocr_empty_tree_interval_s if tree_empty else self.cfg.ocr_min_interval_s
        if self._no_signal_streak:
            base *= self.cfg.ocr_backoff_factor ** self._no_signal_streak
        return min(base, self.cfg.ocr_backoff_max_s)

    def _expire_in_flight(self) -> None:
        req = self._in_flight
        if req is not None and self._clock() - req.requested_at > self.cfg.ocr_in_flight_timeout_s:
            _log(f"[OCR] request #{req.request_id} timed out; releasing")
            self._in_flight = None

    def try_request(
        self,
        package_name: str,
        app_source: AppSource,
        trigger: str,
        window_key: str = "",
        tree_empty: bool = False,
    ) -> Optional[RecognitionRequest]:
        now = self._clock()
        self._expire_in_flight()
        if self._in_flight is not None:
            if self._in_flight.window_key == window_key:
                self._throttle.log("dup", f"[OCR] duplicate request for window '{window_key}' suppressed")
            else:
                self._throttle.log("busy", f"[OCR] request #{self._in_flight.request_id} still in flight")
            return None

        wait = self.interval(tree_empty)
        if self._last_request_at is not None and now - self._last_request_at < wait:
            self._throttle.log("cooldown", f"[OCR] cooldown {wait:.1f}s not elapsed")
            return None

        if app_source == AppSource.NINETY_NINE:
            crop = self.cfg.ocr_crop_start_fraction_ninety_nine
        else:
            crop = self.cfg.ocr_crop_start_fraction
        request = RecognitionRequest(
            request_id=self._next_id,
            package_name=package_name,
            app_source=app_source,
            trigger=trigger,
            crop_start_fraction=crop,
            window_key=window_key,
            requested_at=now,
        )
        self._next_id += 1
        self._in_flight = request
        self._last_request_at = now
        _debug(f"[OCR] request #{request.request_id} ({trigger}, crop {crop:.2f})")
        return request

    def complete(self, request_id: int, usable: bool) -> Optional[RecognitionRequest]:
        """
        Record the outcome of a recognition. Returns the matching request, or None
        when it is unknown (already timed out or never issued).
        """
        req = self._in_flight
        if req is None or req.request_id != request_id:
            _debug(f"[OCR] result for unknown/expired request #{request_id}")
            return None
        self._in_flight = None
        if usable:
            self._no_signal_streak = 0
        else:
            self._no_signal_streak += 1
            _debug(f"[OCR] no signal ({self._no_signal_streak} in a row); next interval {self.interval():.1f}s")
        return req

    def reset(self) -> None:
        self._last_request_at = None
        self._no_signal_streak = 0
        self._in_flight = None


@dataclass
class AcquisitionResult:
    snapshot: Optional[ScreenSnapshot] = None
    recognition_request: Optional[RecognitionRequest] = None
    tree_empty: bool = False


class AcquisitionStrategy:
    def __init__(
        self,
        cfg: DetectorConfig,
        windows_provider: Optional[WindowsProvider] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.windows_provider = windows_provider
        self.cooldown = RecognitionCooldown(cfg, clock)

    # -- channels ----------------------------------------------------------

    def windows(self) -> List[WindowCapture]:
        if self.windows_provider is None:
            return []
        try:
            return list(self.windows_provider() or [])
        except Exception as e:
            _log(f"[ACQ] UI tree walk failed: {e}")
            return []

    def _relevant_windows(self, windows: List[WindowCapture], event: UiEvent,
                          hinted_app: AppSource) -> List[WindowCapture]:
        """
        Windows of the triggering app: same package (or a sub-package of it), a
        package of the same app, or content that reads like that app. Without a
        known triggering app any monitored app qualifies.
        """
        relevant = []
        for w in windows:
            pkg = w.package_name
            if event.package_name and (pkg == event.package_name or pkg.startswith(event.package_name + ".")):
                relevant.append(w)
                continue
            by_package = classify_package(pkg)
            by_content = classify_text(window_text(w.nodes))
            if hinted_app == AppSource.UNKNOWN:
                keep = by_package != AppSource.UNKNOWN or by_content != AppSource.UNKNOWN
            else:
                keep = by_package == hinted_app or by_content == hinted_app
            if keep:
                relevant.append(w)
        return relevant

    def _tree_snapshot(self, windows: List[WindowCapture], event: UiEvent) -> Optional[ScreenSnapshot]:
        try:
            parts = [window_text(w.nodes, self.cfg.top_screen_filter_fraction) for w in windows]
            text = "\n".join(p for p in parts if p)
            if not text:
                return None
            # Order restarts per window; renumber so the merged arena keeps window order.
            merged = [n for w in windows for n in w.nodes if n.depth <= self.cfg.max_node_depth]
            nodes = tuple(replace(n, traversal_order=i) for i, n in enumerate(merged))
            return ScreenSnapshot(
                raw_text=text,
                source_channel=SnapshotChannel.NODE_TREE,
                origin_app_hint=event.package_name,
                nodes=nodes,
            )
        except Exception as e:
            _log(f"[ACQ] node tree snapshot failed: {e}")
            return None

    def _notification_snapshot(self, event: UiEvent) -> Optional[ScreenSnapshot]:
        if event.kind != EventKind.NOTIFICATION or not event.text:
            return None
        if not contains_any(event.text, NOTIFICATION_RIDE_KEYWORDS):
            return None
        if not price_occurrences(event.text, self.cfg.min_ride_price):
            return None
        return ScreenSnapshot(
            raw_text=event.text,
            source_channel=SnapshotChannel.NOTIFICATION,
            origin_app_hint=event.package_name,
        )

    def _keyword_snapshot(self, windows: List[WindowCapture], event: UiEvent) -> Optional[ScreenSnapshot]:
        try:
            hits: List[SemanticNode] = keyword_search(windows, KEYWORD_QUERIES)
        except Exception as e:
            _log(f"[ACQ] keyword search failed: {e}")
            return None
        if not hits:
            return None
        text = "\n".join(dict.fromkeys(n.combined_text for n in hits))
        return ScreenSnapshot(
            raw_text=text,
            source_channel=SnapshotChannel.KEYWORD_SEARCH,
            origin_app_hint=event.package_name,
            nodes=tuple(hits),
        )

    # -- entry point -------------------------------------------------------

    def acquire(self, event: UiEvent) -> AcquisitionResult:
        """Best snapshot for `event`, plus at most one recognition request."""
        min_price = self.cfg.min_ride_price
        hinted_app = classify_package(event.package_name)

        visible = [w for w in self.windows() if w.package_name != self.cfg.own_package]
        windows = self._relevant_windows(visible, event, hinted_app)
        tree = self._tree_snapshot(windows, event)
        tree_empty = hinted_app != AppSource.UNKNOWN and tree is None

        if tree is not None:
            app = _app_for(tree.raw_text, hinted_app)
            if is_usable_text(tree.raw_text, app, min_price):
                return AcquisitionResult(snapshot=tree)

        notification = self._notification_snapshot(event)
        if notification is not None:
            return AcquisitionResult(snapshot=notification)

        # Offer sheets sometimes sit in an overlay window that neither the package
        # nor the content check attributes to the app.
        searchable = [
            w for w in visible
            if hinted_app == AppSource.UNKNOWN or classify_package(w.package_name) in (hinted_app, AppSource.UNKNOWN)
        ]
        found = self._keyword_snapshot(searchable, event)
        if found is not None and is_usable_text(found.raw_text, _app_for(found.raw_text, hinted_app), min_price):
            return AcquisitionResult(snapshot=found)

        fallback = tree
        if fallback is None and event.text:
            fallback = ScreenSnapshot(
                raw_text=event.text,
                source_channel=SnapshotChannel.EVENT_FALLBACK,
                origin_app_hint=event.package_name,
            )

        request = None
        app = hinted_app if tree is None else _app_for(tree.raw_text, hinted_app)
        if app != AppSource.UNKNOWN:
            request = self.cooldown.try_request(
                package_name=event.package_name,
                app_source=app,
                trigger="empty-tree" if tree_empty else event.kind.value,
                window_key=event.window_key or event.package_name,
                tree_empty=tree_empty,
            )
        if tree_empty:
            _debug(f"[ACQ] {event.package_name}: structural tree empty")
        return AcquisitionResult(snapshot=fallback, recognition_request=request, tree_empty=tree_empty)

    def complete_recognition(self, request_id: int, usable: bool) -> Optional[RecognitionRequest]:
        return self.cooldown.complete(request_id, usable)

    def reset(self) -> None:
        self.cooldown.reset()
