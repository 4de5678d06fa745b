# app/dedup.py
"""
Debounce and duplicate suppression.

Everything here runs on the detector's single event sequence; timers are
logical callbacks fired by ``DebounceScheduler.run_due`` and cancelled simply
by scheduling a replacement under the same key.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from detector_config import DetectorConfig
from models import AppSource, RideOffer
from runtime import _log
from text_utils import normalize_address


class DebounceScheduler:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._pending: Dict[str, Tuple[float, int, Callable[[], None]]] = {}
        self._seq = 0

    def schedule(self, key: str, delay_s: float, callback: Callable[[], None]) -> float:
        """(Re)schedule `callback` under `key`; an earlier pending callback for the key never fires."""
        self._seq += 1
        due = self._clock() + max(0.0, delay_s)
        self._pending[key] = (due, self._seq, callback)
        return due

    def cancel(self, key: str) -> bool:
        return self._pending.pop(key, None) is not None

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def next_due(self) -> Optional[float]:
        if not self._pending:
            return None
        return min(due for due, _, _ in self._pending.values())

    def run_due(self) -> int:
        """Fire every callback that is due, earliest first. Returns how many fired."""
        fired = 0
        while True:
            now = self._clock()
            due_items: List[Tuple[float, int, str]] = sorted(
                (due, seq, key) for key, (due, seq, _) in self._pending.items() if due <= now
            )
            if not due_items:
                return fired
            key = due_items[0][2]
            _, _, callback = self._pending.pop(key)
            callback()
            fired += 1

    def clear(self) -> None:
        self._pending.clear()


@dataclass
class _PriceStreak:
    price: float
    count: int
    last_at: float


@dataclass
class _Quarantine:
    price: float
    until: float


def _same_price(a: float, b: float) -> bool:
    return abs(a - b) < 0.01


class OfferDeduplicator:
    def __init__(self, cfg: DetectorConfig):
        self.cfg = cfg
        self._last_hash = ""
        self._last_hash_at = 0.0
        # fingerprint -> (last seen, offer carried extracted route data)
        self._recent: "OrderedDict[str, Tuple[float, bool]]" = OrderedDict()
        self._streaks: Dict[AppSource, _PriceStreak] = {}
        self._quarantine: Dict[AppSource, _Quarantine] = {}

    @staticmethod
    def content_hash(offer: RideOffer) -> str:
        return (
            f"{offer.app_source.value}_{offer.price:.2f}_{offer.extraction_source}_"
            f"{offer.ride_distance_km}_{offer.ride_time_min}"
        )

    @staticmethod
    def offer_fingerprint(offer: RideOffer) -> str:
        return "|".join([
            offer.app_source.value,
            offer.package_name,
            str(int(round(offer.price * 100))),
            normalize_address(offer.pickup_address),
            normalize_address(offer.dropoff_address),
        ])

    def is_quarantined(self, offer: RideOffer, now: float) -> bool:
        """
        Track repeats of a price-only offer per app. Repeating the same price more
        than `price_only_max_repeats` times inside the rolling window quarantines it.
        """
        app = offer.app_source
        held = self._quarantine.get(app)
        if held is not None and (not _same_price(held.price, offer.price) or now >= held.until):
            del self._quarantine[app]
            held = None
        if not offer.is_price_only:
            return False
        if held is not None:
            return True

        streak = self._streaks.get(app)
        if (streak is not None and _same_price(streak.price, offer.price)
                and now - streak.last_at < self.cfg.price_only_window_s):
            streak.count += 1
            streak.last_at = now
        else:
            streak = _PriceStreak(price=offer.price, count=1, last_at=now)
            self._streaks[app] = streak

        if streak.count > self.cfg.price_only_max_repeats:
            self._quarantine[app] = _Quarantine(price=offer.price, until=now + self.cfg.price_only_hold_s)
            del self._streaks[app]
            _log(
                f"[DEDUP] price-only {offer.price:.2f} repeated {streak.count}x for {app.value}; "
                f"quarantined for {self.cfg.price_only_hold_s:.0f}s"
            )
            return True
        return False

    def _is_recent_hash(self, offer: RideOffer, now: float) -> bool:
        return (
            self.content_hash(offer) == self._last_hash
            and now - self._last_hash_at < self.cfg.duplicate_suppression_window_s
        )

    def _prune(self, now: float) -> None:
        window = self.cfg.offer_fingerprint_window_s
        for key in [k for k, (seen, _) in self._recent.items() if now - seen > window]:
            del self._recent[key]

    def _is_recently_seen(self, offer: RideOffer, now: float) -> bool:
        self._prune(now)
        entry = self._recent.get(self.offer_fingerprint(offer))
        if entry is None:
            return False
        _, had_route = entry
        # A route-bearing reading may replace an earlier price-only one.
        return had_route or offer.is_price_only

    def check(self, offer: RideOffer, now: float) -> Optional[str]:
        """Reason the offer must be dropped, or None. Does not record anything."""
        if self._is_recent_hash(offer, now):
            return "duplicate content hash"
        if self._is_recently_seen(offer, now):
            return "offer seen recently"
        return None

    def admit(self, offer: RideOffer, now: float) -> Optional[str]:
        if self.is_quarantined(offer, now):
            return "price-only quarantine"
        return self.check(offer, now)

    def commit(self, offer: RideOffer, now: float) -> Optional[str]:
        """Final check at emission time; records the offer when it passes."""
        reason = self.check(offer, now)
        if reason is not None:
            fingerprint = self.offer_fingerprint(offer)
            if fingerprint in self._recent:
                self._recent[fingerprint] = (now, self._recent[fingerprint][1])
            return reason
        self._last_hash = self.content_hash(offer)
        self._last_hash_at = now
        fingerprint = self.offer_fingerprint(offer)
        self._recent.pop(fingerprint, None)
        self._recent[fingerprint] = (now, not offer.is_price_only)
        while len(self._recent) > self.cfg.offer_fingerprint_max_entries:
            self._recent.popitem(last=False)
        return None

    def reset(self) -> None:
        self._last_hash = ""
        self._last_hash_at = 0.0
        self._recent.clear()
        self._streaks.clear()
        self._quarantine.clear()
