# app/acceptance_tracker.py
"""
Acceptance tracking: Idle -> OfferPending -> {Accepted, Expired} -> Idle.

One offer is tracked at a time. An acceptance is reported exactly once; the
accepted flag stays latched until the detection window runs out.
"""

import re
import time
from typing import Callable, Optional

from detector_config import DetectorConfig
from models import AppSource, OfferTrackingState, TrackingPhase
from patterns import (
    ACCEPTANCE_SIGNALS,
    ACTION_KEYWORDS,
    CLICK_ACCEPT_PATTERNS,
    NAVIGATION_SIGNALS,
    REJECTION_SIGNALS,
    ROAD_LIKE,
    TRIP_END_SIGNALS,
)
from runtime import _log
from text_utils import contains_any

_CLICK_PATTERNS = {
    app: [re.compile(p, re.IGNORECASE) for p in patterns]
    for app, patterns in CLICK_ACCEPT_PATTERNS.items()
}


class AcceptanceTracker:
    def __init__(
        self,
        cfg: DetectorConfig,
        clock: Callable[[], float] = time.monotonic,
        on_accepted: Optional[Callable[[AppSource], None]] = None,
    ):
        self.cfg = cfg
        self._clock = clock
        self._on_accepted = on_accepted
        self.state = OfferTrackingState()
        self.trip_in_progress = False
        self._trip_started_at = 0.0

    # -- state -------------------------------------------------------------

    def phase(self) -> TrackingPhase:
        self._expire_if_elapsed()
        if not self.state.is_active:
            return TrackingPhase.IDLE
        return TrackingPhase.ACCEPTED if self.state.accepted else TrackingPhase.OFFER_PENDING

    def register_offer(self, app_source: AppSource) -> None:
        self.state = OfferTrackingState(
            active_app_source=app_source,
            offer_timestamp=self._clock(),
            accepted=False,
        )
        _log(f"[TRACK] tracking offer from {app_source.value} for {self.cfg.acceptance_window_s:.0f}s")

    def clear(self) -> None:
        self.state = OfferTrackingState()

    def _expire_if_elapsed(self) -> bool:
        if not self.state.is_active:
            return False
        if self._clock() - self.state.offer_timestamp <= self.cfg.acceptance_window_s:
            return False
        if not self.state.accepted:
            _log("[TRACK] acceptance window elapsed without a signal; offer expired")
        self.clear()
        return True

    # -- signals -----------------------------------------------------------

    def observe_text(self, text: str) -> Optional[TrackingPhase]:
        """Feed any snapshot/event text. Returns the transition it caused, if any."""
        self._update_trip_mode(text)
        if self._expire_if_elapsed() or not self.state.is_active or self.state.accepted:
            return None
        if not text:
            return None
        if contains_any(text, REJECTION_SIGNALS):
            _log("[TRACK] rejection/expiry phrase seen; offer expired")
            self.clear()
            return TrackingPhase.EXPIRED
        if contains_any(text, ACCEPTANCE_SIGNALS):
            return self._accept("post-acceptance phrase")
        return None

    def observe_click(self, app_source: AppSource, text: str) -> Optional[TrackingPhase]:
        if self._expire_if_elapsed() or not self.state.is_active or self.state.accepted:
            return None
        active = self.state.active_app_source
        if app_source not in (AppSource.UNKNOWN, active):
            return None
        patterns = _CLICK_PATTERNS.get(active.value, [])
        if text and any(p.search(text) for p in patterns):
            return self._accept("accept tap")
        return None

    def _accept(self, trigger: str) -> TrackingPhase:
        app = self.state.active_app_source
        self.state.accepted = True
        self.trip_in_progress = True
        self._trip_started_at = self._clock()
        _log(f"[TRACK] offer from {app.value} accepted ({trigger})")
        if self._on_accepted is not None:
            self._on_accepted(app)
        return TrackingPhase.ACCEPTED

    # -- trip mode ---------------------------------------------------------

    def _update_trip_mode(self, text: str) -> None:
        if not self.trip_in_progress or not text:
            return
        if contains_any(text, REJECTION_SIGNALS) or contains_any(text, TRIP_END_SIGNALS):
            self.end_trip("end/cancel signal")

    def end_trip(self, reason: str) -> None:
        if self.trip_in_progress:
            _log(f"[TRACK] trip mode off ({reason})")
        self.trip_in_progress = False
        self._trip_started_at = 0.0

    def suppress_for_trip(self, text: str, strong_offer_signal: bool) -> bool:
        """
        While a trip is running, navigation screens look a lot like offers
        (addresses, minutes, km). Suppress them unless a real new offer shows up.
        """
        if not self.trip_in_progress:
            return False
        if strong_offer_signal:
            self.end_trip("new offer signal")
            return False
        if self._clock() - self._trip_started_at > self.cfg.trip_mode_max_s:
            self.end_trip("max duration")
            return False
        if contains_any(text, ACTION_KEYWORDS):
            return False
        if contains_any(text, NAVIGATION_SIGNALS):
            return True
        return len(ROAD_LIKE.findall(text or "")) >= 2
