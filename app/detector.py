# app/detector.py
"""
RideOfferDetector: the single-sequence pipeline from UI events to analysed offers.

    event -> acquisition -> guards -> classification -> extraction
          -> dedup admit -> debounce -> dedup commit -> analysis -> delivery

All state (cooldowns, dedup, tracking, timers) lives on the instance and is only
touched from the caller's sequence; timers fire from `tick()`. Public entry points
never raise; they answer with a DetectionResult.

Collaborators are duck-typed:
  listener    .on_offer_detected(RideAnalysis), .on_offer_accepted(AppSource)
  aggregator  .record_offer(RideOffer), .mark_accepted(AppSource), .summary() -> dict
  advisory    callable(summary dict) -> str
"""

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from acceptance_tracker import AcceptanceTracker
from acquisition import AcquisitionStrategy, WindowsProvider, is_usable_text
from app_classifier import classify_package, classify_snapshot, has_foreign_id_leak
from candidate_selector import has_strong_ride_signal, is_likely_ride_offer, is_own_card, looks_like_structural_noise
from dedup import DebounceScheduler, OfferDeduplicator
from detector_config import DEFAULT_CONFIG, DetectorConfig, DriverPreferences
from field_extractor import build_offer, extract_candidate
from models import (
    AppSource,
    DetectionResult,
    DetectionStatus,
    EventKind,
    RecognitionRequest,
    RideAnalysis,
    RideOffer,
    ScreenSnapshot,
    SnapshotChannel,
    TrackingPhase,
    UiEvent,
)
from ride_analyzer import analyze_offer
from runtime import LogThrottle, _debug, _log
from text_utils import sanitize_for_parsing
from ui_tree import window_text

EMIT_KEY = "emit"


def _dropped(reason: str, app: Optional[AppSource] = None) -> DetectionResult:
    return DetectionResult(DetectionStatus.DROPPED, reason=reason, app_source=app)


class RideOfferDetector:
    def __init__(
        self,
        cfg: Optional[DetectorConfig] = None,
        prefs: Optional[DriverPreferences] = None,
        clock: Callable[[], float] = time.monotonic,
        windows_provider: Optional[WindowsProvider] = None,
        listener: Any = None,
        aggregator: Any = None,
        advisory: Optional[Callable[[Dict[str, Any]], str]] = None,
    ):
        self.cfg = cfg or DEFAULT_CONFIG
        self.prefs = prefs or DriverPreferences()
        self._clock = clock
        self.listener = listener
        self.aggregator = aggregator
        self.advisory = advisory

        self.acquisition = AcquisitionStrategy(self.cfg, windows_provider, clock)
        self.scheduler = DebounceScheduler(clock)
        self.dedup = OfferDeduplicator(self.cfg)
        self.tracker = AcceptanceTracker(self.cfg, clock, on_accepted=self._on_accepted)

        self._event_cooldowns: Dict[Tuple[str, EventKind], float] = {}
        self._pending_offer: Optional[RideOffer] = None
        self._pending_recognitions: List[RecognitionRequest] = []
        self._delivery_seq = 0
        self._throttle = LogThrottle(clock=clock)

        self.last_analysis: Optional[RideAnalysis] = None
        self.last_advisory: Optional[str] = None
        self.emitted_offers = 0
        self.delivered_offers = 0
        self.lost_offers = 0

    # -- public entry points ----------------------------------------------

    def on_event(self, event: UiEvent) -> DetectionResult:
        try:
            return self._handle_event(event)
        except Exception as e:
            _log(f"[DETECT] event from {event.package_name} failed: {e}")
            return _dropped(f"internal error: {e}")

    def on_click(self, package_name: str, text: str) -> DetectionResult:
        return self.on_event(UiEvent(kind=EventKind.CLICK, package_name=package_name, text=text))

    def on_recognition_result(self, request_id: int, text: str) -> DetectionResult:
        """
        Image-recognition text posted back into the sequence. A late result goes
        through the same dedup checks as any other detection.
        """
        try:
            return self._handle_recognition(request_id, text)
        except Exception as e:
            _log(f"[OCR] result #{request_id} failed: {e}")
            return _dropped(f"internal error: {e}")

    def tick(self) -> int:
        """Fire due timers (debounced emission, delivery retries)."""
        try:
            return self.scheduler.run_due()
        except Exception as e:
            _log(f"[DETECT] timer callback failed: {e}")
            return 0

    def drain_recognition_requests(self) -> List[RecognitionRequest]:
        requests, self._pending_recognitions = self._pending_recognitions, []
        return requests

    def reset(self) -> None:
        self.scheduler.clear()
        self.dedup.reset()
        self.tracker.clear()
        self.tracker.end_trip("reset")
        self.acquisition.reset()
        self._event_cooldowns.clear()
        self._pending_offer = None
        self._pending_recognitions = []

    # -- event handling ----------------------------------------------------

    def _cooldown_for(self, kind: EventKind) -> float:
        if kind == EventKind.NOTIFICATION:
            return self.cfg.notification_cooldown_s
        if kind == EventKind.CONTENT_CHANGED:
            return self.cfg.content_change_cooldown_s
        return self.cfg.window_state_cooldown_s

    def _observe_for_acceptance(self, event: UiEvent) -> Optional[TrackingPhase]:
        transition = self.tracker.observe_text(event.text)
        if transition is not None:
            return transition
        if self.tracker.phase() != TrackingPhase.OFFER_PENDING and not self.tracker.trip_in_progress:
            return None
        windows = self.acquisition.windows()
        text = "\n".join(window_text(w.nodes) for w in windows if w.package_name != self.cfg.own_package)
        return self.tracker.observe_text(text)

    def _handle_event(self, event: UiEvent) -> DetectionResult:
        if event.package_name == self.cfg.own_package:
            return DetectionResult(DetectionStatus.IGNORED, reason="own package")

        if event.kind == EventKind.CLICK:
            app = classify_package(event.package_name)
            if self.tracker.observe_click(app, event.text) == TrackingPhase.ACCEPTED:
                return DetectionResult(DetectionStatus.ACCEPTED, app_source=self.tracker.state.active_app_source)
            return DetectionResult(DetectionStatus.IGNORED, reason="click")

        # Acceptance signals are checked ahead of every gate so they are never missed.
        if self._observe_for_acceptance(event) == TrackingPhase.ACCEPTED:
            return DetectionResult(DetectionStatus.ACCEPTED, app_source=self.tracker.state.active_app_source)

        now = self._clock()
        key = (event.package_name, event.kind)
        last = self._event_cooldowns.get(key)
        if last is not None and now - last < self._cooldown_for(event.kind):
            self._throttle.log(f"cooldown:{key}", f"[DETECT] {event.package_name} {event.kind.value} in cooldown")
            return DetectionResult(DetectionStatus.IGNORED, reason="event cooldown")
        self._event_cooldowns[key] = now

        acquired = self.acquisition.acquire(event)
        request = acquired.recognition_request
        if request is not None:
            self._pending_recognitions.append(request)

        if acquired.snapshot is None:
            if request is not None:
                return DetectionResult(DetectionStatus.RECOGNITION_REQUESTED, reason=request.trigger,
                                       app_source=request.app_source)
            return DetectionResult(DetectionStatus.NO_SIGNAL, reason="no snapshot")

        result = self._process_snapshot(acquired.snapshot, event.kind)
        if request is not None and result.status in (DetectionStatus.DROPPED, DetectionStatus.NO_SIGNAL):
            return DetectionResult(DetectionStatus.RECOGNITION_REQUESTED, reason=result.reason,
                                   app_source=request.app_source)
        return result

    def _handle_recognition(self, request_id: int, text: str) -> DetectionResult:
        request = self.acquisition.cooldown.in_flight
        app_hint = request.app_source if request is not None and request.request_id == request_id else AppSource.UNKNOWN
        usable = is_usable_text(text or "", app_hint, self.cfg.min_ride_price)
        request = self.acquisition.complete_recognition(request_id, usable)
        if not text or not text.strip():
            return DetectionResult(DetectionStatus.NO_SIGNAL, reason="empty recognition")

        if self.tracker.observe_text(text) == TrackingPhase.ACCEPTED:
            return DetectionResult(DetectionStatus.ACCEPTED, app_source=self.tracker.state.active_app_source)

        snapshot = ScreenSnapshot(
            raw_text=text,
            source_channel=SnapshotChannel.IMAGE_RECOGNITION,
            origin_app_hint=request.package_name if request is not None else "",
        )
        return self._process_snapshot(snapshot, EventKind.WINDOW_STATE)

    # -- pipeline ----------------------------------------------------------

    def _process_snapshot(self, snapshot: ScreenSnapshot, kind: EventKind) -> DetectionResult:
        text = snapshot.raw_text or ""
        if not text.strip():
            return DetectionResult(DetectionStatus.NO_SIGNAL, reason="empty snapshot")
        if is_own_card(text):
            _debug("[DETECT] own result card in snapshot; ignored")
            return _dropped("own result card")
        if looks_like_structural_noise(text, self.cfg.structural_noise_min_ids):
            return _dropped("structural noise")

        app = classify_snapshot(snapshot)
        if app == AppSource.UNKNOWN:
            return _dropped("unknown app")
        ids = " ".join(n.element_id for n in snapshot.nodes if n.element_id)
        if has_foreign_id_leak(app, f"{text} {ids}"):
            _log(f"[DETECT] {app.value} snapshot carries the other app's ids; dropped")
            return _dropped("foreign window leak", app)

        clean = sanitize_for_parsing(text)
        strong = has_strong_ride_signal(clean, app, self.cfg.min_ride_price)
        if self.tracker.suppress_for_trip(clean, strong):
            return _dropped("trip in progress", app)
        if not is_likely_ride_offer(clean, kind, app, self.cfg):
            self._throttle.log(f"weak:{app.value}", f"[DETECT] {app.value} {snapshot.source_channel.value}: not an offer")
            return _dropped("low confidence", app)

        candidate = extract_candidate(snapshot, app, self.cfg)
        if candidate is None:
            return _dropped("no candidate", app)
        now = self._clock()
        offer = build_offer(candidate, app, snapshot, self.cfg, now)
        if offer is None:
            return _dropped("invalid price", app)

        reason = self.dedup.admit(offer, now)
        if reason is not None:
            _debug(f"[DEDUP] {app.value} R$ {offer.price:.2f}: {reason}")
            return _dropped(reason, app)

        self._pending_offer = offer
        self.scheduler.schedule(EMIT_KEY, self.cfg.debounce_delay_s, self._emit_pending)
        _debug(f"[DETECT] {app.value} R$ {offer.price:.2f} via {offer.extraction_source} scheduled")
        return DetectionResult(DetectionStatus.SCHEDULED, offer=offer, app_source=app)

    def _emit_pending(self) -> None:
        offer, self._pending_offer = self._pending_offer, None
        if offer is None:
            return
        reason = self.dedup.commit(offer, self._clock())
        if reason is not None:
            _debug(f"[DEDUP] dropped at emission: {reason}")
            return

        self.emitted_offers += 1
        _log(
            f"[DETECT] offer {offer.app_source.value} R$ {offer.price:.2f} "
            f"{offer.ride_distance_km}km/{offer.ride_time_min}min "
            f"pickup={offer.pickup_distance_km}km/{offer.pickup_time_min}min via {offer.extraction_source}"
        )
        self.tracker.register_offer(offer.app_source)
        self._record_offer(offer)

        analysis = analyze_offer(offer, prefs=self.prefs)
        self.last_analysis = analysis
        self._delivery_seq += 1
        self._deliver(analysis, self._delivery_seq, attempt=0)

    def _record_offer(self, offer: RideOffer) -> None:
        if self.aggregator is None:
            return
        try:
            self.aggregator.record_offer(offer)
            if self.advisory is not None:
                self.last_advisory = self.advisory(self.aggregator.summary())
                _log(f"[MONITOR] advisory: {self.last_advisory}")
        except Exception as e:
            _log(f"[MONITOR] aggregator update failed: {e}")

    def _deliver(self, analysis: RideAnalysis, seq: int, attempt: int) -> None:
        try:
            if self.listener is None:
                raise RuntimeError("presentation layer not ready")
            self.listener.on_offer_detected(analysis)
            self.delivered_offers += 1
            return
        except Exception as e:
            delays = self.cfg.delivery_retry_delays_s
            if attempt < len(delays):
                _log(f"[DELIVERY] attempt {attempt + 1} failed ({e}); retrying in {delays[attempt]:.1f}s")
                self.scheduler.schedule(
                    f"deliver:{seq}", delays[attempt],
                    lambda: self._deliver(analysis, seq, attempt + 1),
                )
                return
            self.lost_offers += 1
            offer = analysis.offer
            _log(
                f"[DELIVERY] offer lost after {attempt + 1} attempts: "
                f"{offer.app_source.value} R$ {offer.price:.2f} ({e})"
            )

    def _on_accepted(self, app: AppSource) -> None:
        if self.listener is not None:
            try:
                self.listener.on_offer_accepted(app)
            except Exception as e:
                _log(f"[DELIVERY] acceptance notification failed: {e}")
        if self.aggregator is not None:
            try:
                self.aggregator.mark_accepted(app)
            except Exception as e:
                _log(f"[MONITOR] aggregator mark_accepted failed: {e}")
