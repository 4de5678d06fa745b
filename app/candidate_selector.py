# app/candidate_selector.py
"""
Gates that keep non-offers out of extraction, and the contextual scorer that
picks one price when a snapshot shows several.
"""

from typing import List, Optional

from detector_config import DetectorConfig
from models import AppSource, EventKind, ExtractionCandidate
from patterns import (
    ACTION_KEYWORDS,
    CONTEXT_KEYWORDS,
    KM_VALUE,
    METERS_VALUE,
    MIN_RANGE,
    MIN_VALUE,
    OWN_CARD_MARKERS,
    PLUS_PRICE,
    PRICE,
)
from text_utils import contains_any, count_matching
from value_parsers import (
    card_price,
    first_km,
    first_minutes,
    pickup_distance,
    pickup_time,
    price_occurrences,
    user_rating,
)

CONTEXT_RADIUS = 250
AFTER_WINDOW = 300
BEFORE_WINDOW = 200


def is_own_card(text: str) -> bool:
    return count_matching(text, OWN_CARD_MARKERS) >= 2


def looks_like_structural_noise(text: str, min_ids: int = 3) -> bool:
    """Mostly raw element ids ('pkg:id/foo') and none of the ride markers."""
    compact = (text or "").strip()
    if not compact:
        return True
    id_like = sum(1 for t in compact.split() if ":id/" in t or t.startswith("android:id/"))
    if id_like < min_ids:
        return False
    lower = compact.lower()
    has_markers = (
        PRICE.search(compact) is not None
        or KM_VALUE.search(compact) is not None
        or MIN_VALUE.search(compact) is not None
        or "aceitar" in lower
        or "accept" in lower
    )
    return not has_markers


def has_two_distance_signals(text: str) -> bool:
    return len(KM_VALUE.findall(text or "")) + len(METERS_VALUE.findall(text or "")) >= 2


def has_strong_ride_signal(text: str, app_source: AppSource, min_price: float) -> bool:
    if card_price(text, app_source, min_price) is not None:
        return True
    if not price_occurrences(text, min_price):
        return False
    has_km = KM_VALUE.search(text) is not None
    has_min = MIN_VALUE.search(text) is not None or MIN_RANGE.search(text) is not None
    if has_km and has_min:
        return True
    if contains_any(text, ACTION_KEYWORDS):
        return True
    return contains_any(text, CONTEXT_KEYWORDS) and (has_km or has_min)


def offer_confidence(text: str) -> int:
    ranges = MIN_RANGE.findall(text)
    score = 0
    score += 3 if contains_any(text, ACTION_KEYWORDS) else 0
    score += 2 if contains_any(text, CONTEXT_KEYWORDS) else 0
    score += 2 if KM_VALUE.search(text) else 0
    score += 1 if MIN_VALUE.search(text) else 0
    score += 1 if ranges else 0
    score += 1 if "r$" in text.lower() else 0
    score += 1 if PLUS_PRICE.search(text) else 0
    score += 1 if len(ranges) >= 2 else 0
    return score


def is_likely_ride_offer(text: str, kind: EventKind, app_source: AppSource, cfg: DetectorConfig) -> bool:
    """
    Minimum-signal gate. Content-change events fire on every redraw, so they
    need a higher confidence than window-state changes.
    """
    if not text:
        return False
    if card_price(text, app_source, cfg.min_ride_price) is not None:
        return True
    if not price_occurrences(text, cfg.min_ride_price):
        return False
    if contains_any(text, ACTION_KEYWORDS):
        return True
    ranges = MIN_RANGE.findall(text)
    if ranges and (len(ranges) >= 2 or KM_VALUE.search(text)):
        return True
    if kind == EventKind.CONTENT_CHANGED:
        threshold = cfg.likely_offer_min_confidence_content
    else:
        threshold = cfg.likely_offer_min_confidence_state
    return offer_confidence(text) >= threshold


def score_price_occurrences(text: str, app_source: AppSource, min_price: float) -> List[ExtractionCandidate]:
    """One scored candidate per plausible price, in text order."""
    candidates: List[ExtractionCandidate] = []
    header_price = card_price(text, app_source, min_price)
    for price, start, end in price_occurrences(text, min_price):
        context = text[max(0, start - CONTEXT_RADIUS):end + CONTEXT_RADIUS]
        after = text[end:end + AFTER_WINDOW]
        before = text[max(0, start - BEFORE_WINDOW):start]

        dist_after, dist_before = first_km(after), first_km(before)
        time_after, time_before = first_minutes(after), first_minutes(before)
        # The leg after the price is the ride; the one before it is the pickup.
        ride_km = dist_after if dist_after is not None else first_km(context)
        ride_min = time_after if time_after is not None else first_minutes(context)

        pickup_km = dist_before if dist_after is not None and dist_before != dist_after else None
        if pickup_km is None:
            pickup_km = pickup_distance(text)
        pickup_min = time_before if time_after is not None and time_before != time_after else None
        if pickup_min is None:
            pickup_min = pickup_time(text)
        rating = user_rating(context, app_source) or user_rating(text, app_source)

        score = 0
        score += 3 if ride_km is not None else 0
        score += 3 if ride_min is not None else 0
        score += 2 if contains_any(context, ACTION_KEYWORDS) else 0
        score += 2 if contains_any(context, CONTEXT_KEYWORDS) else 0
        score += 2 if PLUS_PRICE.search(context) else 0
        score += 2 if header_price is not None and abs(header_price - price) < 0.005 else 0
        score += 1 if rating is not None else 0
        score += 1 if pickup_km is not None else 0

        candidates.append(ExtractionCandidate(
            price=price,
            ride_distance_km=ride_km,
            ride_time_min=ride_min,
            pickup_distance_km=pickup_km,
            pickup_time_min=pickup_min,
            user_rating=rating,
            source="positional",
            score=score,
            position=start,
        ))
    return candidates


def select_best(candidates: List[ExtractionCandidate], min_score: int) -> Optional[ExtractionCandidate]:
    """Highest score wins; ties go to the earliest position. Below `min_score` is noise."""
    if not candidates:
        return None
    best = min(candidates, key=lambda c: (-c.score, c.position))
    if best.score < min_score:
        return None
    return best
