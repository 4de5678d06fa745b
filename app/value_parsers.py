# app/value_parsers.py
# Field-level parsers: currency amounts, distances, durations and ratings.

import re
from typing import List, Optional, Tuple

from models import AppSource
from patterns import (
    AVG_PRICE_PER_KM_SUFFIX,
    DISTANCE,
    FALLBACK_PRICE,
    HOUR_ROUTE,
    KM_IN_PAREN,
    MIN_RANGE,
    NINETY_NINE_ACCEPT,
    NINETY_NINE_HEADER_RATING,
    NINETY_NINE_LONG_RIDE,
    NINETY_NINE_NEGOTIATE,
    NINETY_NINE_PRIORITY,
    NINETY_NINE_PRIORITY_SIMPLE,
    PICKUP_DISTANCE,
    PICKUP_INLINE,
    PICKUP_TIME,
    PRICE,
    TIME,
    UBER_CARD,
    UBER_HEADER_RATING,
    USER_RATING,
)
from text_utils import parse_decimal, parse_int

RIDE_KM_RANGE = (0.2, 300.0)
RIDE_MIN_RANGE = (1, 300)
PICKUP_KM_RANGE = (0.1, 50.0)
PICKUP_MIN_RANGE = (1, 120)


def _within(value, bounds) -> bool:
    return value is not None and bounds[0] <= value <= bounds[1]


def valid_price(value: Optional[float], min_price: float) -> Optional[float]:
    if value is None or value <= 0 or value < min_price:
        return None
    return value


def valid_rating(value: Optional[float]) -> Optional[float]:
    if value is None or not 1.0 <= value <= 5.0:
        return None
    return value


def is_avg_per_km(text: str, match_end: int) -> bool:
    return bool(AVG_PRICE_PER_KM_SUFFIX.match(text[match_end:match_end + 16]))


def price_occurrences(text: str, min_price: float) -> List[Tuple[float, int, int]]:
    """(price, start, end) for every plausible ride price, in text order."""
    found: List[Tuple[float, int, int]] = []
    for m in PRICE.finditer(text or ""):
        if is_avg_per_km(text, m.end()):
            continue
        value = valid_price(parse_decimal(m.group(1)), min_price)
        if value is not None:
            found.append((value, m.start(), m.end()))
    return found


def first_price(text: str, min_price: float, allow_fallback: bool = False) -> Optional[float]:
    found = price_occurrences(text, min_price)
    if found:
        return found[0][0]
    if allow_fallback:
        for m in FALLBACK_PRICE.finditer(text or ""):
            value = valid_price(parse_decimal(m.group(1)), min_price)
            if value is not None:
                return value
    return None


def card_price(text: str, app_source: AppSource, min_price: float) -> Optional[float]:
    """Ride price from the app's offer-card header, skipping per-km companions."""
    if not text:
        return None
    if app_source == AppSource.UBER:
        for m in UBER_CARD.finditer(text):
            value = valid_price(parse_decimal(m.group(1)), min_price)
            if value is not None:
                return value
        return None
    if app_source != AppSource.NINETY_NINE:
        return None

    prices: List[Tuple[int, float]] = []
    has_avg_companion = False
    for pattern in (NINETY_NINE_LONG_RIDE, NINETY_NINE_PRIORITY, NINETY_NINE_NEGOTIATE,
                    NINETY_NINE_ACCEPT, NINETY_NINE_PRIORITY_SIMPLE):
        for m in pattern.finditer(text):
            if pattern.groups >= 2 and m.group(2):
                has_avg_companion = True
            if is_avg_per_km(text, m.end(1)):
                continue
            value = valid_price(parse_decimal(m.group(1)), min_price)
            if value is not None:
                prices.append((m.start(1), value))
    if not prices:
        return None
    if has_avg_companion:
        return min(prices)[1]
    return max(p for _, p in prices)


def first_km(text: str) -> Optional[float]:
    m = DISTANCE.search(text or "")
    if not m:
        return None
    value = parse_decimal(m.group(1))
    return value if _within(value, RIDE_KM_RANGE) else None


def _range_max(match: "re.Match[str]") -> int:
    return max(int(match.group(1)), int(match.group(2)))


def first_minutes(text: str) -> Optional[int]:
    """First duration in the text; a '2-6 min' range counts as its upper bound."""
    text = text or ""
    range_match = MIN_RANGE.search(text)
    simple = TIME.search(text)
    if range_match and (simple is None or range_match.start() <= simple.start()):
        return max(RIDE_MIN_RANGE[0], min(RIDE_MIN_RANGE[1], _range_max(range_match)))
    if simple is None:
        return None
    value = parse_int(simple.group(1))
    return value if _within(value, RIDE_MIN_RANGE) else None


def hour_route(text: str) -> Optional[Tuple[int, float]]:
    """'1 h 30 (50 km)' -> (90, 50.0)."""
    m = HOUR_ROUTE.search(text or "")
    if not m:
        return None
    minutes = int(m.group(1)) * 60 + (parse_int(m.group(2)) or 0)
    km = parse_decimal(m.group(3))
    if not 1 <= minutes <= 600 or km is None or not 0.2 <= km <= 500.0:
        return None
    return minutes, km


def _first_price_index(text: str) -> int:
    m = PRICE.search(text)
    return m.start() if m else len(text)


def pickup_distance(text: str) -> Optional[float]:
    text = text or ""
    m = PICKUP_DISTANCE.search(text)
    if m:
        value = parse_decimal(m.group(1))
        if _within(value, PICKUP_KM_RANGE):
            return value
    price_idx = _first_price_index(text)
    for m in PICKUP_INLINE.finditer(text):
        if m.start() >= price_idx:
            break
        value = parse_decimal(m.group(2))
        if _within(value, PICKUP_KM_RANGE):
            return value
    return None


def pickup_time(text: str) -> Optional[int]:
    text = text or ""
    m = PICKUP_TIME.search(text)
    if m:
        value = parse_int(m.group(1))
        if _within(value, PICKUP_MIN_RANGE):
            return value
    price_idx = _first_price_index(text)
    for m in PICKUP_INLINE.finditer(text):
        if m.start() >= price_idx:
            break
        value = parse_int(m.group(1))
        if _within(value, PICKUP_MIN_RANGE):
            return value
    return None


def user_rating(text: str, app_source: AppSource = AppSource.UNKNOWN) -> Optional[float]:
    text = text or ""
    m = USER_RATING.search(text)
    if m:
        raw = m.group(1) or m.group(2) or m.group(3)
        rating = valid_rating(parse_decimal(raw))
        if rating is not None:
            return rating
    header = None
    if app_source == AppSource.UBER:
        header = UBER_HEADER_RATING.search(text)
    elif app_source == AppSource.NINETY_NINE:
        header = NINETY_NINE_HEADER_RATING.search(text)
    if header:
        return valid_rating(parse_decimal(header.group(1)))
    return None


def repair_price_scale(price: float, ride_km: Optional[float], text: str, min_price: float,
                       floor: float = 100.0, max_per_km: float = 60.0) -> float:
    """
    Recognition sometimes drops the decimal separator ("1850" for "18,50").
    Rescale by /10 or /100 when the original price per km is implausible.
    """
    if price < floor:
        return price
    km = ride_km
    if km is None:
        values = [parse_decimal(m.group(1)) for m in KM_IN_PAREN.finditer(text or "")]
        values = [v for v in values if _within(v, RIDE_KM_RANGE)]
        if values:
            km = values[1] if len(values) >= 2 else values[-1]
    if not km or km <= 0 or price / km <= max_per_km:
        return price
    options = [c for c in (price / 10.0, price / 100.0) if c >= min_price and 0.6 <= c / km <= 35.0]
    if not options:
        return price
    return min(options, key=lambda c: abs(c / km - 2.5))
