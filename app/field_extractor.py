# app/field_extractor.py
"""
Structured field extraction.

Three strategies are tried in a fixed order and the first one that returns a
candidate wins:

1. labeled nodes  - element ids such as ``fare_amount`` or ``trip_distance``
   tell us what a node holds; unlabeled nodes are attributed by their
   traversal position relative to the price node.
2. route pairs    - two ``"5 min (2,0 km)"`` pairs, pickup leg first.
3. positional     - every price is scored by the tokens around it.

Each strategy is a pure ``(snapshot, text, app, cfg) -> candidate | None``.
"""

import re
from enum import Enum
from typing import Callable, List, Optional, Tuple

from address_extractor import extract_addresses
from candidate_selector import score_price_occurrences, select_best
from detector_config import DetectorConfig
from models import AppSource, ExtractionCandidate, RideOffer, ScreenSnapshot, SemanticNode, SnapshotChannel
from patterns import DISTANCE, MIN_RANGE, ROUTE_PAIR, ROUTE_PAIR_METERS, TIME, TRIP_MINUTES
from runtime import _debug
from text_utils import parse_decimal, parse_int, sample, sanitize_for_parsing
from value_parsers import (
    PICKUP_KM_RANGE,
    PICKUP_MIN_RANGE,
    RIDE_KM_RANGE,
    RIDE_MIN_RANGE,
    card_price,
    first_price,
    hour_route,
    repair_price_scale,
    user_rating,
    valid_price,
    valid_rating,
)


class NodeCategory(str, Enum):
    PRICE = "price"
    PICKUP_DISTANCE = "pickup_distance"
    PICKUP_TIME = "pickup_time"
    RIDE_DISTANCE = "ride_distance"
    RIDE_TIME = "ride_time"
    ADDRESS = "address"
    ACTION = "action"
    UNKNOWN = "unknown"


_CATEGORY_RULES: List[Tuple[NodeCategory, "re.Pattern[str]"]] = [
    (NodeCategory.PRICE, re.compile(r"fare|price|amount|valor|tarifa|earning|ganho|cost|surge|promo")),
    (NodeCategory.PICKUP_DISTANCE, re.compile(r"pickup_dist|eta_dist|arrival_dist|buscar_dist")),
    (NodeCategory.PICKUP_TIME, re.compile(
        r"pickup_eta|pickup_time|arrival|eta_time|eta_min|chegada|buscar_time|time_to_pickup")),
    (NodeCategory.RIDE_DISTANCE, re.compile(r"trip_dist|ride_dist|route_dist|trip_length")),
]
_RIDE_TIME = re.compile(r"trip_time|ride_time|trip_duration|duration|ride_eta|trip_eta|estimated_time")
_ADDRESS = re.compile(r"address|location|origin|destination|destino|pickup_loc|dropoff|endereco")
_ACTION = re.compile(r"accept|decline|reject|cancel|aceitar|recusar|ignorar|pular|skip")


def classify_node_id(id_suffix: str) -> NodeCategory:
    """Category from the element id (never from the displayed value)."""
    lower = (id_suffix or "").lower()
    if not lower:
        return NodeCategory.UNKNOWN
    for category, rule in _CATEGORY_RULES:
        if rule.search(lower):
            return category
    if "distance" in lower and "pickup" not in lower and "eta" not in lower:
        return NodeCategory.RIDE_DISTANCE
    if _RIDE_TIME.search(lower):
        return NodeCategory.RIDE_TIME
    if _ADDRESS.search(lower):
        return NodeCategory.ADDRESS
    if _ACTION.search(lower):
        return NodeCategory.ACTION
    return NodeCategory.UNKNOWN


def _km_in(text: str, bounds) -> Optional[float]:
    m = DISTANCE.search(text)
    value = parse_decimal(m.group(1)) if m else None
    if value is not None and bounds[0] <= value <= bounds[1]:
        return value
    return None


def _minutes_in(text: str, bounds) -> Optional[int]:
    m = TIME.search(text)
    value = parse_int(m.group(1)) if m else None
    if value is None:
        r = MIN_RANGE.search(text)
        value = max(int(r.group(1)), int(r.group(2))) if r else None
    if value is not None and bounds[0] <= value <= bounds[1]:
        return value
    return None


def extract_labeled_nodes(snapshot: ScreenSnapshot, text: str, app: AppSource,
                          cfg: DetectorConfig) -> Optional[ExtractionCandidate]:
    # Snapshot order is screen order across windows.
    nodes: List[SemanticNode] = [
        n for n in snapshot.nodes
        if n.depth <= cfg.max_semantic_depth and n.combined_text
    ]
    if not any(n.element_id for n in nodes):
        return None

    c = ExtractionCandidate(source="node-semantic")
    confidence = 0
    price_index = -1
    addresses: List[str] = []
    categories = [classify_node_id(n.id_suffix) for n in nodes]

    for idx, (node, category) in enumerate(zip(nodes, categories)):
        value_text = node.combined_text
        if category == NodeCategory.PRICE and c.price is None:
            value = first_price(value_text, cfg.min_ride_price, allow_fallback=True)
            if value is not None:
                c.price, price_index = value, idx
                confidence += 2
        elif category == NodeCategory.RIDE_DISTANCE and c.ride_distance_km is None:
            c.ride_distance_km = _km_in(value_text, RIDE_KM_RANGE)
            confidence += 2 if c.ride_distance_km is not None else 0
        elif category == NodeCategory.RIDE_TIME and c.ride_time_min is None:
            c.ride_time_min = _minutes_in(value_text, RIDE_MIN_RANGE)
            confidence += 2 if c.ride_time_min is not None else 0
        elif category == NodeCategory.PICKUP_DISTANCE and c.pickup_distance_km is None:
            c.pickup_distance_km = _km_in(value_text, PICKUP_KM_RANGE)
            confidence += 2 if c.pickup_distance_km is not None else 0
        elif category == NodeCategory.PICKUP_TIME and c.pickup_time_min is None:
            c.pickup_time_min = _minutes_in(value_text, PICKUP_MIN_RANGE)
            confidence += 2 if c.pickup_time_min is not None else 0
        elif category == NodeCategory.ADDRESS:
            addresses.append(node.text.strip() or node.description.strip())
        elif category == NodeCategory.ACTION:
            confidence += 1

    if c.price is not None and (c.ride_distance_km is None or c.ride_time_min is None):
        for idx, (node, category) in enumerate(zip(nodes, categories)):
            if category != NodeCategory.UNKNOWN or idx == price_index:
                continue
            value_text = node.combined_text
            if idx < price_index:
                if c.pickup_distance_km is None:
                    c.pickup_distance_km = _km_in(value_text, PICKUP_KM_RANGE)
                    confidence += 1 if c.pickup_distance_km is not None else 0
                if c.pickup_time_min is None:
                    c.pickup_time_min = _minutes_in(value_text, PICKUP_MIN_RANGE)
                    confidence += 1 if c.pickup_time_min is not None else 0
            else:
                if c.ride_distance_km is None:
                    c.ride_distance_km = _km_in(value_text, RIDE_KM_RANGE)
                    confidence += 1 if c.ride_distance_km is not None else 0
                if c.ride_time_min is None:
                    c.ride_time_min = _minutes_in(value_text, RIDE_MIN_RANGE)
                    confidence += 1 if c.ride_time_min is not None else 0

    addresses = [a for a in addresses if a]
    if addresses:
        c.pickup_address = addresses[0]
        c.dropoff_address = addresses[1] if len(addresses) > 1 else None

    c.score = confidence
    if c.price is None or confidence < cfg.labeled_min_confidence:
        _debug(f"[DETECT] labeled nodes: price={c.price} confidence={confidence} (rejected)")
        return None
    c.user_rating = user_rating(text, app)
    return c


def _route_pairs(text: str) -> List[Tuple[int, float, int, int]]:
    pairs = []
    for m in ROUTE_PAIR.finditer(text):
        minutes = (parse_int(m.group(1)) or 0) * 60 + int(m.group(2))
        km = parse_decimal(m.group(3))
        if km is not None:
            pairs.append((minutes, km, m.start(), m.end()))
    return pairs


def extract_route_pairs(snapshot: ScreenSnapshot, text: str, app: AppSource,
                        cfg: DetectorConfig) -> Optional[ExtractionCandidate]:
    pairs = _route_pairs(text)
    meters = [
        (int(m.group(1)), int(m.group(2)) / 1000.0, m.start())
        for m in ROUTE_PAIR_METERS.finditer(text)
    ]
    if not pairs:
        return None

    c = ExtractionCandidate(source="route-pairs")
    if len(pairs) >= 2:
        pickup, ride = pairs[0], pairs[1]
        c.pickup_time_min, c.pickup_distance_km = pickup[0], pickup[1]
        c.ride_time_min, c.ride_distance_km = ride[0], ride[1]
    else:
        only = pairs[0]
        meters_before = [m for m in meters if m[2] < only[2]]
        if meters_before:
            c.pickup_time_min, c.pickup_distance_km = meters_before[0][0], meters_before[0][1]
            c.ride_time_min, c.ride_distance_km = only[0], only[1]
        else:
            c.pickup_time_min, c.pickup_distance_km = only[0], only[1]
            tail = text[only[3]:]
            long_trip = hour_route(tail)
            if long_trip:
                c.ride_time_min, c.ride_distance_km = long_trip
            else:
                for m in DISTANCE.finditer(tail):
                    km = parse_decimal(m.group(1))
                    if km is not None and 0.5 <= km <= 300.0 and km > only[1] + 0.4:
                        c.ride_distance_km = km
                        break
                trip = TRIP_MINUTES.search(tail)
                if trip:
                    c.ride_time_min = parse_int(trip.group(1))

    if c.pickup_distance_km is not None and not PICKUP_KM_RANGE[0] <= c.pickup_distance_km <= PICKUP_KM_RANGE[1]:
        c.pickup_distance_km = None
    if c.pickup_time_min is not None and not PICKUP_MIN_RANGE[0] <= c.pickup_time_min <= PICKUP_MIN_RANGE[1]:
        c.pickup_time_min = None
    if c.ride_distance_km is not None and not RIDE_KM_RANGE[0] <= c.ride_distance_km <= 500.0:
        c.ride_distance_km = None
    if c.ride_time_min is not None and not 1 <= c.ride_time_min <= 600:
        c.ride_time_min = None
    if not c.has_route:
        return None

    c.price = card_price(text, app, cfg.min_ride_price) or first_price(text, cfg.min_ride_price)
    c.user_rating = user_rating(text, app)
    confidence = (
        (2 if c.ride_distance_km is not None else 0)
        + (2 if c.ride_time_min is not None else 0)
        + (1 if c.pickup_distance_km is not None else 0)
        + (1 if c.pickup_time_min is not None else 0)
        + (1 if c.price is not None else 0)
        + (1 if c.user_rating is not None else 0)
    )
    c.score = confidence
    if c.price is None or confidence < cfg.route_pair_min_confidence:
        _debug(f"[DETECT] route pairs: price={c.price} confidence={confidence} (rejected)")
        return None
    return c


def extract_positional(snapshot: ScreenSnapshot, text: str, app: AppSource,
                       cfg: DetectorConfig) -> Optional[ExtractionCandidate]:
    candidates = score_price_occurrences(text, app, cfg.min_ride_price)
    best = select_best(candidates, cfg.positional_min_score)
    if best is None:
        if candidates:
            top = max(c.score for c in candidates)
            _debug(f"[DETECT] positional: best score {top} below {cfg.positional_min_score}")
        return None
    if best.ride_distance_km is None or best.ride_time_min is None:
        long_trip = hour_route(text[best.position:])
        if long_trip:
            minutes, km = long_trip
            best.ride_time_min = best.ride_time_min or minutes
            best.ride_distance_km = best.ride_distance_km or km
    return best


Strategy = Callable[[ScreenSnapshot, str, AppSource, DetectorConfig], Optional[ExtractionCandidate]]

STRATEGIES: List[Tuple[str, Strategy]] = [
    ("labeled-nodes", extract_labeled_nodes),
    ("route-pairs", extract_route_pairs),
    ("positional", extract_positional),
]


def extract_candidate(snapshot: ScreenSnapshot, app: AppSource,
                      cfg: DetectorConfig) -> Optional[ExtractionCandidate]:
    text = sanitize_for_parsing(snapshot.raw_text)
    for name, strategy in STRATEGIES:
        candidate = strategy(snapshot, text, app, cfg)
        if candidate is not None:
            if candidate.pickup_address is None and candidate.dropoff_address is None:
                candidate.pickup_address, candidate.dropoff_address = extract_addresses(text)
            _debug(f"[DETECT] {name} -> price={candidate.price} score={candidate.score}")
            return candidate
    return None


def estimate_distance_km(price: float, cfg: DetectorConfig) -> float:
    km = price / cfg.estimate_price_per_km
    return round(max(cfg.estimate_min_km, min(cfg.estimate_max_km, km)), 2)


def estimate_time_min(distance_km: float, cfg: DetectorConfig) -> int:
    return max(cfg.estimate_min_minutes, int(distance_km * cfg.estimate_min_per_km))


def build_offer(candidate: ExtractionCandidate, app: AppSource, snapshot: ScreenSnapshot,
                cfg: DetectorConfig, now: float = 0.0) -> Optional[RideOffer]:
    """
    Validate a candidate into an immutable offer. Malformed values become absent;
    a missing ride distance/time is estimated from the price and from each other.
    """
    price = valid_price(candidate.price, cfg.min_ride_price)
    if price is None:
        return None
    price = round(repair_price_scale(
        price, candidate.ride_distance_km, snapshot.raw_text, cfg.min_ride_price,
        floor=cfg.suspicious_price_floor, max_per_km=cfg.suspicious_price_per_km,
    ), 2)

    distance = candidate.ride_distance_km if candidate.ride_distance_km and candidate.ride_distance_km > 0 else None
    minutes = candidate.ride_time_min if candidate.ride_time_min and candidate.ride_time_min > 0 else None
    distance_estimated = distance is None
    time_estimated = minutes is None
    if distance is None:
        if minutes is not None:
            distance = round(max(cfg.estimate_min_km, minutes / cfg.estimate_min_per_km), 2)
        else:
            distance = estimate_distance_km(price, cfg)
    if minutes is None:
        minutes = estimate_time_min(distance, cfg)

    pickup_km = candidate.pickup_distance_km
    if pickup_km is not None and pickup_km < 0:
        pickup_km = None
    pickup_min = candidate.pickup_time_min
    if pickup_min is not None and pickup_min <= 0:
        pickup_min = None

    return RideOffer(
        app_source=app,
        price=price,
        ride_distance_km=distance,
        ride_time_min=minutes,
        pickup_distance_km=pickup_km,
        pickup_time_min=pickup_min,
        user_rating=valid_rating(candidate.user_rating),
        pickup_address=candidate.pickup_address or None,
        dropoff_address=candidate.dropoff_address or None,
        extraction_source=f"{snapshot.source_channel.value}:{candidate.source or 'unknown'}",
        raw_text_sample=sample(snapshot.raw_text, cfg.raw_text_sample_chars),
        package_name=snapshot.origin_app_hint,
        distance_estimated=distance_estimated,
        time_estimated=time_estimated,
        # Event text alone with no route: numbers are too thin to score.
        limited_data=(distance_estimated and time_estimated
                      and snapshot.source_channel == SnapshotChannel.EVENT_FALLBACK),
        detected_at=now,
    )
