# app/address_extractor.py

import re
from typing import List, Optional, Tuple

from patterns import ADDRESS_NOISE_TOKENS, ROAD_PREFIX, ROUTE_PAIR

_I = re.IGNORECASE

_PICKUP_LABEL = re.compile(
    r"(?:local\s+de\s+embarque|embarque|buscar|retirada|origem)[:\s]+([^,\n]{3,60})", _I
)
_DROPOFF_LABEL = re.compile(
    r"(?:local\s+de\s+destino|destino|para|até|entrega|deixar)[:\s]+([^,\n]{3,60})", _I
)
_ADDRESS = re.compile(r"(?:R(?:ua)?\.?|Av(?:enida)?\.?|M(?:arginal)?\.?)\s+[A-ZÀ-Ú0-9][^\n]{3,60}", _I)
_ROAD = re.compile(r"(?:R(?:ua)?\.?|Av(?:enida)?\.?|M(?:arginal)?\.?)\s+[A-ZÀ-Ú0-9][^•|]{3,120}", _I)
_TRAILING_UI = re.compile(
    r"\b(aceitar|recusar|ignorar|corrida longa|perfil essencial|perfil premium|"
    r"taxa de deslocamento|parada\(s\)|parada)\b.*",
    _I,
)
_NUMERIC_ONLY = re.compile(r"^\d+[\d\s,.\-/]*$")


def _clean(candidate: str) -> str:
    s = _TRAILING_UI.sub("", candidate or "")
    s = re.sub(r"\s+", " ", s)
    return s.strip(" -•·,;")


def _is_road(value: str) -> bool:
    return bool(ROAD_PREFIX.match(value.lstrip())) and len(value.strip()) > 4


def _is_noise_line(line: str) -> bool:
    if len(line) <= 3 or not any(c.isalpha() for c in line):
        return True
    if _NUMERIC_ONLY.match(line):
        return True
    lower = line.lower()
    return any(t in lower for t in ADDRESS_NOISE_TOKENS)


def _line_rank(line: str) -> int:
    road = 3 if _is_road(line) else 0
    digit = 1 if any(c.isdigit() for c in line) else 0
    comma = 1 if "," in line else 0
    return road + digit + comma + min(len(line), 60) // 20


def best_address_in_segment(segment: str) -> str:
    if not segment or not segment.strip():
        return ""
    lines = [_clean(line.strip()) for line in segment.splitlines() if line.strip()]
    candidates = [l for l in lines if len(l) >= 4 and _is_road(l) and not _is_noise_line(l)]
    if candidates:
        # max() keeps the first line among equal ranks
        return max(candidates, key=_line_rank)

    flat = re.sub(r"\s+", " ", re.sub(r"[•·|\n]", " ", segment)).strip()
    road = _ROAD.search(flat)
    if road:
        return _clean(road.group(0))

    generic = _TRAILING_UI.sub("", flat).strip()
    if len(generic) < 6 or not any(c.isalpha() for c in generic):
        return ""
    if _NUMERIC_ONLY.match(generic) or not _is_road(generic):
        return ""
    return _clean(generic)


def _labeled(pattern: "re.Pattern[str]", text: str) -> str:
    match = pattern.search(text)
    if not match:
        return ""
    candidate = _clean(match.group(1).strip())
    return candidate if _is_road(candidate) else ""


def extract_addresses(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Return (pickup, dropoff). With two route pairs the pickup address sits between
    them and the dropoff after the second; otherwise fall back to labeled and
    road-like lines. Missing addresses come back as None.
    """
    text = text or ""
    pairs = list(ROUTE_PAIR.finditer(text))
    if len(pairs) >= 2:
        first_end = pairs[0].end()
        second_start, second_end = pairs[1].start(), pairs[1].end()
        pickup_segment = text[first_end:second_start] if first_end < second_start else ""
        dropoff_segment = text[second_end:]
        pickup = best_address_in_segment(pickup_segment)
        dropoff = best_address_in_segment(dropoff_segment)
        if pickup or dropoff:
            return pickup or None, dropoff or None

    pickup = _labeled(_PICKUP_LABEL, text)
    dropoff = _labeled(_DROPOFF_LABEL, text)
    if pickup and dropoff:
        return pickup, dropoff

    matches: List[str] = [m.group(0).strip() for m in _ADDRESS.finditer(text)]
    if len(matches) >= 2:
        return matches[0], matches[1]
    if len(matches) == 1:
        return matches[0], dropoff or None
    return pickup or None, dropoff or None
