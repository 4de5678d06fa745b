# app/text_utils.py
# Small text normalization utilities shared by the extractors and guards.

import re
from typing import Any, Iterable, Optional

from patterns import DIRECTION_ICONS, OWN_CARD_NOISE_TOKENS

_INLINE_SPACE = re.compile(r"[\t\x0b\f\r ]+")


def normalize_dashes(value: Any) -> Any:
    """
    Replace Unicode dashes (U+2013, U+2014) with ASCII hyphen '-' across strings,
    and recursively apply to lists.
    """
    if isinstance(value, str):
        return value.replace("–", "-").replace("—", "-")
    if isinstance(value, list):
        return [normalize_dashes(v) for v in value]
    return value


def parse_decimal(raw: Optional[str]) -> Optional[float]:
    """'18,50' / '18.50' / '18' -> float; None when unparseable."""
    if not raw:
        return None
    try:
        return float(raw.strip().replace(",", "."))
    except ValueError:
        return None


def parse_int(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    lower = (text or "").lower()
    return any(k.lower() in lower for k in keywords)


def count_matching(text: str, keywords: Iterable[str]) -> int:
    """Distinct keywords present; a keyword only found inside a longer match is not counted."""
    remaining = (text or "").lower()
    count = 0
    for k in sorted({k.lower() for k in keywords}, key=lambda k: (-len(k), k)):
        if k in remaining:
            count += 1
            remaining = remaining.replace(k, "\n")
    return count


def collapse_lines(text: str) -> str:
    lines = [_INLINE_SPACE.sub(" ", line).strip() for line in (text or "").splitlines()]
    return "\n".join(line for line in lines if line)


def sanitize_for_parsing(text: str) -> str:
    """
    Drop lines that belong to our own result card, strip direction icons and
    collapse inline whitespace. Keeps the text intact if every line looks like noise.
    """
    if not text or not text.strip():
        return ""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    cleaned = [line for line in lines if not contains_any(line, OWN_CARD_NOISE_TOKENS)]
    joined = "\n".join(cleaned) if cleaned else text
    joined = DIRECTION_ICONS.sub(" ", normalize_dashes(joined))
    return collapse_lines(joined)


def normalize_address(value: Optional[str]) -> str:
    s = (value or "").lower()
    s = re.sub(r"\s+", " ", s)
    s = re.sub(r"[^\w\s,.-]", "", s)
    return s.strip()


def sample(text: str, limit: int) -> str:
    return (text or "")[:limit]
