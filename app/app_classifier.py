# app/app_classifier.py
"""
Decide which dispatch app a snapshot belongs to.

Content signatures win over the package hint: during overlay transitions the
platform often reports a stale or unrelated active window.
"""

from typing import Optional

from models import AppSource, ScreenSnapshot
from patterns import (
    NINETY_NINE_CONTENT_MARKERS,
    NINETY_NINE_ID_PREFIXES,
    NINETY_NINE_PACKAGES,
    UBER_CONTENT_MARKERS,
    UBER_ID_PREFIXES,
    UBER_PACKAGES,
)


def classify_text(text: str) -> AppSource:
    if not text:
        return AppSource.UNKNOWN
    uber_hits = sum(1 for p in UBER_CONTENT_MARKERS if p.search(text))
    ninety_nine_hits = sum(1 for p in NINETY_NINE_CONTENT_MARKERS if p.search(text))
    if uber_hits == 0 and ninety_nine_hits == 0:
        return AppSource.UNKNOWN
    if uber_hits >= ninety_nine_hits:
        return AppSource.UBER
    return AppSource.NINETY_NINE


def classify_package(package_name: Optional[str]) -> AppSource:
    pkg = (package_name or "").lower()
    if not pkg:
        return AppSource.UNKNOWN
    if any(pkg == p or pkg.startswith(p + ".") for p in UBER_PACKAGES):
        return AppSource.UBER
    if any(pkg == p or pkg.startswith(p + ".") for p in NINETY_NINE_PACKAGES):
        return AppSource.NINETY_NINE
    if "uber" in pkg:
        return AppSource.UBER
    is_driver_like = any(t in pkg for t in ("driver", "taxi", "motorista"))
    if ("99" in pkg or "ninenine" in pkg) and is_driver_like:
        return AppSource.NINETY_NINE
    return AppSource.UNKNOWN


def classify_snapshot(snapshot: ScreenSnapshot) -> AppSource:
    by_content = classify_text(snapshot.raw_text)
    if by_content != AppSource.UNKNOWN:
        return by_content
    return classify_package(snapshot.origin_app_hint)


def has_foreign_id_leak(app_source: AppSource, text: str) -> bool:
    """True when an app's snapshot carries the other app's element ids."""
    lower = (text or "").lower()
    if app_source == AppSource.UBER:
        return any(p in lower for p in NINETY_NINE_ID_PREFIXES)
    if app_source == AppSource.NINETY_NINE:
        return any(p in lower for p in UBER_ID_PREFIXES)
    return False
