import pytest

from candidate_selector import (
    is_likely_ride_offer,
    is_own_card,
    looks_like_structural_noise,
    score_price_occurrences,
    select_best,
)
from detector_config import DEFAULT_CONFIG
from models import AppSource, EventKind, ExtractionCandidate


def test_own_card_needs_two_markers():
    assert is_own_card("COMPENSA\nScore: 83\nR$/km 1,95")
    assert not is_own_card("UberX · R$ 18,50\nScore: 5")


def test_negative_verdict_counts_as_one_marker():
    assert not is_own_card("NÃO COMPENSA")
    assert not is_own_card("NÃO COMPENSA\nUberX · R$ 18,50")
    assert is_own_card("NÃO COMPENSA\nScore: 20")


def test_structural_noise():
    ids = "com.ubercab.driver:id/a com.ubercab.driver:id/b android:id/content"
    assert looks_like_structural_noise(ids)
    assert not looks_like_structural_noise(ids + " R$ 12,00")
    assert looks_like_structural_noise("   ")
    assert not looks_like_structural_noise("Aguardando viagens")


def test_content_change_needs_more_confidence_than_window_change():
    text = "R$ 15,00\n8 km"
    assert is_likely_ride_offer(text, EventKind.WINDOW_STATE, AppSource.UBER, DEFAULT_CONFIG)
    assert not is_likely_ride_offer(text, EventKind.CONTENT_CHANGED, AppSource.UBER, DEFAULT_CONFIG)


def test_gate_requires_price():
    assert is_likely_ride_offer("R$ 15,00 Aceitar", EventKind.CONTENT_CHANGED, AppSource.UBER, DEFAULT_CONFIG)
    assert not is_likely_ride_offer("Aceitar 8 km 12 min", EventKind.WINDOW_STATE, AppSource.UBER, DEFAULT_CONFIG)
    assert not is_likely_ride_offer("", EventKind.WINDOW_STATE, AppSource.UBER, DEFAULT_CONFIG)


def test_card_header_passes_gate_alone():
    assert is_likely_ride_offer("UberX · R$ 14,90", EventKind.CONTENT_CHANGED, AppSource.UBER, DEFAULT_CONFIG)


def test_best_of_n_prefers_contextual_price():
    filler = "." * 320
    text = f"Saldo da semana R$ 250,00\n{filler}\nR$ 18,50\n12 min (7,2 km)\nAceitar"
    best = select_best(score_price_occurrences(text, AppSource.UBER, 3.0), 3)
    assert best.price == pytest.approx(18.5)
    assert best.ride_distance_km == pytest.approx(7.2)


def test_ties_go_to_earliest_position():
    later = ExtractionCandidate(price=20.0, score=5, position=40)
    earlier = ExtractionCandidate(price=15.0, score=5, position=10)
    assert select_best([later, earlier], 3) is earlier


def test_select_best_rejects_below_threshold():
    assert select_best([ExtractionCandidate(price=20.0, score=2, position=0)], 3) is None
    assert select_best([], 3) is None
