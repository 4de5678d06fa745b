import pytest

from detector_config import DEFAULT_CONFIG
from field_extractor import (
    NodeCategory,
    build_offer,
    classify_node_id,
    extract_candidate,
    extract_labeled_nodes,
    extract_positional,
)
from models import AppSource, ExtractionCandidate, ScreenSnapshot, SemanticNode, SnapshotChannel

PICKUP_THEN_RIDE = "Embarque em 5 min (2.0 km)\nR$ 18.50\nViagem: 12 min (7.2 km)\nAceitar"


def _snapshot(text, nodes=(), channel=SnapshotChannel.NODE_TREE):
    return ScreenSnapshot(raw_text=text, source_channel=channel,
                          origin_app_hint="com.ubercab.driver", nodes=tuple(nodes))


def _node(element_id, text, order, depth=5):
    return SemanticNode(element_id=element_id, text=text, description="", depth=depth, traversal_order=order)


def test_route_pairs_assign_pickup_then_ride():
    snap = _snapshot(PICKUP_THEN_RIDE)
    candidate = extract_candidate(snap, AppSource.UBER, DEFAULT_CONFIG)
    offer = build_offer(candidate, AppSource.UBER, snap, DEFAULT_CONFIG)

    assert offer.price == pytest.approx(18.5)
    assert offer.pickup_distance_km == pytest.approx(2.0)
    assert offer.pickup_time_min == 5
    assert offer.ride_distance_km == pytest.approx(7.2)
    assert offer.ride_time_min == 12
    assert offer.extraction_source == "node_tree:route-pairs"


def test_positional_prefers_values_after_price_for_ride_leg():
    snap = _snapshot(PICKUP_THEN_RIDE)
    candidate = extract_positional(snap, PICKUP_THEN_RIDE, AppSource.UBER, DEFAULT_CONFIG)

    assert candidate.price == pytest.approx(18.5)
    assert candidate.ride_distance_km == pytest.approx(7.2)
    assert candidate.ride_time_min == 12
    assert candidate.pickup_distance_km == pytest.approx(2.0)
    assert candidate.pickup_time_min == 5


def test_positional_rejects_low_scores():
    text = "Saldo R$ 45,00"
    assert extract_positional(_snapshot(text), text, AppSource.UBER, DEFAULT_CONFIG) is None


def test_estimation_fills_missing_distance_and_time():
    snap = _snapshot("R$ 18,50")
    offer = build_offer(ExtractionCandidate(price=18.5, source="positional"), AppSource.UBER, snap, DEFAULT_CONFIG)

    assert offer.ride_distance_km == pytest.approx(12.33)
    assert offer.ride_time_min == 36
    assert offer.distance_estimated and offer.time_estimated
    assert offer.is_price_only
    assert not offer.limited_data


def test_estimation_from_time_only():
    snap = _snapshot("R$ 18,50 15 min")
    offer = build_offer(ExtractionCandidate(price=18.5, ride_time_min=15), AppSource.UBER, snap, DEFAULT_CONFIG)
    assert offer.ride_time_min == 15
    assert offer.ride_distance_km == pytest.approx(5.0)
    assert offer.distance_estimated and not offer.time_estimated


def test_event_fallback_price_only_is_limited():
    snap = _snapshot("R$ 18,50", channel=SnapshotChannel.EVENT_FALLBACK)
    offer = build_offer(ExtractionCandidate(price=18.5), AppSource.UBER, snap, DEFAULT_CONFIG)
    assert offer.limited_data


def test_build_offer_drops_invalid_price_and_rating():
    snap = _snapshot("R$ 0,00")
    assert build_offer(ExtractionCandidate(price=0.0), AppSource.UBER, snap, DEFAULT_CONFIG) is None
    assert build_offer(ExtractionCandidate(price=2.0), AppSource.UBER, snap, DEFAULT_CONFIG) is None

    offer = build_offer(ExtractionCandidate(price=20.0, user_rating=7.0, pickup_distance_km=-1.0),
                        AppSource.UBER, snap, DEFAULT_CONFIG)
    assert offer.user_rating is None
    assert offer.pickup_distance_km is None


def test_build_offer_repairs_price_scale():
    snap = _snapshot("R$ 1850\n12 min (7,2 km)")
    offer = build_offer(ExtractionCandidate(price=1850.0, ride_distance_km=7.2, ride_time_min=12),
                        AppSource.UBER, snap, DEFAULT_CONFIG)
    assert offer.price == pytest.approx(18.5)


def test_classify_node_id():
    assert classify_node_id("fare_amount") == NodeCategory.PRICE
    assert classify_node_id("pickup_eta") == NodeCategory.PICKUP_TIME
    assert classify_node_id("trip_distance") == NodeCategory.RIDE_DISTANCE
    assert classify_node_id("trip_duration") == NodeCategory.RIDE_TIME
    assert classify_node_id("dropoff_address") == NodeCategory.ADDRESS
    assert classify_node_id("accept_button") == NodeCategory.ACTION
    assert classify_node_id("container") == NodeCategory.UNKNOWN
    assert classify_node_id("") == NodeCategory.UNKNOWN


def test_labeled_nodes():
    nodes = [
        _node("com.ubercab.driver:id/pickup_eta", "3 min", 0),
        _node("com.ubercab.driver:id/fare_amount", "R$ 22,40", 1),
        _node("com.ubercab.driver:id/trip_distance", "9,8 km", 2),
        _node("com.ubercab.driver:id/trip_duration", "18 min", 3),
        _node("com.ubercab.driver:id/accept_button", "Aceitar", 4),
    ]
    text = "\n".join(n.text for n in nodes)
    candidate = extract_labeled_nodes(_snapshot(text, nodes), text, AppSource.UBER, DEFAULT_CONFIG)

    assert candidate.source == "node-semantic"
    assert candidate.price == pytest.approx(22.4)
    assert candidate.ride_distance_km == pytest.approx(9.8)
    assert candidate.ride_time_min == 18
    assert candidate.pickup_time_min == 3


def test_labeled_nodes_keep_window_order_when_merged():
    # Two windows of one app; traversal order restarts in the second.
    nodes = [
        _node("", "5 min (2,0 km)", 1),
        _node("com.ubercab.driver:id/fare_amount", "R$ 18,50", 2),
        _node("", "12 min (7,2 km)", 1),
        _node("", "Aceitar", 2),
    ]
    text = "\n".join(n.text for n in nodes)
    candidate = extract_candidate(_snapshot(text, nodes), AppSource.UBER, DEFAULT_CONFIG)

    assert candidate.source == "node-semantic"
    assert candidate.price == pytest.approx(18.5)
    assert candidate.ride_distance_km == pytest.approx(7.2)
    assert candidate.ride_time_min == 12
    assert candidate.pickup_distance_km == pytest.approx(2.0)
    assert candidate.pickup_time_min == 5


def test_labeled_nodes_attribute_unlabeled_by_position():
    nodes = [
        _node("", "4 min (1,5 km)", 0),
        _node("com.app99.driver:id/tv_price", "R$ 15,00", 1),
        _node("", "20 min (8,0 km)", 2),
    ]
    text = "\n".join(n.text for n in nodes)
    candidate = extract_labeled_nodes(_snapshot(text, nodes), text, AppSource.NINETY_NINE, DEFAULT_CONFIG)

    assert candidate.pickup_distance_km == pytest.approx(1.5)
    assert candidate.pickup_time_min == 4
    assert candidate.ride_distance_km == pytest.approx(8.0)
    assert candidate.ride_time_min == 20


def test_labeled_nodes_need_ids():
    nodes = [_node("", "R$ 15,00", 0), _node("", "8 km", 1)]
    assert extract_labeled_nodes(_snapshot("R$ 15,00\n8 km", nodes), "R$ 15,00\n8 km",
                                 AppSource.UBER, DEFAULT_CONFIG) is None


def test_addresses_between_and_after_route_pairs():
    text = (
        "UberX · R$ 18,50\n5 min (2,0 km) de distância\nRua das Flores, 120\n"
        "12 min (7,2 km) de viagem\nAv. Paulista, 1000\nAceitar"
    )
    candidate = extract_candidate(_snapshot(text), AppSource.UBER, DEFAULT_CONFIG)
    assert candidate.pickup_address == "Rua das Flores, 120"
    assert candidate.dropoff_address == "Av. Paulista, 1000"
