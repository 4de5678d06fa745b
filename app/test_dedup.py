from dedup import DebounceScheduler, OfferDeduplicator
from detector_config import DEFAULT_CONFIG
from models import AppSource, RideOffer


def _offer(price=18.5, price_only=False, pickup="Rua das Flores, 120", dropoff="Av. Paulista, 1000",
           source="node_tree:route-pairs", app=AppSource.UBER):
    return RideOffer(
        app_source=app,
        price=price,
        ride_distance_km=7.2,
        ride_time_min=12,
        pickup_address=pickup,
        dropoff_address=dropoff,
        extraction_source=source,
        package_name="com.ubercab.driver",
        distance_estimated=price_only,
        time_estimated=price_only,
    )


def test_debounce_replacement_fires_only_latest(clock):
    scheduler = DebounceScheduler(clock)
    fired = []
    scheduler.schedule("emit", 0.25, lambda: fired.append("first"))
    clock.advance(0.1)
    scheduler.schedule("emit", 0.25, lambda: fired.append("second"))
    clock.advance(0.2)
    assert scheduler.run_due() == 0
    clock.advance(0.1)
    assert scheduler.run_due() == 1
    assert fired == ["second"]
    assert not scheduler.is_pending("emit")


def test_scheduler_fires_in_due_order(clock):
    scheduler = DebounceScheduler(clock)
    fired = []
    scheduler.schedule("b", 0.5, lambda: fired.append("b"))
    scheduler.schedule("a", 0.2, lambda: fired.append("a"))
    assert scheduler.next_due() == clock() + 0.2
    clock.advance(1.0)
    scheduler.run_due()
    assert fired == ["a", "b"]


def test_content_hash_then_fingerprint_window(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    offer = _offer()
    assert dedup.commit(offer, clock()) is None

    assert dedup.admit(offer, clock.advance(2)) == "duplicate content hash"
    assert dedup.admit(offer, clock.advance(8)) == "offer seen recently"
    assert dedup.admit(offer, clock.advance(100)) is None


def test_route_reading_may_upgrade_price_only(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    dedup.commit(_offer(price_only=True, source="positional"), clock())
    clock.advance(10)
    assert dedup.admit(_offer(), clock()) is None


def test_price_only_never_replaces_route_reading(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    dedup.commit(_offer(), clock())
    clock.advance(10)
    assert dedup.admit(_offer(price_only=True, source="positional"), clock()) == "offer seen recently"


def test_different_addresses_are_different_offers(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    dedup.commit(_offer(), clock())
    clock.advance(10)
    assert dedup.admit(_offer(dropoff="Rua Augusta, 50"), clock()) is None


def test_price_only_quarantine(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    summary = _offer(price=45.0, price_only=True, pickup=None, dropoff=None, source="positional")

    assert not dedup.is_quarantined(summary, clock())
    assert not dedup.is_quarantined(summary, clock.advance(5))
    assert dedup.is_quarantined(summary, clock.advance(5))
    assert dedup.is_quarantined(summary, clock.advance(10))

    # a different price lifts the hold
    assert not dedup.is_quarantined(_offer(price=30.0, price_only=True, source="positional"), clock())


def test_quarantine_expires(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    summary = _offer(price=45.0, price_only=True, source="positional")
    for _ in range(3):
        dedup.is_quarantined(summary, clock.advance(1))
    assert dedup.is_quarantined(summary, clock.advance(10))
    assert not dedup.is_quarantined(summary, clock.advance(45))


def test_route_offers_never_quarantined(clock):
    dedup = OfferDeduplicator(DEFAULT_CONFIG)
    for _ in range(5):
        assert not dedup.is_quarantined(_offer(), clock.advance(1))
