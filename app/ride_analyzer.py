# app/ride_analyzer.py
"""
Ride economics: turn a validated offer into a 0-100 score and a recommendation.

Weights: 40% price per km against the (time-of-day adjusted) reference,
30% earnings per hour against the driver's minimum, 20% pickup distance
curve, 10% flat time-of-day bonus. Exceeding the driver's pickup or ride
distance caps penalizes the score and always yields NOT_WORTH_IT.
"""

from datetime import datetime
from typing import List, Optional

from detector_config import DriverPreferences
from models import Recommendation, RideAnalysis, RideOffer
from runtime import _log

PRICE_WEIGHT = 0.4
EARNINGS_WEIGHT = 0.3
PICKUP_WEIGHT = 0.2
TIME_WEIGHT = 0.1

PICKUP_CAP_PENALTY = 0.6
RIDE_CAP_PENALTY = 0.7

WORTH_IT_THRESHOLD = 60
NEUTRAL_THRESHOLD = 40

LIMITED_DATA_REASON = "Limited data: the app did not expose price/distance for this offer"


def _is_morning_rush(hour: int) -> bool:
    return 7 <= hour <= 9


def _is_evening_rush(hour: int) -> bool:
    return 17 <= hour <= 20


def _is_night(hour: int) -> bool:
    return hour >= 22 or hour <= 5


def time_of_day_factor(hour: int) -> float:
    """Multiplier on the reference price/km: drivers expect more at peak hours."""
    if _is_morning_rush(hour):
        return 1.2
    if _is_evening_rush(hour):
        return 1.3
    if _is_night(hour):
        return 1.15
    return 1.0


def time_bonus(hour: int) -> float:
    if _is_evening_rush(hour):
        return 90.0
    if _is_morning_rush(hour):
        return 80.0
    if _is_night(hour):
        return 70.0
    if 11 <= hour <= 13:
        return 60.0
    return 40.0


def pickup_score(pickup_km: float) -> float:
    if pickup_km <= 1.0:
        return 100.0
    if pickup_km <= 2.0:
        return 80.0
    if pickup_km <= 3.0:
        return 60.0
    if pickup_km <= 5.0:
        return 40.0
    if pickup_km <= 8.0:
        return 20.0
    return 5.0


def _ratio_score(value: float, reference: float) -> float:
    if reference <= 0:
        return 50.0
    return max(0.0, value / reference * 50.0)


def _pickup_km(offer: RideOffer, pickup_distance_km: Optional[float]) -> float:
    if pickup_distance_km is not None:
        return pickup_distance_km
    return offer.pickup_distance_km if offer.pickup_distance_km is not None else 0.0


def analyze(
    offer: RideOffer,
    pickup_distance_km: Optional[float] = None,
    prefs: Optional[DriverPreferences] = None,
    hour: Optional[int] = None,
) -> RideAnalysis:
    """
    An explicit `pickup_distance_km` (e.g. a GPS-based estimate from the caller)
    takes precedence over the pickup leg read from the offer.
    """
    prefs = prefs or DriverPreferences()
    hour = datetime.now().hour if hour is None else hour

    pickup_km = _pickup_km(offer, pickup_distance_km)

    total_km = max(0.1, offer.ride_distance_km + pickup_km)
    price_per_km = offer.price / total_km

    if offer.pickup_time_min is not None:
        pickup_min = float(offer.pickup_time_min)
    else:
        pickup_min = pickup_km / prefs.urban_speed_kmh * 60.0
    total_min = offer.ride_time_min + pickup_min
    earnings_per_hour = offer.price / total_min * 60.0 if total_min > 0 else 0.0

    reference = prefs.min_price_per_km * time_of_day_factor(hour)

    raw = (
        PRICE_WEIGHT * _ratio_score(price_per_km, reference)
        + EARNINGS_WEIGHT * _ratio_score(earnings_per_hour, prefs.min_earnings_per_hour)
        + PICKUP_WEIGHT * pickup_score(pickup_km)
        + TIME_WEIGHT * time_bonus(hour)
    )

    exceeds_pickup = pickup_km > prefs.max_pickup_distance_km
    exceeds_ride = offer.ride_distance_km > prefs.max_ride_distance_km
    if exceeds_pickup:
        raw *= PICKUP_CAP_PENALTY
    if exceeds_ride:
        raw *= RIDE_CAP_PENALTY
    score = int(max(0.0, min(100.0, raw)))

    if exceeds_pickup or exceeds_ride:
        recommendation = Recommendation.NOT_WORTH_IT
    elif score >= WORTH_IT_THRESHOLD:
        recommendation = Recommendation.WORTH_IT
    elif score >= NEUTRAL_THRESHOLD:
        recommendation = Recommendation.NEUTRAL
    else:
        recommendation = Recommendation.NOT_WORTH_IT

    reasons = _build_reasons(
        price_per_km, earnings_per_hour, pickup_km, reference, hour, prefs,
        exceeds_pickup, exceeds_ride,
    )
    fuel = prefs.fuel_cost_per_km
    analysis = RideAnalysis(
        offer=offer,
        score=score,
        recommendation=recommendation,
        reasons=tuple(reasons),
        price_per_km=round(price_per_km, 2),
        earnings_per_hour=round(earnings_per_hour, 2),
        total_distance_km=round(total_km, 2),
        total_time_min=round(total_min, 1),
        pickup_distance_km=pickup_km,
        reference_price_per_km=round(reference, 2),
        fuel_cost_per_km=round(fuel, 2),
        net_price_per_km=round(price_per_km - fuel, 2),
    )
    _log(
        f"[ANALYZE] {offer.app_source.value} R$ {offer.price:.2f} -> {score} "
        f"{recommendation.value} ({price_per_km:.2f}/km, {earnings_per_hour:.1f}/h)"
    )
    return analysis


def _build_reasons(
    price_per_km: float,
    earnings_per_hour: float,
    pickup_km: float,
    reference: float,
    hour: int,
    prefs: DriverPreferences,
    exceeds_pickup: bool,
    exceeds_ride: bool,
) -> List[str]:
    reasons: List[str] = []
    if exceeds_pickup:
        reasons.append(f"Pickup exceeds your limit ({prefs.max_pickup_distance_km:.1f} km)")
    if exceeds_ride:
        reasons.append(f"Ride exceeds your maximum distance ({prefs.max_ride_distance_km:.0f} km)")

    if price_per_km >= reference * 1.2:
        reasons.append("Price per km above reference")
    elif price_per_km < reference * 0.8:
        reasons.append("Price per km below reference")

    if earnings_per_hour >= prefs.min_earnings_per_hour * 1.3:
        reasons.append("Good earnings per hour")
    elif earnings_per_hour < prefs.min_earnings_per_hour * 0.7:
        reasons.append("Low earnings per hour")

    if pickup_km > prefs.max_pickup_distance_km:
        reasons.append(f"Pickup too far ({pickup_km:.1f} km)")
    elif pickup_km <= 1.5:
        reasons.append("Pickup nearby")

    if _is_morning_rush(hour) or _is_evening_rush(hour):
        reasons.append("Peak hour")
    elif _is_night(hour):
        reasons.append("Night hours")

    if not reasons:
        reasons.append("Ride within the usual range")
    return reasons


def limited_data_analysis(offer: RideOffer, pickup_distance_km: Optional[float] = None,
                          prefs: Optional[DriverPreferences] = None) -> RideAnalysis:
    """Neutral placeholder for offers whose real numbers were not readable."""
    prefs = prefs or DriverPreferences()
    pickup_km = _pickup_km(offer, pickup_distance_km)
    return RideAnalysis(
        offer=offer,
        score=50,
        recommendation=Recommendation.NEUTRAL,
        reasons=(LIMITED_DATA_REASON,),
        price_per_km=0.0,
        earnings_per_hour=0.0,
        total_distance_km=round(offer.ride_distance_km + pickup_km, 2),
        total_time_min=float(offer.ride_time_min),
        pickup_distance_km=pickup_km,
        reference_price_per_km=prefs.min_price_per_km,
        fuel_cost_per_km=round(prefs.fuel_cost_per_km, 2),
    )


def analyze_offer(offer: RideOffer, pickup_distance_km: Optional[float] = None,
                  prefs: Optional[DriverPreferences] = None, hour: Optional[int] = None) -> RideAnalysis:
    if offer.limited_data:
        return limited_data_analysis(offer, pickup_distance_km, prefs)
    return analyze(offer, pickup_distance_km, prefs, hour)
