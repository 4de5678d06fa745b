# app/detector_config.py

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from config import env_float


@dataclass
class DetectorConfig:
    """Tunable thresholds for offer detection, dedup and acceptance tracking"""

    # Own package (events/windows from it are never analysed)
    own_package: str = "com.ridewatch.app"

    # Price sanity
    min_ride_price: float = 3.0
    suspicious_price_floor: float = 100.0     # prices at/above this are checked for a lost decimal separator
    suspicious_price_per_km: float = 60.0     # price/km above this means the scale is wrong

    # Event cooldowns (seconds, per package and event kind)
    notification_cooldown_s: float = 1.0
    window_state_cooldown_s: float = 1.0
    content_change_cooldown_s: float = 0.8

    # Debounce / dedup
    debounce_delay_s: float = 0.25
    duplicate_suppression_window_s: float = 4.5
    offer_fingerprint_window_s: float = 90.0
    offer_fingerprint_max_entries: int = 200

    # Price-only quarantine (earnings summaries repeat one price with no route data)
    price_only_max_repeats: int = 2
    price_only_window_s: float = 60.0
    price_only_hold_s: float = 45.0

    # Candidate gates
    likely_offer_min_confidence_state: int = 3
    likely_offer_min_confidence_content: int = 4
    positional_min_score: int = 3
    labeled_min_confidence: int = 3
    route_pair_min_confidence: int = 4
    structural_noise_min_ids: int = 3

    # Image recognition cooldown
    ocr_min_interval_s: float = 1.2
    ocr_empty_tree_interval_s: float = 0.7
    ocr_backoff_factor: float = 2.0
    ocr_backoff_max_s: float = 10.0
    ocr_in_flight_timeout_s: float = 6.0
    ocr_crop_start_fraction: float = 0.3
    ocr_crop_start_fraction_ninety_nine: float = 0.0

    # UI tree traversal
    max_node_depth: int = 20
    max_semantic_depth: int = 15
    top_screen_filter_fraction: float = 0.15  # status-bar strip ignored when bounds are known

    # Acceptance tracking
    acceptance_window_s: float = 30.0
    trip_mode_max_s: float = 2 * 60 * 60

    # Delivery to the presentation layer
    delivery_retry_delays_s: Tuple[float, ...] = (2.0, 3.0)

    # Estimation when route data is missing
    estimate_price_per_km: float = 1.50
    estimate_min_km: float = 1.0
    estimate_max_km: float = 50.0
    estimate_min_per_km: float = 3.0
    estimate_min_minutes: int = 5

    raw_text_sample_chars: int = 500

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'DetectorConfig':
        """Create config from dictionary"""
        return cls(**config_dict)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class DriverPreferences:
    """Driver economics: reference minimums and hard caps"""

    min_price_per_km: float = 1.50
    min_earnings_per_hour: float = 20.0
    max_pickup_distance_km: float = 5.0
    max_ride_distance_km: float = 50.0
    fuel_price: float = 6.00
    km_per_liter: float = 10.0
    urban_speed_kmh: float = 30.0  # pickup time estimate when the app shows none

    def __post_init__(self):
        self.min_price_per_km = _clamp(self.min_price_per_km, 0.5, 5.0)
        self.min_earnings_per_hour = _clamp(self.min_earnings_per_hour, 5.0, 100.0)
        self.max_pickup_distance_km = _clamp(self.max_pickup_distance_km, 0.5, 20.0)
        self.max_ride_distance_km = _clamp(self.max_ride_distance_km, 1.0, 100.0)

    @property
    def fuel_cost_per_km(self) -> float:
        if self.km_per_liter <= 0:
            return 0.0
        return self.fuel_price / self.km_per_liter

    @classmethod
    def from_env(cls) -> 'DriverPreferences':
        return cls(
            min_price_per_km=env_float("RIDEWATCH_MIN_PRICE_PER_KM", 1.50),
            min_earnings_per_hour=env_float("RIDEWATCH_MIN_EARNINGS_PER_HOUR", 20.0),
            max_pickup_distance_km=env_float("RIDEWATCH_MAX_PICKUP_KM", 5.0),
            max_ride_distance_km=env_float("RIDEWATCH_MAX_RIDE_KM", 50.0),
            fuel_price=env_float("RIDEWATCH_FUEL_PRICE", 6.00),
            km_per_liter=env_float("RIDEWATCH_KM_PER_LITER", 10.0),
        )


# Default configuration (permissive thresholds)
DEFAULT_CONFIG = DetectorConfig()

# Stricter configuration (shorter suppression, higher candidate bar)
STRICT_CONFIG = DetectorConfig(
    duplicate_suppression_window_s=2.5,
    positional_min_score=4,
    likely_offer_min_confidence_state=4,
    likely_offer_min_confidence_content=5,
    ocr_min_interval_s=2.0,
)
