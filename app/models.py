# app/models.py
# Value types shared by the detection pipeline.

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class AppSource(str, Enum):
    UBER = "UBER"
    NINETY_NINE = "99"
    UNKNOWN = "UNKNOWN"


class SnapshotChannel(str, Enum):
    NODE_TREE = "node_tree"
    NOTIFICATION = "notification"
    IMAGE_RECOGNITION = "image_recognition"
    KEYWORD_SEARCH = "keyword_search"
    EVENT_FALLBACK = "event_fallback"


class EventKind(str, Enum):
    WINDOW_STATE = "window_state"
    CONTENT_CHANGED = "content_changed"
    NOTIFICATION = "notification"
    CLICK = "click"


class Recommendation(str, Enum):
    WORTH_IT = "WORTH_IT"
    NEUTRAL = "NEUTRAL"
    NOT_WORTH_IT = "NOT_WORTH_IT"

    @property
    def label(self) -> str:
        # Text rendered on the result card; also used by the self-detection guard.
        return {
            Recommendation.WORTH_IT: "COMPENSA",
            Recommendation.NEUTRAL: "NEUTRO",
            Recommendation.NOT_WORTH_IT: "NÃO COMPENSA",
        }[self]


class TrackingPhase(str, Enum):
    IDLE = "idle"
    OFFER_PENDING = "offer_pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class DetectionStatus(str, Enum):
    SCHEDULED = "scheduled"
    DROPPED = "dropped"
    NO_SIGNAL = "no_signal"
    RECOGNITION_REQUESTED = "recognition_requested"
    ACCEPTED = "accepted"
    IGNORED = "ignored"


Bounds = Tuple[int, int, int, int]


@dataclass(frozen=True)
class SemanticNode:
    element_id: str
    text: str
    description: str
    depth: int
    traversal_order: int
    package: str = ""
    bounds: Optional[Bounds] = None

    @property
    def id_suffix(self) -> str:
        # "com.ubercab.driver:id/fare_amount" -> "fare_amount"
        return self.element_id.rsplit("/", 1)[-1].lower() if self.element_id else ""

    @property
    def combined_text(self) -> str:
        text = (self.text or "").strip()
        desc = (self.description or "").strip()
        if desc and desc != text:
            return f"{text} {desc}".strip()
        return text


@dataclass(frozen=True)
class WindowCapture:
    """One visible window materialized as a node arena."""
    package_name: str
    nodes: Tuple[SemanticNode, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not any(n.combined_text for n in self.nodes)


@dataclass(frozen=True)
class ScreenSnapshot:
    raw_text: str
    source_channel: SnapshotChannel
    origin_app_hint: str = ""
    nodes: Tuple[SemanticNode, ...] = ()


@dataclass(frozen=True)
class UiEvent:
    kind: EventKind
    package_name: str
    text: str = ""
    window_key: str = ""  # identifies the window state for in-flight recognition dedup


@dataclass
class ExtractionCandidate:
    price: Optional[float] = None
    ride_distance_km: Optional[float] = None
    ride_time_min: Optional[int] = None
    pickup_distance_km: Optional[float] = None
    pickup_time_min: Optional[int] = None
    user_rating: Optional[float] = None
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    source: str = ""
    score: int = 0
    position: int = -1

    @property
    def has_route(self) -> bool:
        return self.ride_distance_km is not None or self.ride_time_min is not None


@dataclass(frozen=True)
class RideOffer:
    app_source: AppSource
    price: float
    ride_distance_km: float
    ride_time_min: int
    pickup_distance_km: Optional[float] = None
    pickup_time_min: Optional[int] = None
    user_rating: Optional[float] = None
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    extraction_source: str = "unknown"
    raw_text_sample: str = ""
    package_name: str = ""
    distance_estimated: bool = False
    time_estimated: bool = False
    limited_data: bool = False
    detected_at: float = 0.0

    def __post_init__(self):
        if not self.price or self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price!r}")
        if self.ride_distance_km is None or self.ride_distance_km <= 0:
            raise ValueError("ride distance must be present and positive")
        if self.ride_time_min is None or self.ride_time_min <= 0:
            raise ValueError("ride time must be present and positive")

    @property
    def is_price_only(self) -> bool:
        return self.distance_estimated and self.time_estimated


@dataclass(frozen=True)
class RideAnalysis:
    offer: RideOffer
    score: int
    recommendation: Recommendation
    reasons: Tuple[str, ...]
    price_per_km: float
    earnings_per_hour: float
    total_distance_km: float
    total_time_min: float
    pickup_distance_km: float
    reference_price_per_km: float
    fuel_cost_per_km: float = 0.0
    net_price_per_km: float = 0.0


@dataclass
class OfferTrackingState:
    active_app_source: Optional[AppSource] = None
    offer_timestamp: float = 0.0
    accepted: bool = False

    @property
    def is_active(self) -> bool:
        return self.active_app_source is not None


@dataclass(frozen=True)
class DetectionResult:
    status: DetectionStatus
    reason: str = ""
    offer: Optional[RideOffer] = None
    app_source: Optional[AppSource] = None


@dataclass(frozen=True)
class RecognitionRequest:
    request_id: int
    package_name: str
    app_source: AppSource
    trigger: str
    crop_start_fraction: float
    window_key: str = ""
    use_black_and_white: bool = True
    requested_at: float = field(default=0.0, compare=False)
