import pytest

from detector_config import DEFAULT_CONFIG, STRICT_CONFIG
from models import AppSource, EventKind, RecognitionRequest, RideOffer, SemanticNode, WindowCapture
from monitor import Monitor, PolledWindows, SessionStats, get_config, parse_arguments

FOCUS_CMD = "dumpsys window | grep -E 'mCurrentFocus|mFocusedApp'"
NOTIFICATION_CMD = "dumpsys notification --noredact"


def _offer(price, app=AppSource.UBER):
    return RideOffer(app_source=app, price=price, ride_distance_km=8.0, ride_time_min=15)


class FakeDevice:
    def __init__(self, outputs):
        self.outputs = outputs

    def shell(self, cmd):
        return self.outputs.get(cmd, "")


class RecordingDetector:
    def __init__(self, requests=()):
        self.cfg = DEFAULT_CONFIG
        self.events = []
        self.results = []
        self.ticks = 0
        self._requests = list(requests)

    def on_event(self, event):
        self.events.append(event)

    def drain_recognition_requests(self):
        requests, self._requests = self._requests, []
        return requests

    def on_recognition_result(self, request_id, text):
        self.results.append((request_id, text))

    def tick(self):
        self.ticks += 1
        return 0


def test_session_stats_summary_and_trend(clock):
    stats = SessionStats(clock)
    stats.record_offer(_offer(20.0))
    stats.record_offer(_offer(10.0, AppSource.NINETY_NINE))
    clock.advance(20 * 60)
    stats.record_offer(_offer(30.0))
    stats.mark_accepted(AppSource.UBER)

    summary = stats.summary()
    assert summary["offers"] == {"UBER": 2, "99": 1}
    assert summary["accepted"] == {"UBER": 1}
    assert summary["offers_last_15min"] == 1
    assert summary["offers_previous_15min"] == 2
    assert summary["trend"] == "falling"
    assert summary["avg_price"] == pytest.approx(20.0)


def test_session_stats_forgets_old_offers(clock):
    stats = SessionStats(clock)
    stats.record_offer(_offer(20.0))
    clock.advance(31 * 60)
    stats.record_offer(_offer(20.0))
    summary = stats.summary()
    assert summary["offers_previous_15min"] == 0
    assert summary["trend"] == "rising"


def test_cli_presets():
    args = parse_arguments(["--config", "strict", "--interval", "1.5", "-v"])
    assert get_config(args.config) is STRICT_CONFIG
    assert args.interval == 1.5
    assert args.verbose
    assert get_config(parse_arguments([]).config) is DEFAULT_CONFIG


def test_poll_feeds_window_and_notification_events():
    device = FakeDevice({
        FOCUS_CMD: "  mCurrentFocus=Window{5c1d0e8 u0 com.ubercab.driver/com.ubercab.driver.MainActivity}",
        NOTIFICATION_CMD: (
            "  NotificationRecord(0x01: pkg=com.ubercab.driver user=UserHandle{0} id=1)\n"
            "      android.title=String (Nova viagem)\n"
            "  NotificationRecord(0x02: pkg=com.whatsapp user=UserHandle{0} id=2)\n"
            "      android.title=String (Maria)\n"
        ),
    })
    window = WindowCapture("com.ubercab.driver", (SemanticNode("", "Ficar online", "", 1, 0),))
    request = RecognitionRequest(1, "com.ubercab.driver", AppSource.UBER, "empty-tree", 0.3)
    detector = RecordingDetector(requests=[request])
    monitor = Monitor(device, detector, PolledWindows(lambda: [window]), lambda req: "R$ 12,00")

    monitor.poll_once()
    monitor.poll_once()

    kinds = [(e.kind, e.package_name) for e in detector.events]
    assert kinds == [
        (EventKind.WINDOW_STATE, "com.ubercab.driver"),
        (EventKind.NOTIFICATION, "com.ubercab.driver"),
        (EventKind.CONTENT_CHANGED, "com.ubercab.driver"),
    ]
    assert detector.events[0].window_key.startswith("com.ubercab.driver:")
    assert detector.events[1].text == "Nova viagem"
    assert detector.results == [(1, "R$ 12,00")]
    assert detector.ticks == 2
