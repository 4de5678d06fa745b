import device as device_module
from device import (
    capture_screen_png,
    connect_device,
    get_screen_resolution,
    parse_focused_package,
    parse_notifications,
)

NOTIFICATIONS = """\
Current Notification Manager state:
  NotificationRecord(0x0a1b2c3d: pkg=com.ubercab.driver user=UserHandle{0} id=12 tag=null importance=4)
    uid=10123 userId=0
    extras={
      android.title=String (Nova viagem)
      android.text=String (R$ 18,50 · 7,2 km)
    }
  NotificationRecord(0x0e0f1a2b: pkg=com.whatsapp user=UserHandle{0} id=3 tag=null importance=3)
    extras={
      android.title=String (Maria)
    }
  NotificationRecord(0x0c0d: pkg=com.android.systemui user=UserHandle{0} id=1 tag=null importance=1)
    extras={
    }
"""


class FakeDevice:
    def __init__(self, serial="emulator-5554", outputs=None, screencap_error=None):
        self.serial = serial
        self.outputs = outputs or {}
        self.screencap_error = screencap_error

    def shell(self, cmd):
        return self.outputs.get(cmd, "")

    def screencap(self):
        if self.screencap_error:
            raise self.screencap_error
        return b"\x89PNG"


def test_parse_notifications():
    assert parse_notifications(NOTIFICATIONS) == [
        ("com.ubercab.driver", "Nova viagem\nR$ 18,50 · 7,2 km"),
        ("com.whatsapp", "Maria"),
    ]
    assert parse_notifications("") == []


def test_parse_focused_package():
    out = "  mCurrentFocus=Window{5c1d0e8 u0 com.ubercab.driver/com.ubercab.driver.MainActivity}"
    assert parse_focused_package(out) == "com.ubercab.driver"
    out = "  mFocusedApp=ActivityRecord{3b1 u0 com.app99.driver/.MainActivity t12}"
    assert parse_focused_package(out) == "com.app99.driver"
    assert parse_focused_package("") == ""


def test_screen_resolution():
    dev = FakeDevice(outputs={"wm size": "Physical size: 1080x2400\n"})
    assert get_screen_resolution(dev) == (1080, 2400)


def test_screencap_failure_returns_empty():
    assert capture_screen_png(FakeDevice()) == b"\x89PNG"
    assert capture_screen_png(FakeDevice(screencap_error=RuntimeError("closed"))) == b""


def test_connect_device_picks_serial(monkeypatch):
    devices = [FakeDevice("emulator-5554"), FakeDevice("R58M123")]

    class FakeClient:
        def __init__(self, host, port):
            self.host, self.port = host, port

        def devices(self):
            return devices

    monkeypatch.setattr(device_module, "AdbClient", FakeClient)
    monkeypatch.setattr(device_module.config, "DEVICE_SERIAL", None)
    assert connect_device() is devices[0]
    assert connect_device(serial="R58M123") is devices[1]
    assert connect_device(serial="missing") is None


def test_connect_device_without_devices(monkeypatch):
    class EmptyClient:
        def __init__(self, host, port):
            pass

        def devices(self):
            return []

    monkeypatch.setattr(device_module, "AdbClient", EmptyClient)
    assert connect_device() is None
