# app/device.py
# adb access for the monitor: connection, focused window, screencap, notifications.

import re
from typing import List, Optional, Tuple

from ppadb.client import Client as AdbClient

import config
from runtime import _log

_FOCUS_RE = re.compile(r"mCurrentFocus=Window\{[^}]*?\s([\w.]+)/")
_FOCUS_APP_RE = re.compile(r"mFocusedApp=.*?\s([\w.]+)/")
_RECORD_PKG_RE = re.compile(r"NotificationRecord\(.*?pkg=([\w.]+)")
_EXTRA_RE = re.compile(r"android\.(title|text|bigText|subText)=\w+ \((.*)\)\s*$")


def connect_device(host: Optional[str] = None, port: Optional[int] = None, serial: Optional[str] = None):
    adb = AdbClient(host=host or config.ADB_HOST, port=port or config.ADB_PORT)
    devices = adb.devices()
    _log(f"[MONITOR] Devices connected: {[d.serial for d in devices]}")
    if len(devices) == 0:
        _log("[MONITOR] No devices connected")
        return None
    serial = serial or config.DEVICE_SERIAL
    if serial:
        device = next((d for d in devices if d.serial == serial), None)
        if device is None:
            _log(f"[MONITOR] Device {serial} not found")
            return None
    else:
        device = devices[0]
    _log(f"[MONITOR] Connected to {device.serial}")
    return device


def get_screen_resolution(device) -> Tuple[int, int]:
    output = device.shell("wm size")
    resolution = output.strip().splitlines()[-1].split(":")[1].strip()
    width, height = map(int, resolution.split("x"))
    return width, height


def parse_focused_package(dumpsys_output: str) -> str:
    m = _FOCUS_RE.search(dumpsys_output or "") or _FOCUS_APP_RE.search(dumpsys_output or "")
    return m.group(1) if m else ""


def focused_package(device) -> str:
    try:
        out = device.shell("dumpsys window | grep -E 'mCurrentFocus|mFocusedApp'")
    except Exception as e:
        _log(f"[MONITOR] focused window query failed: {e}")
        return ""
    return parse_focused_package(out)


def capture_screen_png(device) -> bytes:
    try:
        return device.screencap() or b""
    except Exception as e:
        _log(f"[OCR] screencap failed: {e}")
        return b""


def parse_notifications(dumpsys_output: str) -> List[Tuple[str, str]]:
    """
    `dumpsys notification --noredact` -> [(package, "title\\ntext...")], one entry
    per notification record that carries any text extras.
    """
    records: List[Tuple[str, List[str]]] = []
    for line in (dumpsys_output or "").splitlines():
        m = _RECORD_PKG_RE.search(line)
        if m:
            records.append((m.group(1), []))
            continue
        if not records:
            continue
        extra = _EXTRA_RE.search(line.strip())
        if extra and extra.group(2).strip():
            value = extra.group(2).strip()
            if value not in records[-1][1]:
                records[-1][1].append(value)
    return [(pkg, "\n".join(parts)) for pkg, parts in records if parts]


def dump_notifications(device) -> List[Tuple[str, str]]:
    try:
        out = device.shell("dumpsys notification --noredact")
    except Exception as e:
        _log(f"[MONITOR] notification dump failed: {e}")
        return []
    return parse_notifications(out)
