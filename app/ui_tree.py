import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional, Sequence, Tuple

from models import Bounds, SemanticNode, WindowCapture
from runtime import _debug, _log
from text_utils import normalize_dashes

UI_DUMP_PATH = "/sdcard/ridewatch_ui.xml"


def _extract_xml_root(raw: str) -> str:
    """
    UIAutomator dumps sometimes include prefix text ("UI hierchary dumped to: ...").
    Strip to the <hierarchy> root.
    """
    if not raw:
        return ""
    idx = raw.find("<hierarchy")
    if idx == -1:
        return ""
    return raw[idx:]


def _dump_ui_xml(device, tmp_path: str = UI_DUMP_PATH) -> str:
    """
    Dump the UI hierarchy to a temp path on-device and return the XML string.
    Uses a single rotating file to avoid cluttering the device storage.
    """
    try:
        device.shell(f"uiautomator dump {tmp_path}")
        raw = device.shell(f"cat {tmp_path}")
        # Best-effort cleanup; a leftover file is overwritten next time.
        try:
            device.shell(f"rm {tmp_path}")
        except Exception as e:
            _debug(f"[UI] cleanup of {tmp_path} failed: {e}")
        xml = _extract_xml_root(raw)
        if not xml:
            _debug("[UI] Empty/invalid XML dump")
        return xml
    except Exception as e:
        _log(f"[UI] XML dump failed: {e}")
        return ""


def _parse_bounds(bounds: str) -> Optional[Bounds]:
    if not bounds:
        return None
    try:
        left_top, right_bottom = bounds.split("][")
        left_top = left_top.replace("[", "")
        right_bottom = right_bottom.replace("]", "")
        x1, y1 = [int(v) for v in left_top.split(",")]
        x2, y2 = [int(v) for v in right_bottom.split(",")]
        return x1, y1, x2, y2
    except ValueError:
        return None


def _materialize(root: ET.Element, package: str, max_depth: int) -> Tuple[SemanticNode, ...]:
    """
    One bounded-depth pre-order pass over a window root. The ElementTree is not
    referenced by the returned nodes and can be dropped right after.
    """
    nodes: List[SemanticNode] = []
    stack: List[Tuple[ET.Element, int]] = [(root, 0)]
    while stack:
        el, depth = stack.pop()
        attrs = el.attrib or {}
        nodes.append(SemanticNode(
            element_id=attrs.get("resource-id", "") or "",
            text=normalize_dashes(attrs.get("text", "") or ""),
            description=normalize_dashes(attrs.get("content-desc", "") or ""),
            depth=depth,
            traversal_order=len(nodes),
            package=attrs.get("package", "") or package,
            bounds=_parse_bounds(attrs.get("bounds", "")),
        ))
        if depth >= max_depth:
            continue
        # Reversed so children pop in document order.
        for child in reversed(list(el)):
            stack.append((child, depth + 1))
    return tuple(nodes)


def parse_windows(xml_text: str, max_depth: int = 20) -> List[WindowCapture]:
    """
    Split a dump into windows: every top-level <node> under <hierarchy> is a
    window root, tagged with its package.
    """
    if not xml_text:
        return []
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        _log(f"[UI] XML parse failed: {e}")
        return []
    windows: List[WindowCapture] = []
    for window_root in list(root):
        package = window_root.attrib.get("package", "") or ""
        windows.append(WindowCapture(
            package_name=package,
            nodes=_materialize(window_root, package, max_depth),
        ))
    return windows


def _screen_height(nodes: Sequence[SemanticNode]) -> int:
    return max((n.bounds[3] for n in nodes if n.bounds), default=0)


def window_text(nodes: Sequence[SemanticNode], top_filter_fraction: float = 0.15) -> str:
    """
    Newline-joined node text in traversal order. When bounds are known, nodes that
    end inside the top strip (status bar, clock, notification icons) are skipped.
    """
    height = _screen_height(nodes)
    cutoff = int(height * top_filter_fraction) if height else 0
    lines: List[str] = []
    seen = set()
    for node in sorted(nodes, key=lambda n: n.traversal_order):
        text = node.combined_text
        if not text:
            continue
        if cutoff and node.bounds and node.bounds[3] <= cutoff:
            continue
        if text in seen:
            continue
        seen.add(text)
        lines.append(text)
    return "\n".join(lines)


def keyword_search(windows: Iterable[WindowCapture], queries: Sequence[str]) -> List[SemanticNode]:
    """Nodes whose text contains any of `queries` (case-insensitive), in window/traversal order."""
    lowered = [q.lower() for q in queries if q]
    hits: List[SemanticNode] = []
    for window in windows:
        for node in window.nodes:
            text = node.combined_text.lower()
            if text and any(q in text for q in lowered):
                hits.append(node)
    return hits


class UiTreeProvider:
    """Callable windows provider backed by `uiautomator dump` over adb."""

    def __init__(self, device, max_depth: int = 20, tmp_path: str = UI_DUMP_PATH):
        self.device = device
        self.max_depth = max_depth
        self.tmp_path = tmp_path

    def __call__(self) -> List[WindowCapture]:
        return parse_windows(_dump_ui_xml(self.device, self.tmp_path), self.max_depth)
