import os
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import cv2
import numpy as np
import pytesseract
from PIL import Image

import config
from device import capture_screen_png
from models import RecognitionRequest
from runtime import _debug, _log


@dataclass
class OCRResult:
    text: str
    conf: float


def _maybe_set_tesseract_cmd() -> None:
    """
    Point pytesseract at TESSERACT_CMD when configured, else at the default
    Windows install path if tesseract is not on PATH.
    """
    if config.TESSERACT_CMD:
        pytesseract.pytesseract.tesseract_cmd = config.TESSERACT_CMD
        return
    exe = pytesseract.pytesseract.tesseract_cmd
    if exe and os.path.isfile(exe):
        return
    candidate = r"C:\Program Files\Tesseract-OCR\tesseract.exe"
    if os.path.isfile(candidate):
        pytesseract.pytesseract.tesseract_cmd = candidate


def decode_png(data: bytes) -> Optional[np.ndarray]:
    """Screencap PNG bytes -> BGR array (None when the bytes are not an image)."""
    if not data:
        return None
    try:
        pil = Image.open(BytesIO(data)).convert("RGB")
    except (OSError, ValueError) as e:
        _log(f"[OCR] screenshot decode failed: {e}")
        return None
    return cv2.cvtColor(np.array(pil), cv2.COLOR_RGB2BGR)


def crop_from(img: np.ndarray, start_fraction: float) -> np.ndarray:
    """Keep the part of the screen below `start_fraction` of its height (offer sheets sit low)."""
    h = img.shape[0]
    y0 = int(h * max(0.0, min(0.9, start_fraction)))
    return img[y0:, :]


def _auto_scale(gray: np.ndarray) -> np.ndarray:
    """
    Upsample narrow captures so glyphs reach a size tesseract reads well.
    """
    w = gray.shape[1]
    scale = 1.0
    if w < 720:
        scale = 2.0
    elif w < 1080:
        scale = 1.5
    if abs(scale - 1.0) > 1e-3:
        new_w = max(1, int(round(gray.shape[1] * scale)))
        new_h = max(1, int(round(gray.shape[0] * scale)))
        return cv2.resize(gray, (new_w, new_h), interpolation=cv2.INTER_CUBIC)
    return gray


def _binarize(gray: np.ndarray) -> np.ndarray:
    """
    Two-stage binarization: Otsu first, fallback to adaptive if blank/low-contrast.
    Dark-mode offer cards (light text on dark) come out inverted by Otsu, so the
    result is flipped to keep dark text on a light background.
    """
    blur = cv2.GaussianBlur(gray, (3, 3), 0)
    _, otsu = cv2.threshold(blur, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    fg_ratio = float(np.count_nonzero(255 - otsu)) / max(1, otsu.size)
    if fg_ratio < 0.02 or fg_ratio > 0.98:
        return cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 31, 9
        )
    if fg_ratio > 0.5:
        otsu = cv2.bitwise_not(otsu)
    return otsu


def _morph_cleanup(bin_img: np.ndarray) -> np.ndarray:
    kernel = np.ones((2, 2), np.uint8)
    opened = cv2.morphologyEx(bin_img, cv2.MORPH_OPEN, kernel, iterations=1)
    return cv2.morphologyEx(opened, cv2.MORPH_CLOSE, kernel, iterations=1)


def preprocess_for_ocr(img: np.ndarray, black_and_white: bool = True) -> np.ndarray:
    """
    Grayscale, CLAHE, denoise and auto-scale; with `black_and_white` also
    binarize and clean up. Returns a 3-channel image for pytesseract.
    """
    gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    gray = clahe.apply(gray)
    gray = cv2.bilateralFilter(gray, d=5, sigmaColor=50, sigmaSpace=50)
    gray = _auto_scale(gray)
    if black_and_white:
        gray = _morph_cleanup(_binarize(gray))
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def _ocr_tesseract(img: np.ndarray, lang: Optional[str] = None) -> OCRResult:
    """
    Block layout first (psm 6); sparse text (psm 11) when that reads nothing.
    """
    try:
        pil = Image.fromarray(img)
        cfg = f"--oem 1 --psm 6 -l {lang or config.OCR_LANG}"
        text = pytesseract.image_to_string(pil, config=cfg) or ""
        if not text.strip():
            text = pytesseract.image_to_string(pil, config=cfg.replace("--psm 6", "--psm 11")) or ""
        conf = 0.7 if text.strip() else 0.0  # heuristic confidence
        return OCRResult(text=text.strip(), conf=conf)
    except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as e:
        _log(f"[OCR] tesseract failed: {e}")
        return OCRResult(text="", conf=0.0)


def recognize_png(data: bytes, crop_start_fraction: float = 0.0, black_and_white: bool = True) -> str:
    img = decode_png(data)
    if img is None:
        return ""
    roi = crop_from(img, crop_start_fraction)
    if roi.size == 0:
        return ""
    result = _ocr_tesseract(preprocess_for_ocr(roi, black_and_white))
    _debug(f"[OCR] {len(result.text)} chars (crop {crop_start_fraction:.2f}, bw={black_and_white})")
    return result.text


class ScreenRecognizer:
    """Runs a RecognitionRequest against a fresh adb screencap."""

    def __init__(self, device):
        self.device = device
        _maybe_set_tesseract_cmd()

    def __call__(self, request: RecognitionRequest) -> str:
        data = capture_screen_png(self.device)
        return recognize_png(data, request.crop_start_fraction, request.use_black_and_white)
