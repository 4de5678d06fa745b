from io import BytesIO

import cv2
import numpy as np
import pytest
from PIL import Image

import screen_ocr
from models import AppSource, RecognitionRequest
from screen_ocr import ScreenRecognizer, crop_from, decode_png, preprocess_for_ocr, recognize_png


def _card(width=540, height=960, dark=False):
    bg, fg = (30, 30, 30), (240, 240, 240)
    if not dark:
        bg, fg = fg, bg
    img = np.full((height, width, 3), bg, dtype=np.uint8)
    cv2.putText(img, "R$ 18,50", (20, height - 200), cv2.FONT_HERSHEY_SIMPLEX, 1.5, fg, 3, cv2.LINE_AA)
    cv2.putText(img, "12 min (7,2 km)", (20, height - 120), cv2.FONT_HERSHEY_SIMPLEX, 1.0, fg, 2, cv2.LINE_AA)
    return img


def _png(img):
    buf = BytesIO()
    Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB)).save(buf, format="PNG")
    return buf.getvalue()


def test_decode_png_round_trips_to_bgr():
    img = _card()
    decoded = decode_png(_png(img))
    assert decoded.shape == img.shape
    assert decode_png(b"") is None
    assert decode_png(b"not a png") is None


def test_crop_keeps_lower_part():
    img = _card(height=1000)
    assert crop_from(img, 0.3).shape[0] == 700
    assert crop_from(img, 0.0).shape[0] == 1000


@pytest.mark.parametrize("dark", [False, True])
def test_preprocess_scales_and_keeps_dark_text_on_light(dark):
    out = preprocess_for_ocr(_card(dark=dark))
    # 540 px wide captures are upsampled 2x
    assert out.shape[:2] == (1920, 1080)
    assert set(np.unique(out)) <= {0, 255}
    # background dominates, so most pixels are white after binarization
    assert np.count_nonzero(out[:, :, 0]) / out[:, :, 0].size > 0.5


def test_grayscale_mode_skips_binarization():
    out = preprocess_for_ocr(_card(width=1200, height=800), black_and_white=False)
    assert out.shape[:2] == (800, 1200)


def test_recognize_png_empty_bytes():
    assert recognize_png(b"") == ""


def test_recognizer_uses_crop_from_request(monkeypatch):
    calls = {}

    def fake_ocr(img, lang=None):
        calls["height"] = img.shape[0]
        return screen_ocr.OCRResult(text="R$ 18,50", conf=0.7)

    class FakeDevice:
        def screencap(self):
            return _png(_card(width=1080, height=1000))

    monkeypatch.setattr(screen_ocr, "_ocr_tesseract", fake_ocr)
    monkeypatch.setattr(screen_ocr, "_maybe_set_tesseract_cmd", lambda: None)
    request = RecognitionRequest(7, "com.ubercab.driver", AppSource.UBER, "empty-tree", 0.3)

    assert ScreenRecognizer(FakeDevice())(request) == "R$ 18,50"
    assert calls["height"] == 700
