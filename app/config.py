# app/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

# Load .env from the app directory with BOM-tolerant encoding
dotenv_path = Path(__file__).with_name(".env")
load_dotenv(dotenv_path=dotenv_path, override=True, encoding="utf-8-sig")

# Device bridge
ADB_HOST = os.getenv("ADB_HOST", "127.0.0.1")
ADB_PORT = int(os.getenv("ADB_PORT", "5037"))
DEVICE_SERIAL = os.getenv("DEVICE_SERIAL") or None

# Image recognition
TESSERACT_CMD = os.getenv("TESSERACT_CMD") or None
OCR_LANG = os.getenv("OCR_LANG", "eng")


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return default
