"""
Tesseract adapter.

Wraps pytesseract so acquisition deals in (text, confidence) pairs rather
than Tesseract's column-oriented TSV output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import pytesseract
from PIL import Image, ImageFilter, ImageOps
from pytesseract import Output

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageOcr:
    text: str
    confidence: float  # Mean word confidence, 0-100


def preprocess_image(image: Image.Image) -> Image.Image:
    """Grayscale, stretch contrast and sharpen a scan before OCR.

    Faint photocopies and phone photos of signature pages come in with a
    narrow grey range; stretching it to full black/white and sharpening
    stroke edges lifts Tesseract's word confidence on them.
    """
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    gray = ImageOps.grayscale(image)
    return ImageOps.autocontrast(gray, cutoff=1).filter(ImageFilter.SHARPEN)


def run_ocr(
    image: Image.Image,
    language: str = "eng",
    psm: int = 3,
    timeout: float = 30.0,
) -> PageOcr:
    """OCR one page image.

    Words are regrouped into lines using Tesseract's block/paragraph/line
    numbering so the downstream anchors (which are line-based) still work.

    Raises:
        RuntimeError: Tesseract timed out (raised by pytesseract).
        pytesseract.TesseractError: Tesseract failed on this image.
    """
    data = pytesseract.image_to_data(
        preprocess_image(image),
        lang=language,
        config=f"--psm {psm}",
        output_type=Output.DICT,
        timeout=timeout,
    )

    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][i])
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return PageOcr(text=text, confidence=round(confidence, 2))
