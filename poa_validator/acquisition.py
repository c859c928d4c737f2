"""
Text Acquisition: uploaded bytes → ExtractionResult.

Text-native PDF pages are read directly with pdfplumber. Pages with too
little embedded text (scanned cover sheets, signature pages) and raster
images go through Tesseract. OCR pages run on a small thread pool and are
merged back in page order.

Every failure that leaves us with no text at all is raised as
UnreadableFileError; a single bad page in an otherwise readable document is
recorded on the page and the rest carries on.
"""

from __future__ import annotations

import io
import logging
import tempfile
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Optional

import pdfplumber
from pdf2image import convert_from_bytes
from PIL import Image, ImageSequence

from .config import ValidationConfig
from .exceptions import UnreadableFileError, ValidationCancelled
from .models import ExtractionResult, PageExtraction, PageMethod
from .ocr import run_ocr

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = frozenset({"application/pdf", "application/x-pdf"})
IMAGE_MIME_TYPES = frozenset({
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/tiff",
    "image/bmp",
    "image/gif",
    "image/webp",
})
TEXT_MIME_TYPES = frozenset({"text/plain"})

DIRECT_CONFIDENCE = 100.0
_LETTER_WIDTH_INCHES = 8.5  # Used to estimate DPI when the image carries none
_MAX_UPSCALE = 4.0
_CANCEL_POLL_SECONDS = 0.1

PageJob = Callable[[], PageExtraction]


def acquire(
    data: bytes,
    mime_type: str,
    config: Optional[ValidationConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ExtractionResult:
    """Extract text from an uploaded document.

    Args:
        data: Raw file bytes.
        mime_type: Declared content type (parameters such as charset are ignored).
        config: Resolution, OCR and threading options.
        cancel_event: Once set, outstanding OCR work is abandoned.

    Returns:
        ExtractionResult with per-page detail and a weighted confidence.

    Raises:
        UnreadableFileError: Nothing usable could be extracted.
        ValidationCancelled: ``cancel_event`` was set mid-run.
    """
    config = config or ValidationConfig()
    mime = (mime_type or "").split(";", 1)[0].strip().lower()

    if not data:
        raise UnreadableFileError("Upload is empty", details={"mime_type": mime})

    try:
        if mime in PDF_MIME_TYPES:
            pages = _acquire_pdf(data, config, cancel_event)
        elif mime in IMAGE_MIME_TYPES:
            pages = _acquire_image(data, config, cancel_event)
        elif mime in TEXT_MIME_TYPES:
            pages = [_acquire_text(data)]
        else:
            raise UnreadableFileError(
                f"Unsupported document type: {mime_type!r}",
                details={"mime_type": mime},
            )
    except (UnreadableFileError, ValidationCancelled):
        raise
    except Exception as exc:
        logger.error("Failed to read %s document: %s", mime, exc)
        raise UnreadableFileError(
            f"Could not read document as {mime}: {exc}",
            details={"mime_type": mime, "error": type(exc).__name__},
        ) from exc

    return _merge_pages(pages)


# ─── PDF ─────────────────────────────────────────────────────────────


def _read_pdf_pages(data: bytes) -> list[str]:
    """Embedded text of each page, in order. Raises on a corrupt PDF."""
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return [page.extract_text() or "" for page in pdf.pages]


def _rasterize_pdf_page(data: bytes, page_number: int, dpi: int, output_folder: str) -> Image.Image:
    """Render one PDF page (1-based) to an image stored under ``output_folder``."""
    paths = convert_from_bytes(
        data,
        dpi=dpi,
        first_page=page_number,
        last_page=page_number,
        output_folder=output_folder,
        fmt="png",
        paths_only=True,
    )
    if not paths:
        raise UnreadableFileError(f"Page {page_number} could not be rasterized")
    with Image.open(paths[0]) as image:
        image.load()
        return image.copy()


def _acquire_pdf(
    data: bytes,
    config: ValidationConfig,
    cancel_event: Optional[threading.Event],
) -> list[PageExtraction]:
    page_texts = _read_pdf_pages(data)
    if not page_texts:
        raise UnreadableFileError("PDF contains no pages")

    pages: dict[int, PageExtraction] = {}
    needs_ocr: list[tuple[int, str]] = []
    for number, text in enumerate(page_texts, start=1):
        page = PageExtraction(
            page_number=number,
            text=text,
            confidence=DIRECT_CONFIDENCE,
            method=PageMethod.DIRECT,
        )
        if page.char_count < config.min_chars_per_page:
            needs_ocr.append((number, text))
        else:
            pages[number] = page

    logger.info(
        "PDF has %d page(s): %d with embedded text, %d need OCR",
        len(page_texts),
        len(pages),
        len(needs_ocr),
    )

    if needs_ocr:
        # Rasterized pages live only as long as this block, whatever happens in OCR
        with tempfile.TemporaryDirectory(prefix="poa-ocr-") as workdir:
            jobs = [
                partial(_ocr_pdf_page, data, number, text, workdir, config, cancel_event)
                for number, text in needs_ocr
            ]
            for page in _run_page_jobs(jobs, config.ocr_workers, cancel_event):
                pages[page.page_number] = page

    return [pages[n] for n in sorted(pages)]


def _ocr_pdf_page(
    data: bytes,
    page_number: int,
    direct_text: str,
    output_folder: str,
    config: ValidationConfig,
    cancel_event: Optional[threading.Event],
) -> PageExtraction:
    _check_cancelled(cancel_event)
    try:
        image = _rasterize_pdf_page(data, page_number, config.ocr_dpi, output_folder)
        result = run_ocr(
            image,
            language=config.ocr_language,
            psm=config.ocr_psm,
            timeout=config.ocr_page_timeout,
        )
    except Exception as exc:
        logger.warning("OCR failed on PDF page %d: %s", page_number, exc)
        return PageExtraction(
            page_number=page_number,
            text=direct_text,
            confidence=0.0,
            method=PageMethod.FAILED,
        )
    return PageExtraction(
        page_number=page_number,
        text=result.text,
        confidence=result.confidence,
        method=PageMethod.OCR,
    )


# ─── Images ──────────────────────────────────────────────────────────


def _acquire_image(
    data: bytes,
    config: ValidationConfig,
    cancel_event: Optional[threading.Event],
) -> list[PageExtraction]:
    with Image.open(io.BytesIO(data)) as image:
        frames = [frame.copy() for frame in ImageSequence.Iterator(image)]
    if not frames:
        raise UnreadableFileError("Image contains no frames")

    logger.info("Image has %d frame(s), running OCR", len(frames))
    jobs = [
        partial(_ocr_image_frame, frame, number, config, cancel_event)
        for number, frame in enumerate(frames, start=1)
    ]
    return _run_page_jobs(jobs, config.ocr_workers, cancel_event)


def _effective_dpi(image: Image.Image) -> float:
    """DPI from the file metadata, else estimated assuming a letter-width page."""
    dpi = image.info.get("dpi")
    if dpi:
        try:
            value = min(float(dpi[0]), float(dpi[1]))
        except (TypeError, ValueError, IndexError):
            value = 0.0
        if value > 1:
            return value
    return image.width / _LETTER_WIDTH_INCHES


def _upscale(image: Image.Image, dpi: float, target_dpi: int) -> Image.Image:
    if dpi >= target_dpi or dpi <= 0:
        return image
    scale = min(target_dpi / dpi, _MAX_UPSCALE)
    size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
    return image.resize(size, Image.Resampling.LANCZOS)


def _ocr_image_frame(
    frame: Image.Image,
    page_number: int,
    config: ValidationConfig,
    cancel_event: Optional[threading.Event],
) -> PageExtraction:
    _check_cancelled(cancel_event)
    dpi = _effective_dpi(frame)
    low_resolution = dpi < config.min_image_dpi
    if low_resolution:
        logger.warning(
            "Page %d is %.0f DPI (minimum %d); confidence will be reduced",
            page_number,
            dpi,
            config.min_image_dpi,
        )

    try:
        result = run_ocr(
            _upscale(frame, dpi, config.ocr_dpi),
            language=config.ocr_language,
            psm=config.ocr_psm,
            timeout=config.ocr_page_timeout,
        )
    except Exception as exc:
        logger.warning("OCR failed on image page %d: %s", page_number, exc)
        return PageExtraction(
            page_number=page_number,
            confidence=0.0,
            method=PageMethod.FAILED,
            low_resolution=low_resolution,
        )

    confidence = result.confidence
    if low_resolution:
        confidence = round(confidence * config.low_resolution_penalty, 2)
    return PageExtraction(
        page_number=page_number,
        text=result.text,
        confidence=confidence,
        method=PageMethod.OCR,
        low_resolution=low_resolution,
    )


# ─── Plain Text ──────────────────────────────────────────────────────


def _acquire_text(data: bytes) -> PageExtraction:
    return PageExtraction(
        page_number=1,
        text=data.decode("utf-8-sig"),
        confidence=DIRECT_CONFIDENCE,
        method=PageMethod.DIRECT,
    )


# ─── Page Scheduling ─────────────────────────────────────────────────


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ValidationCancelled()


def _run_page_jobs(
    jobs: list[PageJob],
    workers: int,
    cancel_event: Optional[threading.Event],
) -> list[PageExtraction]:
    """Run page jobs concurrently; results come back in submission order.

    On cancellation, queued jobs are dropped and running ones are waited
    for, so callers holding temporary files can clean up safely afterwards.
    """
    if not jobs:
        return []

    results: dict[int, PageExtraction] = {}
    executor = ThreadPoolExecutor(max_workers=min(workers, len(jobs)), thread_name_prefix="poa-ocr")
    try:
        futures: dict[Future[PageExtraction], int] = {
            executor.submit(job): index for index, job in enumerate(jobs)
        }
        pending = set(futures)
        while pending:
            _check_cancelled(cancel_event)
            done, pending = wait(pending, timeout=_CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                results[futures[future]] = future.result()
    except ValidationCancelled:
        logger.info("Validation cancelled; abandoning %d OCR page(s)", len(jobs) - len(results))
        raise
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    return [results[i] for i in range(len(jobs))]


# ─── Merge ───────────────────────────────────────────────────────────


def _merge_pages(pages: list[PageExtraction]) -> ExtractionResult:
    """Join pages in order and compute the character-weighted confidence."""
    if not pages:
        raise UnreadableFileError("No pages could be recovered")

    if all(p.method == PageMethod.FAILED and p.char_count == 0 for p in pages):
        raise UnreadableFileError(
            "OCR failed on every page",
            details={"pages": len(pages)},
        )

    total_chars = sum(p.char_count for p in pages)
    if not total_chars:
        raise UnreadableFileError(
            "No text could be extracted from the document",
            details={"pages": len(pages)},
        )
    confidence = sum(p.confidence * p.char_count for p in pages) / total_chars

    result = ExtractionResult(
        text="\n".join(p.text for p in pages if p.text.strip()),
        pages=pages,
        confidence=round(confidence, 2),
        used_ocr=any(p.method != PageMethod.DIRECT for p in pages),
    )
    logger.info(
        "Extracted %d character(s) from %d page(s), confidence %.1f (OCR: %s)",
        total_chars,
        len(pages),
        result.confidence,
        result.used_ocr,
    )
    return result
