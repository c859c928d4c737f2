"""Pytest configuration — ensures the project root is importable."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent))


@pytest.fixture(autouse=True)
def _no_tesseract_calls():
    """Keep the suite off the real Tesseract binary.

    Unpatched OCR behaves like an engine crash on every page; tests that
    need OCR output patch ``run_ocr`` themselves.
    """
    with patch("poa_validator.acquisition.run_ocr", side_effect=RuntimeError("tesseract disabled in tests")):
        yield
