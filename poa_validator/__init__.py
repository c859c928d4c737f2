"""
POA Validator — compliance checks for cremation Power-of-Attorney documents.

Architecture: Text acquisition (PDF text / OCR) → Anchored field parsing → Rule engine → Verdict
Philosophy:  Reason codes, not guesses. Absence is data, not an error.
"""

__version__ = "1.0.0"
