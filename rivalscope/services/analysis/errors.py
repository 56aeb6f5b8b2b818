# rivalscope/services/analysis/errors.py
from __future__ import annotations


class AnalysisError(Exception):
    """Base error untuk run analisis."""


class AnalysisValidationError(AnalysisError):
    """Input run tidak valid (daftar kompetitor kosong, format salah)."""


class StageError(AnalysisError):
    """Satu stage pipeline gagal dan tidak bisa dipulihkan untuk kompetitor ini."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(message)
