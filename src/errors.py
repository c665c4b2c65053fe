"""
errors.py — exception taxonomy of the cube pipeline
===================================================

* ParseError     — recoverable; the parser substitutes defaults and keeps the
                   error as a warning for the user to review.
* EncodingError  — fatal to the current solve attempt; colors must be reviewed.
* ServiceError   — transport failure or explicit error payload from the
                   classification or solving service. Shown verbatim.
* StateError     — persisted state missing or corrupt; the user starts over.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from typing import Optional


class CubePipelineError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(CubePipelineError):
    """A single cell or face of the classifier output could not be read."""

    def __init__(self, message: str, face: Optional[str] = None,
                 row: Optional[int] = None, col: Optional[int] = None) -> None:
        super().__init__(message)
        self.face = face
        self.row = row
        self.col = col


class EncodingError(CubePipelineError):
    """Raised when a cube state cannot be turned into a solver string."""


class ServiceError(CubePipelineError):
    """Raised for classifier/solver failures (HTTP, timeout, error payload)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class StateError(CubePipelineError):
    """Raised when the persisted cube state is missing or unusable."""
