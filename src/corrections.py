"""
corrections.py — sparse user color corrections
==============================================

The classifier's matrices are never edited in place. Each tap in the color
picker records `(face, row, col) -> color` here; the store merges the overlay
into the persisted matrices on save and the overlay is cleared only once that
save has succeeded.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Tuple

from app_types import ColorName, FaceMatrix, copy_matrix
from config import FACE_ORDER

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

CellKey = Tuple[str, int, int]


class CorrectionOverlay:
    def __init__(self):
        self._edits: Dict[CellKey, ColorName] = {}

    def set(self, face: str, row: int, col: int, color) -> None:
        """Record a correction; a later write to the same cell replaces it."""
        if face not in FACE_ORDER:
            raise ValueError(f"Unknown face letter: {face!r}")
        if not isinstance(row, int) or not isinstance(col, int) or row < 0 or col < 0:
            raise ValueError(f"Invalid cell position: ({row!r}, {col!r})")
        parsed = ColorName.parse(color)
        if parsed is None:
            raise ValueError(f"Unknown color: {color!r}")
        self._edits[(face, row, col)] = parsed
        logger.debug("Correction %s[%d][%d] -> %s", face, row, col, parsed.value)

    def get(self, face: str, row: int, col: int):
        return self._edits.get((face, row, col))

    def entries(self) -> List[Tuple[CellKey, ColorName]]:
        return sorted(self._edits.items(), key=lambda kv: (FACE_ORDER.index(kv[0][0]), kv[0][1], kv[0][2]))

    def faces(self) -> List[str]:
        return [f for f in FACE_ORDER if any(key[0] == f for key in self._edits)]

    def merged_matrix(self, face: str, original: FaceMatrix) -> FaceMatrix:
        """Return a new matrix with this face's corrections applied over `original`."""
        size = len(original)
        merged = copy_matrix(original)
        for (f, row, col), color in self._edits.items():
            if f != face:
                continue
            if row >= size or col >= size:
                raise ValueError(f"Correction {f}[{row}][{col}] is outside a {size}x{size} face")
            merged[row][col] = color
        return merged

    def merge_all(self, matrices: Mapping[str, FaceMatrix]) -> Dict[str, FaceMatrix]:
        return {face: self.merged_matrix(face, matrix) for face, matrix in matrices.items()}

    def clear(self) -> None:
        self._edits.clear()

    def __len__(self) -> int:
        return len(self._edits)

    def __bool__(self) -> bool:
        return bool(self._edits)

    def to_dict(self) -> List[Dict]:
        return [{"face": f, "row": r, "col": c, "color": color.value} for (f, r, c), color in self.entries()]
