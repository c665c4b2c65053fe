"""
facelet_encoder.py — corrected cube state -> solver wire string
===============================================================

Two wire formats are produced, one per cube size:

* 3x3 (kociemba facelet string, 54 chars). Every face's center sticker names
  the face: the color found at (1, 1) of face U is "the U color", and so on.
  Faces are emitted in U, R, F, D, L, B order, nine stickers each, row-major,
  every sticker written as the face letter whose center has its color.

* 2x2 (color string, 24 chars). A 2x2 has no centers, so stickers are written
  as color codes (W/Y/G/B/O/R). Faces follow the configured 2x2 order
  (`CUBE_2X2_FACE_ORDER` or the constructor argument); inside a face the
  corners go top-left, top-right, bottom-right, bottom-left. There is no
  default order, so an unconfigured encoder raises `EncodingError` for 2x2.

Unlike the parser, the encoder tolerates nothing: a missing face, a wrongly
sized matrix, an unknown color, a duplicated center or a sticker whose color
matches no center all raise `EncodingError`. Encoding runs only on data the
user has already had the chance to correct.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from app_types import ColorName, CubeState, FaceMatrix, blank_matrix, is_square
from config import (
    CENTER_CELL,
    COLOR_TO_CHAR,
    FACE_ORDER,
    SOLVER_STRING_LENGTH,
    TWO_BY_TWO_CORNER_ORDER,
    TWO_BY_TWO_FACE_ORDER,
)
from errors import EncodingError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

CHAR_TO_COLOR: Dict[str, str] = {v: k for k, v in COLOR_TO_CHAR.items()}


class FaceletEncoder:
    def __init__(self, two_by_two_face_order: Optional[Sequence[str]] = None):
        order = list(TWO_BY_TWO_FACE_ORDER if two_by_two_face_order is None else two_by_two_face_order)
        if order and sorted(order) != sorted(FACE_ORDER):
            raise ValueError(f"2x2 face order must be a permutation of {FACE_ORDER}: {order}")
        self.two_by_two_face_order = order

    def _require_2x2_order(self) -> List[str]:
        if not self.two_by_two_face_order:
            raise EncodingError("2x2 face order not configured (set CUBE_2X2_FACE_ORDER)")
        return self.two_by_two_face_order

    def encode(self, state: CubeState) -> str:
        self._check_complete(state)
        if state.cube_size == 3:
            facelets = self._encode_3x3(state)
        else:
            facelets = self._encode_2x2(state)
        expected = SOLVER_STRING_LENGTH[state.cube_size]
        if len(facelets) != expected:
            raise EncodingError(f"Built a {len(facelets)}-char solver string, expected {expected}")
        logger.debug("Built solver string (%dx%d): %s", state.cube_size, state.cube_size, facelets)
        return facelets

    # ---------- validation ----------

    def _check_complete(self, state: CubeState) -> None:
        size = state.cube_size
        missing = [f for f in FACE_ORDER if state.face(f) is None]
        if missing:
            raise EncodingError(f"Missing faces: {', '.join(missing)}")
        for face in FACE_ORDER:
            matrix = state.face(face)
            if not is_square(matrix, size):
                raise EncodingError(f"Face {face} is not a {size}x{size} matrix")
            for r, row in enumerate(matrix):
                for c, value in enumerate(row):
                    if ColorName.parse(value) is None:
                        raise EncodingError(f"Face {face} [{r}][{c}] has unknown color {value!r}")

    # ---------- 3x3 ----------

    def letter_color_map(self, state: CubeState) -> Dict[str, str]:
        """Face letter -> center color name. 3x3 only."""
        if state.cube_size != 3:
            raise EncodingError("Only a 3x3 cube has center stickers")
        self._check_complete(state)
        row, col = CENTER_CELL
        return {face: ColorName.parse(state.face(face)[row][col]).value for face in FACE_ORDER}

    def _color_to_face(self, state: CubeState) -> Dict[ColorName, str]:
        row, col = CENTER_CELL
        color_to_face: Dict[ColorName, str] = {}
        for face in FACE_ORDER:
            center = ColorName.parse(state.face(face)[row][col])
            if center in color_to_face:
                raise EncodingError(
                    f"Duplicate center color {center.value} on faces {color_to_face[center]} and {face}"
                )
            color_to_face[center] = face
        return color_to_face

    def _encode_3x3(self, state: CubeState) -> str:
        color_to_face = self._color_to_face(state)
        out: List[str] = []
        for face in FACE_ORDER:
            for r, row in enumerate(state.face(face)):
                for c, value in enumerate(row):
                    color = ColorName.parse(value)
                    letter = color_to_face.get(color)
                    if letter is None:
                        raise EncodingError(
                            f"Face {face} [{r}][{c}]: {color.value} does not match any center color"
                        )
                    out.append(letter)
        facelets = "".join(out)
        counts = Counter(facelets)
        if any(counts.get(f, 0) != 9 for f in FACE_ORDER):
            # the solver reports the exact defect
            logger.warning("Unbalanced facelet counts: %s", dict(counts))
        return facelets

    # ---------- 2x2 ----------

    def _encode_2x2(self, state: CubeState) -> str:
        order = self._require_2x2_order()
        out: List[str] = []
        for face in order:
            matrix = state.face(face)
            for r, c in TWO_BY_TWO_CORNER_ORDER:
                out.append(COLOR_TO_CHAR[ColorName.parse(matrix[r][c]).value])
        return "".join(out)

    # ---------- decoding ----------

    def decode(self, facelets: str, cube_size: int,
               letter_color_map: Optional[Dict[str, str]] = None) -> Dict[str, FaceMatrix]:
        """
        Rebuild the per-face matrices from a solver string. The 3x3 form needs the
        letter -> color map that was derived from the centers when encoding.
        """
        expected = SOLVER_STRING_LENGTH.get(cube_size)
        if expected is None or len(facelets) != expected:
            raise EncodingError(f"Expected a {expected}-char string for a {cube_size}x{cube_size} cube")
        if cube_size == 3:
            if not letter_color_map:
                raise EncodingError("A letter -> color map is required to decode a 3x3 facelet string")
            return self._decode_3x3(facelets, letter_color_map)
        return self._decode_2x2(facelets)

    def _decode_3x3(self, facelets: str, letter_color_map: Dict[str, str]) -> Dict[str, FaceMatrix]:
        matrices: Dict[str, FaceMatrix] = {}
        for i, face in enumerate(FACE_ORDER):
            chunk = facelets[i * 9:(i + 1) * 9]
            matrix = blank_matrix(3)
            for j, letter in enumerate(chunk):
                color = ColorName.parse(letter_color_map.get(letter))
                if color is None:
                    raise EncodingError(f"Facelet {letter!r} has no color in the letter map")
                matrix[j // 3][j % 3] = color
            matrices[face] = matrix
        return matrices

    def _decode_2x2(self, facelets: str) -> Dict[str, FaceMatrix]:
        order = self._require_2x2_order()
        matrices: Dict[str, FaceMatrix] = {}
        positions: List[Tuple[str, int, int]] = [
            (face, r, c) for face in order for r, c in TWO_BY_TWO_CORNER_ORDER
        ]
        for (face, r, c), ch in zip(positions, facelets):
            name = CHAR_TO_COLOR.get(ch)
            if name is None:
                raise EncodingError(f"Unknown color code {ch!r}")
            matrices.setdefault(face, blank_matrix(2))[r][c] = ColorName(name)
        return {face: matrices[face] for face in FACE_ORDER}
