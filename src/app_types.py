from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from config import DEFAULT_COLOR, FACE_ORDER, SUPPORTED_SIZES
from errors import ParseError


class ColorName(str, Enum):
    """ Canonical sticker colors. Values are the stored spelling. """
    WHITE = 'White'
    YELLOW = 'Yellow'
    RED = 'Red'
    ORANGE = 'Orange'
    BLUE = 'Blue'
    GREEN = 'Green'

    @classmethod
    def parse(cls, value) -> Optional[ColorName]:
        """Case-insensitive lookup; returns None for anything outside the vocabulary."""
        if isinstance(value, ColorName):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        for color in cls:
            if color.value.lower() == key:
                return color
        return None

    def __str__(self) -> str:
        return self.value


FaceMatrix = List[List[ColorName]]


def blank_matrix(size: int) -> FaceMatrix:
    default = ColorName(DEFAULT_COLOR)
    return [[default] * size for _ in range(size)]


def copy_matrix(matrix: FaceMatrix) -> FaceMatrix:
    return [list(row) for row in matrix]


def is_square(matrix, size: int) -> bool:
    if not isinstance(matrix, (list, tuple)) or len(matrix) != size:
        return False
    return all(isinstance(row, (list, tuple)) and len(row) == size for row in matrix)


def matrix_to_names(matrix: FaceMatrix) -> List[List[str]]:
    return [[c.value for c in row] for row in matrix]


@dataclass
class CubeState:
    cube_size: int
    matrices: Dict[str, FaceMatrix]
    solver_string: str = ""
    letter_color_map: Optional[Dict[str, str]] = None
    image_refs: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.cube_size not in SUPPORTED_SIZES:
            raise ValueError(f"Unsupported cube size: {self.cube_size}")

    def face(self, letter: str) -> Optional[FaceMatrix]:
        return self.matrices.get(letter)

    def with_matrices(self, matrices: Dict[str, FaceMatrix]) -> CubeState:
        # any derived string is stale once the stickers change
        return replace(self, matrices=matrices, solver_string="", letter_color_map=None)


class _EmptyState:
    """Sentinel returned by the store when there is nothing (usable) persisted."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "EMPTY"


EMPTY = _EmptyState()


class ParseStatus(Enum):
    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ParseResult:
    status: ParseStatus
    cube_size: int
    matrices: List[FaceMatrix]
    warnings: List[ParseError] = field(default_factory=list)
    data_loss: List[bool] = field(default_factory=lambda: [False] * len(FACE_ORDER))
    reason: Optional[str] = None

    @property
    def needs_review(self) -> bool:
        return self.status is not ParseStatus.OK

    def to_state(self, image_refs: Optional[List[str]] = None) -> CubeState:
        return CubeState(
            cube_size=self.cube_size,
            matrices={letter: copy_matrix(m) for letter, m in zip(FACE_ORDER, self.matrices)},
            image_refs=list(image_refs or []),
        )

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "cube_size": self.cube_size,
            "matrices": {letter: matrix_to_names(m) for letter, m in zip(FACE_ORDER, self.matrices)},
            "warnings": [w.message for w in self.warnings],
            "data_loss": {letter: lost for letter, lost in zip(FACE_ORDER, self.data_loss)},
            "reason": self.reason,
        }
