"""
move_stepper.py — step-by-step walk through a solution
======================================================

Holds the move list returned by the solver and a cursor over it. The cursor
starts at -1 (nothing loaded) and, once a non-empty list is loaded, stays in
0..N-1: `advance` and `retreat` are no-ops at the ends.

Move notation (Singmaster): a face letter followed by nothing (clockwise),
`'` (counter-clockwise) or `2` (half turn).

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Union

from config import FACE_NAMES

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

UNINITIALIZED = -1

MOVE_PATTERN = re.compile(r"^[URFDLB]['2]?$")

_SUFFIXES = {
    "": "clockwise",
    "'": "counter-clockwise",
    "2": "180 degrees",
}


def describe(move: str) -> str:
    """
    Human-readable text for one move token, e.g. "U'" -> "Up face counter-clockwise".
    Unknown tokens are reported, never raised.
    """
    tok = (move or "").strip()
    face = FACE_NAMES.get(tok[:1]) if tok else None
    suffix = _SUFFIXES.get(tok[1:]) if tok else None
    if face is None or suffix is None:
        return f"Unrecognized move: {move}"
    return f"{face} face {suffix}"


def parse_moves(solution: Union[str, Iterable[str], None]) -> List[str]:
    """Split the solver output (space separated string or token list) into moves."""
    if solution is None:
        return []
    if isinstance(solution, str):
        return solution.split()
    moves: List[str] = []
    for item in solution:
        moves.extend(str(item).split())
    return moves


def is_move(token: str) -> bool:
    return bool(MOVE_PATTERN.match(token))


class MoveStepper:
    def __init__(self):
        self.moves: List[str] = []
        self.index = UNINITIALIZED
        self.already_solved = False

    def load(self, moves: Union[str, Iterable[str], None]) -> None:
        self.moves = parse_moves(moves)
        self.already_solved = not self.moves
        self.index = 0 if self.moves else UNINITIALIZED
        logger.info("Loaded %d moves", len(self.moves))

    def reset(self) -> None:
        self.moves = []
        self.index = UNINITIALIZED
        self.already_solved = False

    @property
    def initialized(self) -> bool:
        return self.index != UNINITIALIZED

    @property
    def can_advance(self) -> bool:
        return self.initialized and self.index + 1 < len(self.moves)

    @property
    def can_retreat(self) -> bool:
        return self.initialized and self.index - 1 >= 0

    def advance(self) -> bool:
        if not self.can_advance:
            return False
        self.index += 1
        return True

    def retreat(self) -> bool:
        if not self.can_retreat:
            return False
        self.index -= 1
        return True

    @property
    def current_move(self) -> Optional[str]:
        return self.moves[self.index] if self.initialized else None

    @property
    def step_label(self) -> str:
        if not self.initialized:
            return ""
        return f"Step {self.index + 1} of {len(self.moves)}"

    def to_dict(self) -> dict:
        move = self.current_move
        return {
            "index": self.index,
            "total": len(self.moves),
            "move": move,
            "description": describe(move) if move is not None else None,
            "label": self.step_label,
            "can_advance": self.can_advance,
            "can_retreat": self.can_retreat,
            "already_solved": self.already_solved,
            "moves": list(self.moves),
        }
