"""
cube_store.py — persisted cube state shared between screens
===========================================================

`CubeStateStore` is the single mutable record of the session: the classifier
writes a fresh state into it, corrections are merged into it, and the solver
string is derived from it. It sits on top of a tiny key-value backend:

* `JsonFileStore`  — one JSON document on disk, written to a temp file and
                     renamed into place so a crash never leaves half a state.
* `MemoryStore`    — a dict, for tests and for embedding without a disk.

Persisted layout (keys are stable, other tools read them):

    cubeSize          int
    matrixCount       int (always 6)
    matrix_<i>        str, i in 0..5, "Face #<i+1>:\\n\\n" block text
    letterColorMap    {face letter: color name}, 3x3 only
    cubeMatricesJson  {face letter: [[color name, ...], ...]}
    solverString      str
    imageRefs         [str]

`load()` never raises: missing or corrupt data comes back as `EMPTY`.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from app_types import EMPTY, ColorName, CubeState, FaceMatrix, is_square, matrix_to_names
from color_parser import COLOR_PATTERN
from config import FACE_ORDER, SUPPORTED_SIZES
from corrections import CorrectionOverlay
from errors import StateError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# ---------- key-value backends ----------

class MemoryStore:
    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(data) if data else {}

    def read(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def write(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)

    def clear(self) -> None:
        self._data = {}


class JsonFileStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> Dict[str, Any]:
        """Return the stored document, {} when the file does not exist.
        Unreadable or non-object content raises StateError."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            raise StateError(f"Cannot read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StateError(f"State file {self.path} does not hold a JSON object")
        return data

    def write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


# ---------- layout helpers ----------

def format_face_text(number: int, matrix: FaceMatrix) -> str:
    """Render one face as the `Face #N:` block used by `matrix_<i>`."""
    rows = [" ".join(ColorName.parse(c).value for c in row) for row in matrix]
    return f"Face #{number}:\n\n" + "\n".join(rows) + "\n"


def _parse_face_text(text: str, size: int) -> FaceMatrix:
    body = text.split(":", 1)[1] if text.lstrip().startswith("Face") else text
    colors = [ColorName.parse(m) for m in COLOR_PATTERN.findall(body)]
    if len(colors) != size * size:
        raise StateError(f"Face block holds {len(colors)} colors, expected {size * size}")
    return [colors[r * size:(r + 1) * size] for r in range(size)]


def _read_grid(grid: Any, size: int, face: str) -> FaceMatrix:
    if not is_square(grid, size):
        raise StateError(f"Stored face {face} is not a {size}x{size} matrix")
    matrix = []
    for row in grid:
        parsed = [ColorName.parse(c) for c in row]
        if any(c is None for c in parsed):
            raise StateError(f"Stored face {face} holds an unknown color: {row!r}")
        matrix.append(parsed)
    return matrix


class CubeStateStore:
    def __init__(self, backend=None):
        self.backend = backend if backend is not None else MemoryStore()
        self._lock = threading.RLock()

    # ---------- read ----------

    def load(self):
        """Return the persisted CubeState, or EMPTY if there is nothing usable."""
        with self._lock:
            try:
                data = self.backend.read()
                if not data:
                    return EMPTY
                return self._decode(data)
            except (StateError, ValueError, TypeError, KeyError, AttributeError) as e:
                logger.warning("Discarding unusable persisted state: %s", e)
                return EMPTY

    def _decode(self, data: Dict[str, Any]) -> CubeState:
        size = data.get("cubeSize")
        if isinstance(size, bool) or size not in SUPPORTED_SIZES:
            raise StateError(f"Unsupported persisted cube size: {size!r}")

        grids = data.get("cubeMatricesJson")
        matrices: Dict[str, FaceMatrix] = {}
        if isinstance(grids, dict) and all(f in grids for f in FACE_ORDER):
            for face in FACE_ORDER:
                matrices[face] = _read_grid(grids[face], size, face)
        else:
            count = data.get("matrixCount")
            if count != len(FACE_ORDER):
                raise StateError(f"Expected {len(FACE_ORDER)} stored matrices, found {count!r}")
            for i, face in enumerate(FACE_ORDER):
                text = data.get(f"matrix_{i}")
                if not isinstance(text, str):
                    raise StateError(f"matrix_{i} is missing")
                matrices[face] = _parse_face_text(text, size)

        letter_map = data.get("letterColorMap") or None
        if letter_map is not None and not isinstance(letter_map, dict):
            raise StateError("letterColorMap is not an object")
        refs = data.get("imageRefs") or []
        return CubeState(
            cube_size=size,
            matrices=matrices,
            solver_string=str(data.get("solverString") or ""),
            letter_color_map=letter_map,
            image_refs=[str(r) for r in refs],
        )

    # ---------- write ----------

    def _encode(self, state: CubeState) -> Dict[str, Any]:
        missing = [f for f in FACE_ORDER if state.face(f) is None]
        if missing:
            raise StateError(f"Refusing to persist a state without faces {', '.join(missing)}")
        matrices = {face: _read_grid(state.face(face), state.cube_size, face) for face in FACE_ORDER}
        data: Dict[str, Any] = {
            "cubeSize": state.cube_size,
            "matrixCount": len(FACE_ORDER),
        }
        for i, face in enumerate(FACE_ORDER):
            data[f"matrix_{i}"] = format_face_text(i + 1, matrices[face])
        data["cubeMatricesJson"] = {face: matrix_to_names(matrices[face]) for face in FACE_ORDER}
        if state.cube_size == 3 and state.letter_color_map:
            data["letterColorMap"] = dict(state.letter_color_map)
        data["solverString"] = state.solver_string or ""
        data["imageRefs"] = list(state.image_refs)
        return data

    def save(self, state: CubeState) -> None:
        """Replace everything that is persisted with `state`."""
        data = self._encode(state)
        with self._lock:
            self.backend.write(data)
        logger.info("Saved %dx%d cube state", state.cube_size, state.cube_size)

    def save_solution_data(self, state: CubeState) -> None:
        """
        Persist the solver string, the letter -> color map and the matrices of
        `state`, keeping the rest of the stored record (size, image refs).
        """
        with self._lock:
            current = self.load()
            if current is EMPTY:
                raise StateError("No cube state to attach a solution to")
            if current.cube_size != state.cube_size:
                raise StateError(f"Cube size changed from {current.cube_size} to {state.cube_size}")
            merged = CubeState(
                cube_size=current.cube_size,
                matrices=state.matrices,
                solver_string=state.solver_string,
                letter_color_map=state.letter_color_map,
                image_refs=current.image_refs,
            )
            self.backend.write(self._encode(merged))
        logger.debug("Saved solver string %s", state.solver_string)

    def apply_corrections(self, overlay: CorrectionOverlay) -> CubeState:
        """
        Merge `overlay` into the stored matrices and persist the result. The
        overlay is cleared only after the write went through.
        """
        with self._lock:
            current = self.load()
            if current is EMPTY:
                raise StateError("No cube state to correct")
            if not overlay:
                return current
            try:
                merged = overlay.merge_all(current.matrices)
            except ValueError as e:
                raise StateError(str(e)) from e
            updated = current.with_matrices(merged)
            self.backend.write(self._encode(updated))
            applied = len(overlay)
            overlay.clear()
        logger.info("Applied %d color corrections", applied)
        return updated

    def clear(self) -> None:
        with self._lock:
            self.backend.clear()
        logger.info("Cleared persisted cube state")
