"""
color_parser.py — classifier output -> six color matrices
=========================================================

The vision service is asked for a JSON document of the form

    {"cube_size": "3x3", "faces": [{"face_number": 1, "matrix": [[...], ...]}, ...]}

but what comes back is an LLM response: the JSON may be wrapped in the
`candidates[0].content.parts[*].text` envelope, fenced in markdown, surrounded
by prose, truncated, or missing entirely. `ColorMatrixParser.parse` never
raises on any of that. It always returns six square matrices of the resolved
cube size, substituting White for anything it cannot read and recording why in
`ParseResult.warnings` / `ParseResult.data_loss` so the user can review.

Decoding order
1. Structured path: locate a JSON object with a `faces` list, map each
   `face_number` (1..6) to its slot and validate every cell against the six
   color names (case-insensitive). The first face's real dimensions win over
   the declared `cube_size` label.
2. Text fallback: split the raw text on "Face #N" markers and collect whole-word
   color names in order of appearance, row-major, until the face is full.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app_types import ColorName, FaceMatrix, ParseResult, ParseStatus, blank_matrix, is_square
from config import COLOR_NAMES, DEFAULT_COLOR, FACE_ORDER, SUPPORTED_SIZES
from errors import ParseError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

COLOR_PATTERN = re.compile(r"\b(" + "|".join(COLOR_NAMES) + r")\b", re.IGNORECASE)
# "Face #N" in prose, or a "face_number": N key left over in truncated JSON
_FACE_MARKER = re.compile(r'Face\s*#\s*(\d+)|"face_number"\s*:\s*"?(\d+)', re.IGNORECASE)
_SIZE_LABEL = re.compile(r"([23])\s*[xX×]\s*[23]")
_DECLARED_SIZE = re.compile(r'"cube_size"\s*:\s*"?([23])')
_TWO_BY_TWO_TEXT = re.compile(r"2\s*x\s*2|two\s+by\s+two", re.IGNORECASE)

FACE_COUNT = len(FACE_ORDER)


def extract_text(raw: Any) -> str:
    """
    Pull the model text out of a generateContent envelope. Plain strings are
    returned as-is; any other shape yields an empty string.
    """
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, Mapping):
        return ""
    try:
        parts = raw["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    texts = [p.get("text", "") for p in parts if isinstance(p, Mapping)]
    return "".join(t for t in texts if isinstance(t, str))


def parse_size_label(label: Any) -> Optional[int]:
    if isinstance(label, bool):
        return None
    if isinstance(label, int):
        return label if label in SUPPORTED_SIZES else None
    if isinstance(label, str):
        m = _SIZE_LABEL.search(label)
        if m:
            return int(m.group(1))
        if label.strip() in ("2", "3"):
            return int(label.strip())
    return None


def _load_json_object(text: str) -> Optional[Dict[str, Any]]:
    text = text.strip()
    if not text:
        return None
    candidates = [text]
    start, end = text.find('{'), text.rfind('}')
    if 0 <= start < end:
        candidates.append(text[start:end + 1])
    for candidate in candidates:
        try:
            obj = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


class ColorMatrixParser:
    def __init__(self, default_size: int = 3):
        if default_size not in SUPPORTED_SIZES:
            raise ValueError(f"Unsupported cube size: {default_size}")
        self.default_size = default_size

    def parse(self, raw: Any, cube_size: Optional[int] = None) -> ParseResult:
        """
        Decode classifier output into six FaceMatrix entries.

        `cube_size` is the size requested by the caller. Structured payloads may
        override it (declared label, then observed dimensions); the text fallback
        keeps it, and only guesses from the text when no size was requested.
        """
        payload = self._find_payload(raw)
        if payload is not None:
            result = self._decode_structured(payload, cube_size)
            if result is not None:
                return result
            logger.debug("Structured payload unusable, falling back to text parsing")
        text = extract_text(raw)
        if not text and isinstance(raw, Mapping):
            text = json.dumps(raw)
        return self._decode_text(text, cube_size)

    # ---------- structured path ----------

    def _find_payload(self, raw: Any) -> Optional[Dict[str, Any]]:
        if isinstance(raw, Mapping) and "faces" in raw:
            return dict(raw)
        obj = _load_json_object(extract_text(raw))
        if obj is not None and isinstance(obj.get("faces"), list):
            return obj
        return None

    def _resolve_size(self, payload: Dict[str, Any], requested: Optional[int]) -> int:
        size = parse_size_label(payload.get("cube_size")) or requested or self.default_size
        faces = payload.get("faces") or []
        first = faces[0] if faces and isinstance(faces[0], Mapping) else None
        if first is not None:
            matrix = first.get("matrix")
            for observed in SUPPORTED_SIZES:
                if is_square(matrix, observed):
                    if observed != size:
                        logger.info("Declared cube size %s overridden by observed %sx%s matrix",
                                    size, observed, observed)
                    size = observed
                    break
        return size

    def _decode_structured(self, payload: Dict[str, Any], requested: Optional[int]) -> Optional[ParseResult]:
        faces = payload.get("faces")
        if not isinstance(faces, list):
            return None
        size = self._resolve_size(payload, requested)
        matrices: List[Optional[FaceMatrix]] = [None] * FACE_COUNT
        data_loss = [False] * FACE_COUNT
        warnings: List[ParseError] = []

        for entry in faces:
            if not isinstance(entry, Mapping):
                warnings.append(ParseError(f"Ignoring malformed face entry: {entry!r}"))
                continue
            number = entry.get("face_number")
            try:
                number = int(number)
            except (TypeError, ValueError):
                warnings.append(ParseError(f"Face entry without a usable face_number: {number!r}"))
                continue
            if not 1 <= number <= FACE_COUNT:
                logger.warning("Dropping face #%s: outside 1..%s", number, FACE_COUNT)
                warnings.append(ParseError(f"Face #{number} is outside 1..{FACE_COUNT}; dropped"))
                continue
            idx = number - 1
            if matrices[idx] is not None:
                warnings.append(ParseError(f"Duplicate face #{number}; keeping the first one",
                                           face=FACE_ORDER[idx]))
                continue
            matrix, lost, cell_warnings = self._read_matrix(entry.get("matrix"), size, FACE_ORDER[idx])
            matrices[idx] = matrix
            data_loss[idx] = lost
            warnings.extend(cell_warnings)

        if all(m is None for m in matrices):
            return None

        for idx, matrix in enumerate(matrices):
            if matrix is None:
                warnings.append(ParseError(f"Face #{idx + 1} missing from classifier output",
                                           face=FACE_ORDER[idx]))
                matrices[idx] = blank_matrix(size)
                data_loss[idx] = True

        status = ParseStatus.PARTIAL if warnings or any(data_loss) else ParseStatus.OK
        logger.debug("Structured parse: size=%s status=%s warnings=%d", size, status.value, len(warnings))
        return ParseResult(status=status, cube_size=size, matrices=matrices,
                           warnings=warnings, data_loss=data_loss)

    def _read_matrix(self, raw_matrix: Any, size: int, face: str) -> Tuple[FaceMatrix, bool, List[ParseError]]:
        """
        Read one face. Cells are taken row-major; a ragged or wrongly sized grid is
        flattened and refilled so that the face always comes out size x size.
        """
        warnings: List[ParseError] = []
        lost = False
        if is_square(raw_matrix, size):
            cells = [(r, c, raw_matrix[r][c], False) for r in range(size) for c in range(size)]
        else:
            flat = []
            if isinstance(raw_matrix, (list, tuple)):
                for row in raw_matrix:
                    flat.extend(row if isinstance(row, (list, tuple)) else [row])
            warnings.append(ParseError(f"Face {face}: matrix is not {size}x{size}", face=face))
            lost = True
            padded = flat[:size * size] + [None] * max(0, size * size - len(flat))
            cells = [(i // size, i % size, value, i >= len(flat)) for i, value in enumerate(padded)]

        matrix = blank_matrix(size)
        for r, c, value, filler in cells:
            color = ColorName.parse(value)
            if color is None:
                # filler cells are already covered by the not-square warning
                if not filler:
                    what = "missing color" if value is None else f"unknown color {value!r}"
                    warnings.append(ParseError(
                        f"Face {face} [{r}][{c}]: {what}, using {DEFAULT_COLOR}",
                        face=face, row=r, col=c))
                continue
            matrix[r][c] = color
        return matrix, lost, warnings

    # ---------- text fallback ----------

    def _decode_text(self, text: str, requested: Optional[int]) -> ParseResult:
        text = text or ""
        size = requested or self.default_size
        if requested is None:
            declared = _DECLARED_SIZE.search(text)
            if declared:
                size = int(declared.group(1))
            elif _TWO_BY_TWO_TEXT.search(text):
                size = 2
        per_face = size * size
        matrices = [blank_matrix(size) for _ in range(FACE_COUNT)]
        data_loss = [True] * FACE_COUNT
        warnings: List[ParseError] = []

        markers = list(_FACE_MARKER.finditer(text))
        seen = set()
        for i, marker in enumerate(markers):
            number = int(marker.group(1) or marker.group(2))
            if not 1 <= number <= FACE_COUNT:
                logger.warning("Dropping free-text block for face #%s: outside 1..%s", number, FACE_COUNT)
                warnings.append(ParseError(f"Face #{number} is outside 1..{FACE_COUNT}; dropped"))
                continue
            idx = number - 1
            face = FACE_ORDER[idx]
            if idx in seen:
                warnings.append(ParseError(f"Duplicate face #{number}; keeping the first one", face=face))
                continue
            seen.add(idx)
            block_end = markers[i + 1].start() if i + 1 < len(markers) else len(text)
            block = text[marker.end():block_end]
            colors = [ColorName.parse(m) for m in COLOR_PATTERN.findall(block)][:per_face]
            for j, color in enumerate(colors):
                matrices[idx][j // size][j % size] = color
            data_loss[idx] = len(colors) < per_face
            if data_loss[idx]:
                warnings.append(ParseError(
                    f"Face {face}: found {len(colors)} of {per_face} colors, rest set to {DEFAULT_COLOR}",
                    face=face))

        for idx in range(FACE_COUNT):
            if idx not in seen:
                warnings.append(ParseError(f"Face #{idx + 1} missing from classifier output",
                                           face=FACE_ORDER[idx]))

        if not seen:
            logger.warning("Classifier output contained no readable face data")
            return ParseResult(status=ParseStatus.FAILED, cube_size=size, matrices=matrices,
                               warnings=warnings, data_loss=data_loss,
                               reason="No face data found in classifier output")

        status = ParseStatus.PARTIAL if warnings else ParseStatus.OK
        logger.debug("Text fallback parse: size=%s faces=%d status=%s", size, len(seen), status.value)
        return ParseResult(status=status, cube_size=size, matrices=matrices,
                           warnings=warnings, data_loss=data_loss)
