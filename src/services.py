"""
services.py — remote collaborators: color classifier and cube solver
====================================================================

* VisionClassifier     — sends the six face photos to the Gemini
                         `generateContent` endpoint and returns the raw JSON
                         envelope; `color_parser` takes it from there.
* RemoteSolver         — `GET <endpoint>?cube=<string>`; answers with
                         `{"solution": "R U ..."}` for a 3x3 facelet string,
                         `{"solution": ["R", "U", ...]}` for a 2x2 color
                         string, or `{"error": "..."}`.
* LocalKociembaSolver  — same contract, solved in-process with `kociemba`
                         (3x3 only). Useful offline and in tests.

Every failure, transport or payload, is raised as `ServiceError` with a
message meant to be shown to the user as-is. Nothing is retried here.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

import kociemba
import requests

from config import (
    CLASSIFICATION_PROMPT,
    CLASSIFY_TIMEOUT,
    GEMINI_API_KEY,
    GEMINI_ENDPOINT,
    GEMINI_MODEL,
    SOLVE_TIMEOUT,
    SOLVER_ENDPOINT,
    SOLVER_STRING_LENGTH,
)
from errors import ServiceError
from move_stepper import is_move, parse_moves

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def checked_moves(solution: Any) -> List[str]:
    """
    Split a solver answer into moves. An answer that reads as an error, or holds
    anything that is not a move token, is raised verbatim as ServiceError.
    """
    moves = parse_moves(solution)
    text = solution if isinstance(solution, str) else " ".join(moves)
    if "error" in text.lower() or not all(is_move(m) for m in moves):
        raise ServiceError(text.strip() or "Unknown response format from API")
    return moves


def _check_length(facelets: str, cube_size: int) -> None:
    expected = SOLVER_STRING_LENGTH.get(cube_size)
    if expected is None:
        raise ServiceError(f"Unsupported cube size: {cube_size}")
    if not isinstance(facelets, str) or len(facelets) != expected:
        got = len(facelets) if isinstance(facelets, str) else 0
        raise ServiceError(f"A {cube_size}x{cube_size} cube needs a {expected}-char string, got {got}")


class VisionClassifier:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 endpoint: Optional[str] = None, timeout: float = CLASSIFY_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.model = model or GEMINI_MODEL
        self.endpoint = endpoint or GEMINI_ENDPOINT.format(model=self.model)
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_request(self, images_b64: Sequence[str]) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": CLASSIFICATION_PROMPT}]
        for data in images_b64:
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": data}})
        return {"contents": [{"parts": parts}]}

    def classify_faces(self, images_b64: Sequence[str]) -> Dict[str, Any]:
        """POST the six base64 JPEGs and return the decoded response envelope."""
        if not self.api_key:
            raise ServiceError("No classifier API key configured (set GEMINI_API_KEY)")
        body = self.build_request(images_b64)
        logger.info("Sending %d images to %s", len(images_b64), self.model)
        try:
            response = self.session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ServiceError(f"Classifier request failed: {e}") from e

        if response.status_code != 200:
            raise ServiceError(
                f"Classifier returned status {response.status_code}: {response.text.strip()}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ServiceError("Classifier returned a non-JSON body") from e
        logger.debug("Classifier response: %s", payload)
        return payload


class RemoteSolver:
    def __init__(self, endpoint: Optional[str] = None, timeout: float = SOLVE_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint or SOLVER_ENDPOINT
        self.timeout = timeout
        self.session = session or requests.Session()

    def solve(self, facelets: str, cube_size: int) -> List[str]:
        """Return the move list; an empty list means the cube is already solved."""
        _check_length(facelets, cube_size)
        logger.info("Requesting %dx%d solution", cube_size, cube_size)
        try:
            response = self.session.get(self.endpoint, params={"cube": facelets}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ServiceError(f"Solver request failed: {e}") from e
        if response.status_code != 200:
            raise ServiceError(f"API Error: HTTP {response.status_code}", status=response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise ServiceError("Solver returned a non-JSON body") from e
        return self.read_solution(payload)

    @staticmethod
    def read_solution(payload: Any) -> List[str]:
        if not isinstance(payload, dict):
            raise ServiceError("Unknown response format from API")
        if "solution" in payload:
            solution = payload["solution"]
            if isinstance(solution, (str, list)):
                return checked_moves(solution)
            raise ServiceError("Unknown response format from API")
        if "error" in payload:
            raise ServiceError(f"Error from API: {payload['error']}")
        raise ServiceError("Unknown response format from API")


class LocalKociembaSolver:
    def __init__(self):
        self._solve_cache: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def solve(self, facelets: str, cube_size: int) -> List[str]:
        if cube_size != 3:
            raise ServiceError("The local solver only handles 3x3 cubes")
        _check_length(facelets, cube_size)
        with self._lock:
            cached = self._solve_cache.get(facelets)
        if cached is not None:
            logger.debug("Solver cache hit for facelets")
            return list(cached)
        try:
            solution = kociemba.solve(facelets)
        except ValueError as e:
            raise ServiceError(f"Error from solver: {e}") from e
        moves = checked_moves(solution)
        with self._lock:
            self._solve_cache[facelets] = moves
        return list(moves)

    def clear_cache(self) -> None:
        with self._lock:
            self._solve_cache.clear()
