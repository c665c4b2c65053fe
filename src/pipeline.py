"""
pipeline.py — classify -> correct -> encode -> solve orchestration
==================================================================

`CubePipeline` owns one session: the correction overlay, the move stepper and
the two long-running stages (classification and solving), and writes through
an injected `CubeStateStore`.

Threading model
- Both stages run on a small shared ThreadPoolExecutor and hand back a
  `concurrent.futures.Future`.
- Each stage is a `SingleFlight`: starting a new job cancels the previous
  one if it has not started yet; if it has, its result is dropped on arrival.
  A generation counter decides which job is current.
- A job's side effects (store write, stepper load) run under the stage lock
  and only if the job is still current, so `close()` / `reset()` guarantee
  that nothing late reaches the store or the stepper.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from app_types import EMPTY, CubeState, ParseResult, ParseStatus
from color_parser import ColorMatrixParser
from corrections import CorrectionOverlay
from cube_store import CubeStateStore
from errors import CubePipelineError, EncodingError, StateError
from facelet_encoder import FaceletEncoder
from images import ImageInput, prepare_images
from move_stepper import MoveStepper

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="cube-pipeline")

STAGE_CLASSIFY = "classify"
STAGE_SOLVE = "solve"


class SingleFlight:
    """At most one live job per stage; older jobs are cancelled or ignored."""

    def __init__(self, name: str, executor: Optional[concurrent.futures.Executor] = None,
                 serializer: Optional[Callable[[Any], Any]] = None):
        self.name = name
        self._executor = executor or _EXECUTOR
        self._serializer = serializer
        self._lock = threading.Lock()
        self._generation = 0
        self._future: Optional[concurrent.futures.Future] = None
        self._closed = False
        self._status: Dict[str, Any] = {"state": "idle"}

    def submit(self, work: Callable[[], Any], commit: Optional[Callable[[Any], None]] = None
               ) -> concurrent.futures.Future:
        """
        Run `work()` in the background. If the job is still current when it
        finishes, `commit(result)` runs under the stage lock.
        """
        with self._lock:
            if self._closed:
                raise StateError(f"The {self.name} stage has been closed")
            self._generation += 1
            generation = self._generation
            if self._future is not None and self._future.cancel():
                logger.info("[%s] cancelled pending job", self.name)
            self._status = {"state": "running"}
            self._future = self._executor.submit(self._run, generation, work, commit)
            return self._future

    def _run(self, generation: int, work: Callable[[], Any], commit: Optional[Callable[[Any], None]]):
        try:
            result = work()
        except Exception as e:
            with self._lock:
                if generation == self._generation:
                    self._status = {"state": "failed", "error": _message(e)}
            if not isinstance(e, CubePipelineError):
                logger.exception("[%s] job failed: %s", self.name, e)
            raise
        with self._lock:
            if generation != self._generation:
                logger.info("[%s] dropping result of superseded job", self.name)
                return result
            try:
                if commit is not None:
                    commit(result)
            except Exception as e:
                self._status = {"state": "failed", "error": _message(e)}
                raise
            payload = self._serializer(result) if self._serializer else result
            self._status = {"state": "done", "result": payload}
        return result

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._status, stage=self.name)

    def invalidate(self) -> None:
        """Mark whatever is in flight as stale."""
        with self._lock:
            self._generation += 1
            if self._future is not None:
                self._future.cancel()
            self._future = None
            self._status = {"state": "idle"}

    def close(self) -> None:
        self.invalidate()
        with self._lock:
            self._closed = True


def _message(error: BaseException) -> str:
    return error.message if isinstance(error, CubePipelineError) else str(error)


def _solve_payload(moves: List[str]) -> Dict[str, Any]:
    return {"moves": list(moves), "already_solved": not moves}


class CubePipeline:
    def __init__(self, store: CubeStateStore, classifier, solver,
                 parser: Optional[ColorMatrixParser] = None,
                 encoder: Optional[FaceletEncoder] = None,
                 executor: Optional[concurrent.futures.Executor] = None):
        self.store = store
        self.classifier = classifier
        self.solver = solver
        self.parser = parser or ColorMatrixParser()
        self.encoder = encoder or FaceletEncoder()
        self.overlay = CorrectionOverlay()
        self.stepper = MoveStepper()
        self.last_parse: Optional[ParseResult] = None
        self._stages = {
            STAGE_CLASSIFY: SingleFlight(STAGE_CLASSIFY, executor, serializer=lambda r: r.to_dict()),
            STAGE_SOLVE: SingleFlight(STAGE_SOLVE, executor, serializer=_solve_payload),
        }

    # ---------- classification ----------

    def classify_async(self, images: Sequence[ImageInput], cube_size: Optional[int] = None,
                       image_refs: Optional[List[str]] = None) -> concurrent.futures.Future:
        """
        Compress the six photos, classify them and parse the answer. A usable
        result replaces the stored cube state; the future resolves to the
        ParseResult either way.
        """
        images = list(images)
        refs = list(image_refs) if image_refs else [f"image{i}" for i in range(len(images))]

        def work() -> ParseResult:
            payload = prepare_images(images)
            raw = self.classifier.classify_faces(payload)
            return self.parser.parse(raw, cube_size)

        def commit(result: ParseResult) -> None:
            self.last_parse = result
            if result.status is ParseStatus.FAILED:
                logger.warning("Classification unusable: %s", result.reason)
                return
            # a solve started for the previous cube must not load its moves
            self._stages[STAGE_SOLVE].invalidate()
            self.store.save(result.to_state(refs))
            self.overlay.clear()
            self.stepper.reset()
            logger.info("Classified a %dx%d cube (%s)", result.cube_size, result.cube_size,
                        result.status.value)

        return self._stages[STAGE_CLASSIFY].submit(work, commit)

    # ---------- corrections ----------

    def _require_state(self) -> CubeState:
        state = self.store.load()
        if state is EMPTY:
            raise StateError("No cube state available, please start over")
        return state

    def set_correction(self, face: str, row: int, col: int, color) -> None:
        size = self._require_state().cube_size
        if isinstance(row, int) and isinstance(col, int) and (row >= size or col >= size):
            raise ValueError(f"Cell ({row}, {col}) is outside a {size}x{size} face")
        self.overlay.set(face, row, col, color)

    def save_corrections(self) -> CubeState:
        return self.store.apply_corrections(self.overlay)

    def discard_corrections(self) -> None:
        dropped = len(self.overlay)
        self.overlay.clear()
        logger.info("Discarded %d pending corrections", dropped)

    # ---------- encoding ----------

    def generate_solver_string(self) -> str:
        if self.overlay:
            self.save_corrections()
        state = self._require_state()
        try:
            facelets = self.encoder.encode(state)
            letter_map = self.encoder.letter_color_map(state) if state.cube_size == 3 else None
        except EncodingError as e:
            logger.warning("Encoding failed: %s", e.message)
            raise EncodingError(f"Cannot generate solution, please review colors: {e.message}") from e
        self.store.save_solution_data(replace(state, solver_string=facelets, letter_color_map=letter_map))
        return facelets

    # ---------- solving ----------

    def solve_async(self) -> concurrent.futures.Future:
        state = self._require_state()
        facelets = state.solver_string if not self.overlay else ""
        if not facelets:
            facelets = self.generate_solver_string()
        size = state.cube_size

        def work() -> List[str]:
            return self.solver.solve(facelets, size)

        def commit(moves: List[str]) -> None:
            self.stepper.load(moves)
            if self.stepper.already_solved:
                logger.info("Cube is already solved")

        return self._stages[STAGE_SOLVE].submit(work, commit)

    # ---------- housekeeping ----------

    def job_status(self, stage: str) -> Dict[str, Any]:
        if stage not in self._stages:
            raise KeyError(stage)
        return self._stages[stage].status()

    def close(self) -> None:
        """Tear the session down; in-flight results are discarded."""
        for flight in self._stages.values():
            flight.close()
        logger.info("Pipeline closed")

    def reset(self) -> None:
        """Drop in-flight work, pending edits, the stepper and the stored state."""
        for flight in self._stages.values():
            flight.invalidate()
        self.overlay.clear()
        self.stepper.reset()
        self.last_parse = None
        self.store.clear()
