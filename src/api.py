"""api.py — HTTP front end of the cube pipeline
=============================================

Exposes one `CubePipeline` session over a small JSON API (Flask + CORS) served
by a background Werkzeug server thread. The frontend drives the screens:

    capture   -> POST /classify, poll GET /jobs/classify
    review    -> GET /state, POST|DELETE /corrections, POST /corrections/save
    solve     -> POST /solver-string, POST /solve, poll GET /jobs/solve
    steps     -> GET /stepper, POST /stepper/next, POST /stepper/previous
    start over-> DELETE /session

Every response is a JSON object with an `ok` flag. Failures carry an `error`
message meant for the user:

    EncodingError -> 422    ServiceError -> 502
    StateError    -> 409    bad request  -> 400

Threading model
- Flask runs in its own daemon thread (`_Server`, Werkzeug `make_server`).
- Long stages run in the pipeline's executor; routes only start them and
  report their status, they never block on a remote service.
------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. MIT License.
"""

import base64
import binascii
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.serving import make_server

from app_types import EMPTY, CubeState, matrix_to_names
from config import API_HOST, API_PORT, FACE_ORDER, SUPPORTED_SIZES
from errors import CubePipelineError, EncodingError, ServiceError, StateError
from pipeline import CubePipeline

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_STATUS_BY_ERROR = (
    (EncodingError, 422),
    (ServiceError, 502),
    (StateError, 409),
)


class BadRequest(ValueError):
    pass


# ---------- Flask server wrapper ----------
class _Server(threading.Thread):
    """Run Werkzeug/Flask in a background daemon thread using `make_server`."""

    def __init__(self, app, host, port):
        super().__init__(daemon=True)
        self._app = app
        self._host = host
        self._port = port
        self._server = None
        self.ready = threading.Event()

    def run(self):
        try:
            self._server = make_server(self._host, self._port, self._app, threaded=True)
            self.ready.set()
            self._server.serve_forever()
        except Exception as e:
            logger.exception("[API] Flask server stopped with error: %s", e)
        finally:
            self.ready.set()

    def shutdown(self):
        if self._server:
            self._server.shutdown()
            self._server = None


def state_to_dict(state: CubeState) -> Dict[str, Any]:
    return {
        "cube_size": state.cube_size,
        "matrices": {face: matrix_to_names(state.face(face)) for face in FACE_ORDER},
        "solver_string": state.solver_string,
        "letter_color_map": state.letter_color_map,
        "image_refs": list(state.image_refs),
    }


def _decode_b64_image(text: Any, index: int) -> bytes:
    if not isinstance(text, str) or not text:
        raise BadRequest(f"images[{index}] must be a base64 string")
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequest(f"images[{index}] is not valid base64") from e


def _read_images() -> Tuple[List[bytes], List[str]]:
    """Collect the six photos from a JSON body or a multipart upload."""
    if request.files:
        blobs, refs = [], []
        for i in range(len(FACE_ORDER)):
            storage = request.files.get(f"image{i}")
            if storage is None:
                raise BadRequest(f"Missing upload field image{i}")
            blobs.append(storage.read())
            refs.append(storage.filename or f"image{i}")
        return blobs, refs
    body = request.get_json(silent=True) or {}
    images = body.get("images")
    if not isinstance(images, list) or len(images) != len(FACE_ORDER):
        raise BadRequest(f"Expected {len(FACE_ORDER)} images")
    refs = body.get("image_refs")
    if not (isinstance(refs, list) and len(refs) == len(images)):
        refs = [f"image{i}" for i in range(len(images))]
    return [_decode_b64_image(img, i) for i, img in enumerate(images)], [str(r) for r in refs]


def _requested_size() -> Optional[int]:
    raw = request.form.get("cube_size") if request.files else (request.get_json(silent=True) or {}).get("cube_size")
    if raw in (None, ""):
        return None
    try:
        size = int(raw)
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid cube_size: {raw!r}")
    if size not in SUPPORTED_SIZES:
        raise BadRequest(f"Unsupported cube_size: {size}")
    return size


class API:
    """Owns the Flask app and its server thread for one pipeline session."""

    def __init__(self, pipeline: CubePipeline, host: str = API_HOST, port: int = API_PORT):
        self.pipeline = pipeline
        self.host = host
        self.port = port
        self.app = self._create_flask_app()
        self._server_thread: Optional[_Server] = None

    def start(self) -> None:
        self._server_thread = _Server(self.app, self.host, self.port)
        self._server_thread.start()
        self._server_thread.ready.wait(timeout=5.0)
        if self._server_thread._server is None:
            self._server_thread = None
            raise RuntimeError(f"Could not start the API server on {self.host}:{self.port}")
        logger.info("[API] server started at http://%s:%s", self.host, self.port)

    def shutdown(self) -> None:
        """Stop the HTTP server and discard any in-flight pipeline work."""
        if self._server_thread is not None:
            try:
                self._server_thread.shutdown()
            except Exception as e:
                logger.exception("[API.shutdown] Error stopping server: %s", e)
            self._server_thread = None
        self.pipeline.close()

    # ----- Flask app / endpoints -----

    def _create_flask_app(self) -> Flask:
        app = Flask(__name__)

        # allow CORS for the local frontend
        CORS(app, resources={r"/*": {"origins": "*"}})

        pipeline = self.pipeline

        @app.errorhandler(CubePipelineError)
        def _pipeline_error(e):
            status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(e, cls)), 500)
            logger.warning("[API] %s: %s", type(e).__name__, e.message)
            return jsonify({"ok": False, "error": e.message}), status

        @app.errorhandler(BadRequest)
        def _bad_request(e):
            return jsonify({"ok": False, "error": str(e)}), 400

        @app.errorhandler(HTTPException)
        def _http_error(e):
            return jsonify({"ok": False, "error": e.description}), e.code

        @app.errorhandler(Exception)
        def _unexpected(e):
            logger.exception("[API] Error: %s", e)
            return jsonify({"ok": False, "error": "Internal error"}), 500

        @app.route("/health")
        def _health():
            return jsonify({"ok": True})

        @app.route("/classify", methods=["POST"])
        def _classify():
            blobs, refs = _read_images()
            pipeline.classify_async(blobs, _requested_size(), refs)
            return jsonify({"ok": True, "job": "/jobs/classify"}), 202

        @app.route("/jobs/<stage>")
        def _job(stage):
            try:
                status = pipeline.job_status(stage)
            except KeyError:
                return jsonify({"ok": False, "error": f"Unknown stage: {stage}"}), 404
            return jsonify({"ok": True, **status})

        @app.route("/state")
        def _state():
            state = pipeline.store.load()
            if state is EMPTY:
                return jsonify({"ok": True, "empty": True})
            payload = {
                "ok": True,
                "empty": False,
                "state": state_to_dict(state),
                "pending_corrections": pipeline.overlay.to_dict(),
            }
            if pipeline.last_parse is not None:
                payload["parse"] = pipeline.last_parse.to_dict()
            return jsonify(payload)

        @app.route("/corrections", methods=["POST"])
        def _add_correction():
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                raise BadRequest("Expected a JSON object")
            missing = [k for k in ("face", "row", "col", "color") if k not in body]
            if missing:
                raise BadRequest(f"Missing fields: {', '.join(missing)}")
            try:
                pipeline.set_correction(body["face"], body["row"], body["col"], body["color"])
            except ValueError as e:
                raise BadRequest(str(e)) from e
            return jsonify({"ok": True, "pending": pipeline.overlay.to_dict()})

        @app.route("/corrections/save", methods=["POST"])
        def _save_corrections():
            state = pipeline.save_corrections()
            return jsonify({"ok": True, "state": state_to_dict(state)})

        @app.route("/corrections", methods=["DELETE"])
        def _discard_corrections():
            pipeline.discard_corrections()
            return jsonify({"ok": True})

        @app.route("/solver-string", methods=["POST"])
        def _solver_string():
            return jsonify({"ok": True, "solver_string": pipeline.generate_solver_string()})

        @app.route("/solve", methods=["POST"])
        def _solve():
            pipeline.solve_async()
            return jsonify({"ok": True, "job": "/jobs/solve"}), 202

        @app.route("/stepper")
        def _stepper():
            return jsonify({"ok": True, **pipeline.stepper.to_dict()})

        @app.route("/stepper/next", methods=["POST"])
        def _stepper_next():
            moved = pipeline.stepper.advance()
            return jsonify({"ok": True, "moved": moved, **pipeline.stepper.to_dict()})

        @app.route("/stepper/previous", methods=["POST"])
        def _stepper_previous():
            moved = pipeline.stepper.retreat()
            return jsonify({"ok": True, "moved": moved, **pipeline.stepper.to_dict()})

        @app.route("/session", methods=["DELETE"])
        def _reset_session():
            pipeline.reset()
            return jsonify({"ok": True})

        return app
