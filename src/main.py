"""
main.py — Application entry point for the cube-snap solver service
=================================================================

Builds one pipeline session (state store, classifier, solver) and serves it
over the local HTTP API until interrupted.

Features & behavior:
 - CLI flags for bind address, state file, local (kociemba) solving and
   debug logging.
 - Robust startup/shutdown: `API.shutdown()` runs on exit and on
   SIGINT/SIGTERM, and in-flight jobs are discarded.
 - Debug mode is explicitly opt-in (`--debug`)

------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. MIT License.
"""

from __future__ import annotations

import argparse
import atexit
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from api import API
from config import API_HOST, API_PORT, STATE_PATH
from cube_store import CubeStateStore, JsonFileStore
from facelet_encoder import FaceletEncoder
from pipeline import CubePipeline
from services import LocalKociembaSolver, RemoteSolver, VisionClassifier

# if --debug is used.
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("main")


def create_arg_parser() -> argparse.ArgumentParser:
    """
    Build and return the CLI argument parser.
    """
    p = argparse.ArgumentParser(
        description="Rubik's Cube snap solver",
        allow_abbrev=False,
    )

    p.add_argument("--debug", action="store_true", help="Enable debug logging.")
    p.add_argument("--host", default=API_HOST, help="Address the HTTP API binds to.")
    p.add_argument("--port", type=int, default=API_PORT, help="Port of the HTTP API.")
    p.add_argument(
        "--state-path",
        type=Path,
        default=STATE_PATH,
        help="JSON file holding the persisted cube state."
    )
    p.add_argument(
        "--local-solver",
        action="store_true",
        help="Solve 3x3 cubes in-process with kociemba instead of the remote service."
    )
    p.add_argument(
        "--two-by-two-order",
        default=None,
        help="Face sequence of the 2x2 solver string (e.g. FRBLUD). Overrides CUBE_2X2_FACE_ORDER."
    )

    return p


def _install_signal_handlers(shutdown_callable):
    """
    Install safe signal handlers for SIGINT & SIGTERM.

    When triggered, the handler:
      - Logs the event
      - Calls the provided shutdown function
      - Exits cleanly using SystemExit
    """
    def _handler(signum, frame):
        logger.info("Received signal %s, initiating shutdown...", signum)
        try:
            shutdown_callable()
        except Exception as e:
            logger.exception("Error during shutdown handler: %s", e)
        raise SystemExit(0)

    for sig_name in ("SIGINT", "SIGTERM"):
        if hasattr(signal, sig_name):
            signal.signal(getattr(signal, sig_name), _handler)


def build_pipeline(state_path: Path, local_solver: bool = False,
                   two_by_two_order: Optional[str] = None) -> CubePipeline:
    store = CubeStateStore(JsonFileStore(state_path))
    solver = LocalKociembaSolver() if local_solver else RemoteSolver()
    encoder = FaceletEncoder(two_by_two_order.upper() if two_by_two_order else None)
    return CubePipeline(store, VisionClassifier(), solver, encoder=encoder)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Supports direct CLI invocation or programmatic use via:
        main(["--port", "5002"])

    Returns integer exit code.
    """
    args = create_arg_parser().parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled (verbose logging).")

    api: Optional[API] = None
    try:
        pipeline = build_pipeline(args.state_path, args.local_solver, args.two_by_two_order)
        api = API(pipeline, host=args.host, port=args.port)
        api.start()
    except Exception as e:
        logger.exception("Failed to initialize API: %s", e)
        return 3

    stopped = threading.Event()

    # Shutdown wrapper
    def _shutdown_safely():
        nonlocal api
        if api:
            try:
                api.shutdown()
            except Exception as e:
                logger.exception("Exception during API.shutdown(): %s", e)
            finally:
                api = None
                stopped.set()

    # Register shutdown handlers
    atexit.register(_shutdown_safely)
    _install_signal_handlers(_shutdown_safely)

    logger.info("Serving on http://%s:%s (state: %s, solver: %s)", args.host, args.port,
                args.state_path, "kociemba" if args.local_solver else "remote")
    try:
        stopped.wait()
    except Exception as e:
        logger.exception("Unhandled exception while serving: %s", e)
        return 1
    finally:
        _shutdown_safely()

    return 0


if __name__ == "__main__":
    sys.exit(main())
