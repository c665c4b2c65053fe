"""config.py — project configuration
------------------------------------

This file centralizes the runtime constants of the cube-snap solver: face and
color orderings, solver wire-format rules, external service endpoints, image
compression trade-offs and the local HTTP server binding.

Notes / warnings
- Deployment-specific values (API key, endpoints, state path, host/port) are
  read once from the environment at import time. Tests and embedding code
  should pass explicit values to the classes instead of mutating this module.
- The 2x2 face traversal (`TWO_BY_TWO_FACE_ORDER`) must match the solving
  service in use and has no default. Set `CUBE_2X2_FACE_ORDER` (six face
  letters, e.g. "FRBLUD") once the service's order is confirmed.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

import os
from pathlib import Path
from typing import Dict, List, Tuple

# ---------------- Rubik cube configurations ----------------

# Capture order and kociemba order are the same: photo #1 is U, photo #6 is B.
FACE_ORDER: List[str] = ['U', 'R', 'F', 'D', 'L', 'B']

FACE_NAMES: Dict[str, str] = {
    'U': 'Up',
    'R': 'Right',
    'F': 'Front',
    'D': 'Down',
    'L': 'Left',
    'B': 'Back',
}

# Canonical sticker vocabulary, in the order shown by the color picker.
COLOR_NAMES: List[str] = ['White', 'Yellow', 'Red', 'Orange', 'Blue', 'Green']

# Single-character color codes used by the 2x2 wire format.
COLOR_TO_CHAR: Dict[str, str] = {
    'White': 'W',
    'Yellow': 'Y',
    'Green': 'G',
    'Blue': 'B',
    'Orange': 'O',
    'Red': 'R',
}

DEFAULT_COLOR: str = 'White'

SUPPORTED_SIZES: Tuple[int, ...] = (2, 3)

# Expected solver string length per cube size.
SOLVER_STRING_LENGTH: Dict[int, int] = {2: 24, 3: 54}

# (row, col) of the center sticker on a 3x3 face.
CENTER_CELL: Tuple[int, int] = (1, 1)

# 54-char facelet string of a solved cube (kociemba order).
FACES_INIT_STATE: str = "UUUUUUUUURRRRRRRRRFFFFFFFFFDDDDDDDDDLLLLLLLLLBBBBBBBBB"

# ---------------- 2x2 wire format ----------------
# The 2x2 service reads the faces in this sequence; every face contributes its
# corners clockwise starting top-left. No default: 2x2 encoding raises
# EncodingError until CUBE_2X2_FACE_ORDER is set.
TWO_BY_TWO_FACE_ORDER: List[str] = list(os.environ.get("CUBE_2X2_FACE_ORDER", ""))
TWO_BY_TWO_CORNER_ORDER: List[Tuple[int, int]] = [(0, 0), (0, 1), (1, 1), (1, 0)]

# ---------------- Classification service ----------------
GEMINI_API_KEY: str = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_ENDPOINT: str = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)
CLASSIFY_TIMEOUT: float = 60.0

CLASSIFICATION_PROMPT: str = (
    "I'm providing you with 6 images of a Rubik's cube, one for each face. "
    "This is either a standard 3x3 or a 2x2 Rubik's cube. "
    "Analyze these images as a complete set and identify whether it is a 2x2 or a 3x3 cube. "
    "Then, for each face, identify the color of each square. "
    "IMPORTANT: The standard colors on a Rubik's cube are White, Yellow, Red, Orange, Blue, and Green. "
    "CRUCIAL: Be consistent with color identification across all faces. "
    "The same color should be given the same name on all faces. "
    "Please structure your response in the following JSON format for consistency:\n\n"
    "{\n"
    "  \"cube_size\": \"2x2\" or \"3x3\",\n"
    "  \"faces\": [\n"
    "    {\n"
    "      \"face_number\": 1,\n"
    "      \"matrix\": [[\"Color1\", \"Color2\"], [\"Color3\", \"Color4\"]]\n"
    "    }\n"
    "    // Repeat for faces 2-6, using a 3x3 matrix for a 3x3 cube\n"
    "  ]\n"
    "}\n\n"
    "Remember that the center square of each face in a 3x3 cube indicates the target color "
    "for that face in the solved state. For a 2x2, the colors on the four stickers of a face are needed."
)

# ---------------- Solving service ----------------
SOLVER_ENDPOINT: str = os.environ.get("CUBE_SOLVER_ENDPOINT", "https://kociemba.onrender.com/solve")
SOLVE_TIMEOUT: float = 30.0

# ---------------- Image upload ----------------
# Six images go out in a single request, so each one is kept small. A second,
# harsher pass kicks in when the base64 payload is still above the limit.
IMAGE_MAX_SIDE: int = 300
IMAGE_JPEG_QUALITY: int = 80
IMAGE_FALLBACK_MAX_SIDE: int = 200
IMAGE_FALLBACK_JPEG_QUALITY: int = 40
IMAGE_MAX_B64_CHARS: int = 500_000

# ---------------- Filesystem paths ----------------
STATE_PATH: Path = Path(os.environ.get("CUBE_STATE_PATH", str(Path.cwd() / "state" / "cube_state.json")))

# ---------------- HTTP API ----------------
API_HOST: str = os.environ.get("CUBE_API_HOST", "127.0.0.1")
API_PORT: int = int(os.environ.get("CUBE_API_PORT", "5001"))
