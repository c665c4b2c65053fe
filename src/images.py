"""
images.py — shrink face photos before upload
============================================

All six photos travel in one classifier request, so each is downscaled and
re-encoded as JPEG before being base64-encoded. A second, harsher pass runs
when the first one still produces too much base64 text.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import base64
import logging
from typing import List, Sequence, Union

import cv2
import numpy as np

from config import (
    FACE_ORDER,
    IMAGE_FALLBACK_JPEG_QUALITY,
    IMAGE_FALLBACK_MAX_SIDE,
    IMAGE_JPEG_QUALITY,
    IMAGE_MAX_B64_CHARS,
    IMAGE_MAX_SIDE,
)
from errors import ServiceError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

ImageInput = Union[bytes, bytearray, np.ndarray]


def decode_image(blob: ImageInput) -> np.ndarray:
    """Return a BGR frame from encoded bytes (or pass an array through)."""
    if isinstance(blob, np.ndarray):
        frame = blob
    else:
        if not blob:
            raise ServiceError("Empty image")
        arr = np.frombuffer(bytes(blob), dtype=np.uint8)
        frame = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if frame is None or frame.size == 0:
        raise ServiceError("Cannot decode image")
    return frame


def _scale_to(frame: np.ndarray, max_side: int) -> np.ndarray:
    h, w = frame.shape[:2]
    longest = max(h, w)
    if longest <= max_side:
        return frame
    scale = max_side / float(longest)
    size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
    return cv2.resize(frame, size, interpolation=cv2.INTER_AREA)


def _encode_b64(frame: np.ndarray, quality: int) -> str:
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ServiceError("JPEG encoding failed")
    return base64.b64encode(buf.tobytes()).decode("ascii")


def prepare_image(blob: ImageInput, max_side: int = IMAGE_MAX_SIDE,
                  quality: int = IMAGE_JPEG_QUALITY,
                  max_b64_chars: int = IMAGE_MAX_B64_CHARS) -> str:
    frame = decode_image(blob)
    b64 = _encode_b64(_scale_to(frame, max_side), quality)
    if len(b64) > max_b64_chars:
        logger.info("Image still %d base64 chars, recompressing", len(b64))
        b64 = _encode_b64(_scale_to(frame, IMAGE_FALLBACK_MAX_SIDE), IMAGE_FALLBACK_JPEG_QUALITY)
    return b64


def prepare_images(blobs: Sequence[ImageInput]) -> List[str]:
    """Compress one photo per face; exactly six are required."""
    if len(blobs) != len(FACE_ORDER):
        raise ServiceError(f"Expected {len(FACE_ORDER)} face images, got {len(blobs)}")
    return [prepare_image(b) for b in blobs]
