"""
Shared fixtures: cube states built from plain color names, an in-memory store
and fake classifier/solver collaborators.
"""
import concurrent.futures
import json

import cv2
import numpy as np
import pytest

from app_types import ColorName, CubeState
from config import FACE_ORDER
from cube_store import CubeStateStore, MemoryStore

SOLVED_CENTERS = {
    'U': 'White',
    'R': 'Red',
    'F': 'Green',
    'D': 'Yellow',
    'L': 'Orange',
    'B': 'Blue',
}


def uniform_matrices(size, centers=SOLVED_CENTERS):
    return {face: [[ColorName(centers[face])] * size for _ in range(size)] for face in FACE_ORDER}


def gemini_envelope(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def structured_payload(size, centers=SOLVED_CENTERS):
    faces = []
    for i, face in enumerate(FACE_ORDER):
        faces.append({"face_number": i + 1, "matrix": [[centers[face]] * size for _ in range(size)]})
    return {"cube_size": f"{size}x{size}", "faces": faces}


def jpeg_bytes(width=64, height=48, color=(0, 0, 255)):
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:] = color
    ok, buf = cv2.imencode(".jpg", frame)
    assert ok
    return buf.tobytes()


class FakeClassifier:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = []

    def classify_faces(self, images_b64):
        self.calls.append(list(images_b64))
        if self.error is not None:
            raise self.error
        return self.payload


class FakeSolver:
    def __init__(self, moves=None, error=None):
        self.moves = moves if moves is not None else ["R", "U'", "F2"]
        self.error = error
        self.calls = []

    def solve(self, facelets, cube_size):
        self.calls.append((facelets, cube_size))
        if self.error is not None:
            raise self.error
        return list(self.moves)


@pytest.fixture
def solved_state():
    return CubeState(cube_size=3, matrices=uniform_matrices(3), image_refs=["image0"])


@pytest.fixture
def solved_2x2_state():
    return CubeState(cube_size=2, matrices=uniform_matrices(2))


@pytest.fixture
def memory_store():
    return CubeStateStore(MemoryStore())


@pytest.fixture
def executor():
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def face_images():
    return [jpeg_bytes() for _ in FACE_ORDER]


@pytest.fixture
def classifier_3x3():
    return FakeClassifier(gemini_envelope("```json\n" + json.dumps(structured_payload(3)) + "\n```"))
