"""
Tests for CubeStateStore and its key-value backends.
"""
import json
from unittest.mock import patch

import pytest

from app_types import EMPTY, ColorName, CubeState
from config import FACE_ORDER
from conftest import SOLVED_CENTERS, uniform_matrices
from corrections import CorrectionOverlay
from cube_store import CubeStateStore, JsonFileStore, MemoryStore, format_face_text
from errors import StateError


class TestLayout:
    def test_persisted_keys(self, memory_store, solved_state):
        memory_store.save(solved_state)
        data = memory_store.backend.read()
        assert data["cubeSize"] == 3
        assert data["matrixCount"] == 6
        assert data["matrix_0"] == "Face #1:\n\nWhite White White\nWhite White White\nWhite White White\n"
        assert data["cubeMatricesJson"]["R"][0] == ["Red", "Red", "Red"]
        assert data["solverString"] == ""
        assert data["imageRefs"] == ["image0"]
        assert "letterColorMap" not in data

    def test_round_trip(self, memory_store, solved_state):
        solved_state.letter_color_map = dict(SOLVED_CENTERS)
        solved_state.solver_string = "U" * 54
        memory_store.save(solved_state)
        loaded = memory_store.load()
        assert loaded == solved_state

    def test_face_text_fallback_when_json_missing(self, memory_store, solved_2x2_state):
        memory_store.save(solved_2x2_state)
        data = memory_store.backend.read()
        del data["cubeMatricesJson"]
        memory_store.backend.write(data)
        assert memory_store.load().matrices == solved_2x2_state.matrices

    def test_format_face_text(self):
        matrix = [[ColorName.RED, ColorName.BLUE], [ColorName.GREEN, ColorName.WHITE]]
        assert format_face_text(4, matrix) == "Face #4:\n\nRed Blue\nGreen White\n"


class TestLoad:
    def test_empty_backend_is_empty(self, memory_store):
        assert memory_store.load() is EMPTY
        assert not memory_store.load()

    @pytest.mark.parametrize("data", [
        {"cubeSize": 4},
        {"cubeSize": 3, "matrixCount": 6},
        {"cubeSize": 3, "cubeMatricesJson": {f: [["Pink"] * 3] * 3 for f in FACE_ORDER}},
        {"cubeSize": 2, "cubeMatricesJson": {f: [["Red"] * 3] * 3 for f in FACE_ORDER}},
        {"cubeSize": "three"},
    ])
    def test_corrupt_data_is_empty(self, data):
        assert CubeStateStore(MemoryStore(data)).load() is EMPTY

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        assert CubeStateStore(JsonFileStore(path)).load() is EMPTY

    def test_missing_file_is_empty(self, tmp_path):
        assert CubeStateStore(JsonFileStore(tmp_path / "nope.json")).load() is EMPTY


class TestFileStore:
    def test_save_writes_json_atomically(self, tmp_path, solved_state):
        path = tmp_path / "nested" / "state.json"
        store = CubeStateStore(JsonFileStore(path))
        store.save(solved_state)
        assert json.loads(path.read_text(encoding="utf-8"))["cubeSize"] == 3
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_failed_replace_keeps_previous_state(self, tmp_path, solved_state, solved_2x2_state):
        path = tmp_path / "state.json"
        store = CubeStateStore(JsonFileStore(path))
        store.save(solved_state)
        with patch("cube_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.save(solved_2x2_state)
        assert store.load().cube_size == 3
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_clear_removes_file(self, tmp_path, solved_state):
        path = tmp_path / "state.json"
        store = CubeStateStore(JsonFileStore(path))
        store.save(solved_state)
        store.clear()
        assert not path.exists()
        assert store.load() is EMPTY


class TestCorrections:
    def test_apply_corrections_merges_and_clears(self, memory_store, solved_state):
        solved_state.solver_string = "stale"
        memory_store.save(solved_state)
        overlay = CorrectionOverlay()
        overlay.set('U', 0, 0, 'Red')

        updated = memory_store.apply_corrections(overlay)

        assert updated.matrices['U'][0][0] is ColorName.RED
        assert updated.solver_string == ""
        assert memory_store.load().matrices['U'][0][0] is ColorName.RED
        assert len(overlay) == 0

    def test_failed_write_keeps_overlay(self, memory_store, solved_state):
        memory_store.save(solved_state)
        overlay = CorrectionOverlay()
        overlay.set('F', 1, 2, 'Blue')
        with patch.object(memory_store.backend, "write", side_effect=OSError("boom")):
            with pytest.raises(OSError):
                memory_store.apply_corrections(overlay)
        assert len(overlay) == 1
        assert memory_store.load().matrices['F'][1][2] is ColorName.GREEN

    def test_out_of_bounds_correction_is_state_error(self, memory_store, solved_2x2_state):
        memory_store.save(solved_2x2_state)
        overlay = CorrectionOverlay()
        overlay.set('U', 2, 0, 'Red')
        with pytest.raises(StateError):
            memory_store.apply_corrections(overlay)
        assert len(overlay) == 1

    def test_empty_store_rejects_corrections(self, memory_store):
        overlay = CorrectionOverlay()
        overlay.set('U', 0, 0, 'Red')
        with pytest.raises(StateError):
            memory_store.apply_corrections(overlay)


class TestSolutionData:
    def test_save_solution_data_keeps_image_refs(self, memory_store, solved_state):
        memory_store.save(solved_state)
        solved = CubeState(cube_size=3, matrices=uniform_matrices(3), solver_string="U" * 54,
                           letter_color_map=dict(SOLVED_CENTERS))
        memory_store.save_solution_data(solved)
        data = memory_store.backend.read()
        assert data["solverString"] == "U" * 54
        assert data["letterColorMap"] == SOLVED_CENTERS
        assert data["imageRefs"] == ["image0"]

    def test_save_solution_data_needs_state(self, memory_store, solved_state):
        with pytest.raises(StateError):
            memory_store.save_solution_data(solved_state)
