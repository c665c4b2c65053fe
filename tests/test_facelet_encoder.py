"""
Tests for FaceletEncoder: the 3x3 facelet string, the 2x2 color string and
decoding back to matrices.
"""
import pytest

from app_types import ColorName, CubeState
from config import FACES_INIT_STATE, FACE_ORDER
from conftest import SOLVED_CENTERS, uniform_matrices
from errors import EncodingError
from facelet_encoder import FaceletEncoder


@pytest.fixture
def encoder():
    return FaceletEncoder()


def _scrambled_3x3():
    matrices = uniform_matrices(3)
    matrices['U'][0][0] = ColorName.RED
    matrices['R'][0][0] = ColorName.WHITE
    matrices['F'][2][1] = ColorName.BLUE
    matrices['B'][0][2] = ColorName.GREEN
    return CubeState(cube_size=3, matrices=matrices)


class TestThreeByThree:
    def test_solved_cube_encodes_to_face_letters(self, encoder, solved_state):
        assert encoder.encode(solved_state) == "U" * 9 + "R" * 9 + "F" * 9 + "D" * 9 + "L" * 9 + "B" * 9
        assert encoder.encode(solved_state) == FACES_INIT_STATE

    def test_letters_follow_centers(self, encoder):
        facelets = encoder.encode(_scrambled_3x3())
        assert len(facelets) == 54
        assert set(facelets) <= set(FACE_ORDER)
        assert facelets[0] == 'R'
        assert facelets[9] == 'U'
        assert facelets[18 + 7] == 'B'

    def test_letter_color_map(self, encoder, solved_state):
        assert encoder.letter_color_map(solved_state) == SOLVED_CENTERS

    def test_decode_recovers_cells(self, encoder):
        state = _scrambled_3x3()
        facelets = encoder.encode(state)
        decoded = encoder.decode(facelets, 3, encoder.letter_color_map(state))
        assert decoded == state.matrices

    def test_shared_center_color_fails(self, encoder, solved_state):
        solved_state.matrices['R'][1][1] = ColorName.WHITE
        with pytest.raises(EncodingError, match="Duplicate center"):
            encoder.encode(solved_state)

    def test_missing_face_fails(self, encoder):
        matrices = uniform_matrices(3)
        del matrices['L']
        with pytest.raises(EncodingError, match="Missing faces: L"):
            encoder.encode(CubeState(cube_size=3, matrices=matrices))

    def test_wrong_dimensions_fail(self, encoder, solved_state):
        solved_state.matrices['D'] = [[ColorName.YELLOW] * 2] * 2
        with pytest.raises(EncodingError):
            encoder.encode(solved_state)

    def test_unknown_color_fails(self, encoder, solved_state):
        solved_state.matrices['F'][0][0] = "Purple"
        with pytest.raises(EncodingError, match="unknown color"):
            encoder.encode(solved_state)

    def test_decode_needs_letter_map(self, encoder):
        with pytest.raises(EncodingError):
            encoder.decode(FACES_INIT_STATE, 3)


class TestTwoByTwo:
    @pytest.fixture
    def encoder(self):
        return FaceletEncoder(two_by_two_face_order="FRBLUD")

    def test_solved_2x2_uses_color_chars(self, encoder, solved_2x2_state):
        facelets = encoder.encode(solved_2x2_state)
        assert len(facelets) == 24
        assert set(facelets) <= set("WYGBOR")
        assert facelets == "GGGG" "RRRR" "BBBB" "OOOO" "WWWW" "YYYY"

    def test_corners_run_clockwise_from_top_left(self, encoder, solved_2x2_state):
        front = solved_2x2_state.matrices['F']
        front[0][1] = ColorName.RED
        front[1][0] = ColorName.ORANGE
        assert encoder.encode(solved_2x2_state)[:4] == "GRGO"

    def test_configured_face_order(self, solved_2x2_state):
        encoder = FaceletEncoder(two_by_two_face_order="URFDLB")
        assert encoder.encode(solved_2x2_state) == "WWWW" "RRRR" "GGGG" "YYYY" "OOOO" "BBBB"

    def test_invalid_face_order_is_rejected(self):
        with pytest.raises(ValueError):
            FaceletEncoder(two_by_two_face_order="UUFDLB")

    def test_decode_round_trip(self, encoder, solved_2x2_state):
        solved_2x2_state.matrices['U'][1][1] = ColorName.BLUE
        decoded = encoder.decode(encoder.encode(solved_2x2_state), 2)
        assert decoded == solved_2x2_state.matrices

    def test_letter_color_map_is_3x3_only(self, encoder, solved_2x2_state):
        with pytest.raises(EncodingError):
            encoder.letter_color_map(solved_2x2_state)

    def test_unconfigured_order_refuses_to_encode(self, solved_2x2_state):
        with pytest.raises(EncodingError, match="2x2 face order not configured"):
            FaceletEncoder(two_by_two_face_order="").encode(solved_2x2_state)

    def test_unconfigured_order_refuses_to_decode(self):
        with pytest.raises(EncodingError, match="2x2 face order not configured"):
            FaceletEncoder(two_by_two_face_order=[]).decode("W" * 24, 2)

    def test_no_default_order(self, monkeypatch, solved_2x2_state):
        monkeypatch.setattr("facelet_encoder.TWO_BY_TWO_FACE_ORDER", [])
        with pytest.raises(EncodingError, match="not configured"):
            FaceletEncoder().encode(solved_2x2_state)

    def test_unconfigured_order_still_encodes_3x3(self, solved_state):
        assert FaceletEncoder(two_by_two_face_order="").encode(solved_state) == FACES_INIT_STATE
