"""
Tests for the classifier and solver clients. HTTP is faked by mocking the
requests session.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from config import CLASSIFICATION_PROMPT, FACES_INIT_STATE
from errors import ServiceError
from services import LocalKociembaSolver, RemoteSolver, VisionClassifier


def _response(status=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class TestVisionClassifier:
    def test_request_body(self):
        classifier = VisionClassifier(api_key="k", session=MagicMock())
        body = classifier.build_request(["aaa", "bbb"])
        parts = body["contents"][0]["parts"]
        assert parts[0] == {"text": CLASSIFICATION_PROMPT}
        assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": "aaa"}}
        assert len(parts) == 3

    def test_classify_returns_envelope(self):
        session = MagicMock()
        envelope = {"candidates": []}
        session.post.return_value = _response(payload=envelope)
        classifier = VisionClassifier(api_key="secret", model="m", session=session)

        assert classifier.classify_faces(["x"] * 6) == envelope
        args, kwargs = session.post.call_args
        assert args[0].endswith("/models/m:generateContent")
        assert kwargs["params"] == {"key": "secret"}

    def test_http_error_status(self):
        session = MagicMock()
        session.post.return_value = _response(status=403, text="denied")
        classifier = VisionClassifier(api_key="k", session=session)
        with pytest.raises(ServiceError, match="403") as exc:
            classifier.classify_faces(["x"])
        assert exc.value.status == 403

    def test_transport_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("offline")
        with pytest.raises(ServiceError, match="offline"):
            VisionClassifier(api_key="k", session=session).classify_faces(["x"])

    def test_non_json_body(self):
        session = MagicMock()
        session.post.return_value = _response(payload=ValueError("bad json"))
        with pytest.raises(ServiceError):
            VisionClassifier(api_key="k", session=session).classify_faces(["x"])

    def test_missing_api_key(self):
        session = MagicMock()
        with pytest.raises(ServiceError, match="API key"):
            VisionClassifier(api_key="", session=session).classify_faces(["x"])
        session.post.assert_not_called()


class TestRemoteSolver:
    def test_3x3_string_solution(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"solution": "R U' F2"})
        solver = RemoteSolver(endpoint="http://solver/solve", session=session)

        assert solver.solve(FACES_INIT_STATE, 3) == ["R", "U'", "F2"]
        session.get.assert_called_once()
        assert session.get.call_args.kwargs["params"] == {"cube": FACES_INIT_STATE}

    def test_2x2_list_solution(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"solution": ["R", "U2"]})
        assert RemoteSolver(session=session).solve("W" * 24, 2) == ["R", "U2"]

    def test_empty_solution(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"solution": ""})
        assert RemoteSolver(session=session).solve(FACES_INIT_STATE, 3) == []

    def test_error_payload(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"error": "invalid cube"})
        with pytest.raises(ServiceError, match="Error from API: invalid cube"):
            RemoteSolver(session=session).solve(FACES_INIT_STATE, 3)

    @pytest.mark.parametrize("payload", [{"foo": 1}, ["R"], {"solution": 5}])
    def test_unknown_format(self, payload):
        session = MagicMock()
        session.get.return_value = _response(payload=payload)
        with pytest.raises(ServiceError, match="Unknown response format"):
            RemoteSolver(session=session).solve(FACES_INIT_STATE, 3)

    def test_error_text_in_solution_is_raised_verbatim(self):
        session = MagicMock()
        text = "Error: Cube is unsolvable (corner twist)"
        session.get.return_value = _response(payload={"solution": text})
        with pytest.raises(ServiceError) as exc:
            RemoteSolver(session=session).solve(FACES_INIT_STATE, 3)
        assert exc.value.message == text

    @pytest.mark.parametrize("solution, message", [
        ("R U X2", "R U X2"),
        ("R U3 F", "R U3 F"),
        (["R", "u"], "R u"),
        (["R", "Facelet count wrong"], "R Facelet count wrong"),
    ])
    def test_non_move_tokens_are_rejected(self, solution, message):
        session = MagicMock()
        session.get.return_value = _response(payload={"solution": solution})
        with pytest.raises(ServiceError) as exc:
            RemoteSolver(session=session).solve(FACES_INIT_STATE, 3)
        assert exc.value.message == message

    def test_http_failure(self):
        session = MagicMock()
        session.get.return_value = _response(status=500)
        with pytest.raises(ServiceError, match="HTTP 500"):
            RemoteSolver(session=session).solve(FACES_INIT_STATE, 3)

    def test_timeout(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(ServiceError):
            RemoteSolver(session=session).solve(FACES_INIT_STATE, 3)

    def test_wrong_length_is_rejected_before_request(self):
        session = MagicMock()
        with pytest.raises(ServiceError, match="24-char"):
            RemoteSolver(session=session).solve("W" * 23, 2)
        session.get.assert_not_called()


class TestLocalKociembaSolver:
    def test_solve_and_cache(self):
        solver = LocalKociembaSolver()
        with patch("services.kociemba.solve", return_value="R U R'") as solve:
            assert solver.solve(FACES_INIT_STATE, 3) == ["R", "U", "R'"]
            assert solver.solve(FACES_INIT_STATE, 3) == ["R", "U", "R'"]
        solve.assert_called_once_with(FACES_INIT_STATE)

    def test_invalid_cube(self):
        with patch("services.kociemba.solve", side_effect=ValueError("bad cube")):
            with pytest.raises(ServiceError, match="bad cube"):
                LocalKociembaSolver().solve(FACES_INIT_STATE, 3)

    def test_error_text_from_kociemba_is_rejected(self):
        solver = LocalKociembaSolver()
        with patch("services.kociemba.solve", return_value="Error 8: Cube not solvable"):
            with pytest.raises(ServiceError, match="Error 8: Cube not solvable"):
                solver.solve(FACES_INIT_STATE, 3)
        assert solver._solve_cache == {}

    def test_rejects_2x2(self):
        with pytest.raises(ServiceError, match="3x3"):
            LocalKociembaSolver().solve("W" * 24, 2)
