"""DraftGenerator HTTP client, exercised with a mocked requests session."""

from unittest.mock import MagicMock

import pytest
import requests

from app.core.exceptions import ExternalServiceError
from app.integrations.draft_generator import DraftGenerator

URL = "https://drafts.example/generate"


def _response(*, json_body=None, text="", content_type="application/json", error=None):
    resp = MagicMock()
    resp.headers = {"Content-Type": content_type}
    resp.json.return_value = json_body
    resp.text = text
    if error:
        resp.raise_for_status.side_effect = error
    return resp


def _generator(response=None, side_effect=None):
    session = MagicMock()
    if side_effect:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    return DraftGenerator(URL, timeout=5, session=session), session


def test_json_email_content():
    gen, session = _generator(_response(json_body={"email_content": "Dear Ana"}))
    assert gen.generate({"application_id": 1}) == "Dear Ana"
    session.post.assert_called_once_with(URL, json={"application_id": 1}, timeout=5)


def test_json_content_key():
    gen, _ = _generator(_response(json_body={"content": "Hello"}))
    assert gen.generate({}) == "Hello"


def test_plain_text_body():
    gen, _ = _generator(_response(text="Plain draft", content_type="text/plain"))
    assert gen.generate({}) == "Plain draft"


def test_connection_error():
    gen, _ = _generator(side_effect=requests.ConnectionError("refused"))
    with pytest.raises(ExternalServiceError) as exc_info:
        gen.generate({})
    assert exc_info.value.service == "draft_generator"
    assert "refused" in str(exc_info.value)


def test_http_error_status():
    gen, _ = _generator(_response(error=requests.HTTPError("503 Server Error")))
    with pytest.raises(ExternalServiceError):
        gen.generate({})


def test_empty_draft():
    gen, _ = _generator(_response(json_body={"email_content": "   "}))
    with pytest.raises(ExternalServiceError, match="empty draft"):
        gen.generate({})


def test_disabled_without_url():
    gen = DraftGenerator("")
    assert gen.enabled is False
    with pytest.raises(ExternalServiceError, match="not configured"):
        gen.generate({})
