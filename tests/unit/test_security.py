from __future__ import annotations

from starlette.requests import Request

from digest_service.config import get_settings
from digest_service.core.security import get_token_from_request


def _request(headers: dict[str, str]) -> Request:
  raw = [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in headers.items()]
  return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


def test_cookie_token_wins_over_header():
  settings = get_settings()
  request = _request({"cookie": f"{settings.auth_cookie_name}=cookie-token", "authorization": "Bearer header-token"})
  assert get_token_from_request(request, settings) == "cookie-token"


def test_bearer_header_token():
  assert get_token_from_request(_request({"authorization": "Bearer abc.def"}), get_settings()) == "abc.def"


def test_raw_header_token():
  assert get_token_from_request(_request({"authorization": "abc.def"}), get_settings()) == "abc.def"


def test_other_scheme_is_ignored():
  assert get_token_from_request(_request({"authorization": "Basic dXNlcjpwYXNz"}), get_settings()) is None


def test_missing_token():
  assert get_token_from_request(_request({}), get_settings()) is None
