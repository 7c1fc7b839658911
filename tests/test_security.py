from dataclasses import replace

import jwt
import pytest
from starlette.requests import Request

from todo_backend.auth import extract_token, token_cookie
from todo_backend.errors import AppError, InvalidJwtError, UnknownApiVersionError, ValidationFailedError
from todo_backend.security import create_access_token, decode_token, hash_password, verify_password
from todo_backend.settings import get_settings
from todo_backend.utils import error_envelope, success_envelope, validation_messages


def make_request(headers):
    raw = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "query_string": b""})


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("passw0rd!", rounds=4)
        assert hashed != "passw0rd!"
        assert verify_password("passw0rd!", hashed)
        assert not verify_password("passw0rd?", hashed)


class TestTokens:
    def test_round_trip(self, settings):
        token = create_access_token("01HJ8T0000NEW0000000000000", "a@example.com", settings)
        claims = decode_token(token, settings)
        assert claims.sub == "01HJ8T0000NEW0000000000000"
        assert claims.username == "a@example.com"
        assert claims.exp - claims.iat == settings.jwt_duration_minutes * 60

    def test_wrong_secret(self, settings):
        token = create_access_token("x", "a@example.com", settings)
        other = replace(settings, jwt_secret="another-secret-0123456789abcdef0123456789")
        with pytest.raises(jwt.InvalidTokenError):
            decode_token(token, other)

    def test_expired(self, settings):
        expired = replace(settings, jwt_duration_minutes=-5)
        token = create_access_token("x", "a@example.com", expired)
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_token(token, settings)

    def test_incomplete_claims(self, settings):
        token = jwt.encode({"sub": "x"}, settings.jwt_secret, algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            decode_token(token, settings)


class TestExtractToken:
    def test_cookie_names(self):
        assert extract_token(make_request({"Cookie": "token=abc"})) == "abc"
        assert extract_token(make_request({"Cookie": "access_token=def"})) == "def"
        assert extract_token(make_request({"Cookie": "token=abc; access_token=def"})) == "abc"
        assert extract_token(make_request({})) is None

    def test_token_cookie(self, settings):
        cookie = token_cookie("abc", settings)
        assert cookie["key"] == "token"
        assert cookie["value"] == "abc"
        assert cookie["path"] == "/"
        assert cookie["httponly"] is True
        assert cookie["max_age"] == settings.jwt_max_age_hours * 3600


class TestErrorRendering:
    def test_messages(self):
        assert AppError("data not found").render_message() == "error(data not found)."
        assert AppError("x").status_code == 200
        assert InvalidJwtError("boom").render_message() == "Missing or expired jwt(boom)."
        assert InvalidJwtError("boom").status_code == 400
        assert UnknownApiVersionError("v9").render_message() == "Unknown api version(v9)."
        assert ValidationFailedError(["a", "", "b"]).render_message() == "a or b"

    def test_envelopes(self):
        assert error_envelope("nope") == {"result": False, "message": "nope", "data": None}
        ok = success_envelope({"n": 1})
        assert (ok.result, ok.message, ok.data) == (True, "success", {"n": 1})
        assert success_envelope(None, message="user not found.").data is None

    def test_validation_messages(self):
        errors = [
            {"type": "missing", "loc": ("body", "title"), "msg": "Field required"},
            {"type": "value_error", "loc": ("body", "password"), "msg": "Value error, too weak"},
            {"type": "string_type", "loc": ("body", "fullname"), "msg": "Input should be a valid string"},
        ]
        assert validation_messages(errors) == [
            "`title` is null.",
            "too weak",
            "fullname: Input should be a valid string",
        ]


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ["PERSISTENCE_BACKEND", "JWT_SECRET", "JWT_KEY", "ALLOWED_ORIGIN", "PORT", "API_VERSIONS"]:
            monkeypatch.delenv(name, raising=False)
        s = get_settings()
        assert s.persistence_backend == "memory"
        assert s.allowed_origins == ["*"]
        assert s.port == 8080
        assert s.api_versions == ["v1"]
        assert s.request_timeout_seconds == 10.0
        assert s.jwt_secret

    def test_overrides(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)
        monkeypatch.setenv("JWT_KEY", "legacy-key")
        monkeypatch.setenv("ALLOWED_ORIGIN", "http://a.example, http://b.example")
        monkeypatch.setenv("PERSISTENCE_BACKEND", "mongo")
        monkeypatch.setenv("PORT", "not-a-number")
        monkeypatch.setenv("DEBUG", "yes")
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        s = get_settings()
        assert s.jwt_secret == "legacy-key"
        assert s.allowed_origins == ["http://a.example", "http://b.example"]
        assert s.persistence_backend == "memory"
        assert s.port == 8080
        assert s.debug is True
        assert s.log_level == "DEBUG"

    def test_settings_fixture_is_isolated(self, settings):
        assert settings.bcrypt_rounds == 4
