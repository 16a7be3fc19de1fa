"""Tests for bearer parsing, token verification and the moderation gate."""

import time

import jwt
import pytest

from magpie.auth import AdminGate, Identity, TokenVerifier, bearer_token, secret_matches
from magpie.errors import Forbidden, Unauthorized

JWT_SECRET = "unit-test-jwt-secret-with-32-bytes!!"


def make_token(sub="user_1", secret=JWT_SECRET, aud="authenticated", expires_in=3600):
    payload = {"sub": sub, "aud": aud, "exp": int(time.time()) + expires_in, "email": f"{sub}@x.org"}
    return jwt.encode(payload, secret, algorithm="HS256")


class TestBearerToken:
    def test_extracts_token(self):
        assert bearer_token("Bearer abc123") == "abc123"

    def test_scheme_is_case_insensitive(self):
        assert bearer_token("bearer abc123") == "abc123"

    @pytest.mark.parametrize("header", [None, "", "abc123", "Basic abc123", "Bearer a b"])
    def test_rejects_other_shapes(self, header):
        assert bearer_token(header) is None


class TestSecretMatches:
    def test_match(self):
        assert secret_matches("s3cret", "s3cret")

    def test_mismatch(self):
        assert not secret_matches("nope", "s3cret")

    def test_unconfigured_secret_never_matches(self):
        assert not secret_matches("", "")
        assert not secret_matches(None, "")


class TestTokenVerifier:
    def test_valid_token(self):
        identity = TokenVerifier(JWT_SECRET).verify(make_token("user_42"))

        assert identity == Identity(subject="user_42", email="user_42@x.org")

    def test_wrong_signature(self):
        with pytest.raises(Unauthorized):
            TokenVerifier(JWT_SECRET).verify(make_token(secret="another-secret-with-32-bytes-long!!"))

    def test_expired(self):
        with pytest.raises(Unauthorized) as exc_info:
            TokenVerifier(JWT_SECRET).verify(make_token(expires_in=-60))
        assert exc_info.value.message == "Token has expired"

    def test_wrong_audience(self):
        with pytest.raises(Unauthorized):
            TokenVerifier(JWT_SECRET).verify(make_token(aud="anon"))

    def test_garbage(self):
        with pytest.raises(Unauthorized):
            TokenVerifier(JWT_SECRET).verify("not-a-jwt")

    def test_unconfigured_secret_rejects_everything(self):
        with pytest.raises(Unauthorized):
            TokenVerifier("").verify(make_token())


class TestAdminGate:
    def test_empty_allow_list_grants_any_identity(self):
        gate = AdminGate(admin_ids=[], pipeline_secret="pipe")

        caller = gate.authorize(Identity(subject="anyone"))

        assert gate.allows_everyone
        assert caller.actor == "anyone"
        assert not caller.is_pipeline

    def test_listed_identity_is_granted(self):
        gate = AdminGate(admin_ids={"admin_1", "admin_2"})

        assert gate.authorize(Identity(subject="admin_2")).actor == "admin_2"

    def test_unlisted_identity_is_forbidden(self):
        gate = AdminGate(admin_ids={"admin_1"})

        with pytest.raises(Forbidden):
            gate.authorize(Identity(subject="user_9"))

    @pytest.mark.parametrize("admin_ids", [set(), {"admin_1"}])
    def test_missing_identity_is_unauthorized(self, admin_ids):
        gate = AdminGate(admin_ids=admin_ids)

        with pytest.raises(Unauthorized):
            gate.authorize(None)

    def test_pipeline_secret_grants_reader_access(self):
        gate = AdminGate(admin_ids={"admin_1"}, pipeline_secret="pipe")

        caller = gate.authorize_reader("pipe", None)

        assert caller.is_pipeline
        assert caller.actor == "pipeline"

    def test_wrong_pipeline_secret_falls_through_to_admin_path(self):
        gate = AdminGate(admin_ids={"admin_1"}, pipeline_secret="pipe")

        with pytest.raises(Unauthorized):
            gate.authorize_reader("wrong", None)
        assert gate.authorize_reader("wrong", Identity("admin_1")).actor == "admin_1"

    def test_unconfigured_pipeline_secret_grants_nothing(self):
        gate = AdminGate(admin_ids={"admin_1"}, pipeline_secret="")

        assert not gate.has_pipeline_access("")
        assert not gate.has_pipeline_access(None)
