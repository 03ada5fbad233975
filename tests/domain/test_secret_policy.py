"""Tests for the callback secret policy."""

import pytest

from bandwatch.domain.value_objects.secret_policy import Open, RequireSecret, SecretPolicy


class TestFromSecret:
    def test_empty_secret_is_open(self):
        assert isinstance(SecretPolicy.from_secret(""), Open)

    def test_missing_secret_is_open(self):
        assert isinstance(SecretPolicy.from_secret(None), Open)

    def test_configured_secret_requires_it(self):
        policy = SecretPolicy.from_secret("s3cret")
        assert isinstance(policy, RequireSecret)
        assert policy.secret == "s3cret"


class TestOpen:
    def test_authorizes_anything(self):
        policy = Open()
        assert policy.authorize(None) is True
        assert policy.authorize("whatever") is True

    def test_has_no_secret(self):
        assert Open().secret is None


class TestRequireSecret:
    def test_matching_secret(self):
        assert RequireSecret("abc").authorize("abc") is True

    def test_wrong_secret(self):
        assert RequireSecret("abc").authorize("abd") is False

    def test_missing_secret(self):
        assert RequireSecret("abc").authorize(None) is False

    def test_empty_presented_secret(self):
        assert RequireSecret("abc").authorize("") is False

    def test_rejects_empty_value(self):
        with pytest.raises(ValueError):
            RequireSecret("")

    def test_value_not_in_repr(self):
        assert "topsecret" not in repr(RequireSecret("topsecret"))
