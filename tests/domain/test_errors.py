"""Tests for the error taxonomy."""

import pytest

from bandwatch.domain.errors import (
    BandwatchError,
    DuplicateApprovalError,
    InvalidTokenError,
    NotFoundError,
    ProbeError,
    SigningError,
    TransportError,
    UpstreamApiError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type",
        [
            SigningError,
            TransportError,
            UpstreamApiError,
            NotFoundError,
            ProbeError,
            InvalidTokenError,
            DuplicateApprovalError,
        ],
    )
    def test_all_derive_from_base(self, exc_type):
        assert issubclass(exc_type, BandwatchError)


class TestUpstreamApiError:
    def test_str_with_action_and_status(self):
        err = UpstreamApiError("Forbidden.RAM", action="CreateTicket", status_code=403)
        assert str(err) == "CreateTicket failed (HTTP 403): Forbidden.RAM"

    def test_str_without_action(self):
        assert str(UpstreamApiError("boom")) == "API call failed: boom"

    def test_keeps_request_id(self):
        err = UpstreamApiError("x", action="ListProducts", request_id="req-1")
        assert err.request_id == "req-1"
        assert err.status_code is None


class TestNotFoundError:
    def test_lists_candidates(self):
        err = NotFoundError("no product", candidates=("ECS (1)", "OSS (2)"))
        text = str(err)
        assert text.startswith("no product")
        assert "ECS (1)" in text
        assert "OSS (2)" in text

    def test_without_candidates(self):
        assert str(NotFoundError("nothing")) == "nothing"
