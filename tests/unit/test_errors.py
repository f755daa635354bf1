"""Tests for mk_common.errors and the API response envelope."""

from src.mk_common.errors import (
    AddressNotFoundError,
    AppError,
    BestEffortFailure,
    DuplicateEventError,
    EmptyCartError,
    PaymentGatewayError,
    PersistenceError,
    SignatureVerificationError,
)
from src.mk_common.response import error_response, success_response


class TestErrorCodes:
    def test_empty_cart(self) -> None:
        err = EmptyCartError()
        assert isinstance(err, AppError)
        assert (err.code, err.http_status) == (2001, 400)

    def test_address_not_found_mentions_id(self) -> None:
        err = AddressNotFoundError("addr-9")
        assert (err.code, err.http_status) == (2002, 404)
        assert "addr-9" in err.message

    def test_signature_is_client_error(self) -> None:
        err = SignatureVerificationError()
        assert (err.code, err.http_status) == (3001, 400)

    def test_duplicate_keeps_event_id(self) -> None:
        err = DuplicateEventError("evt_1")
        assert err.event_id == "evt_1"
        assert err.http_status == 200

    def test_gateway_and_persistence_are_server_errors(self) -> None:
        assert PaymentGatewayError("down").http_status == 502
        assert PersistenceError("db").http_status == 500

    def test_best_effort_is_not_an_app_error(self) -> None:
        assert not issubclass(BestEffortFailure, AppError)


class TestResponseEnvelope:
    def test_success(self) -> None:
        resp = success_response({"a": 1})
        assert resp.code == 0
        assert resp.data == {"a": 1}
        assert resp.request_id.startswith("req_")

    def test_error(self) -> None:
        resp = error_response(2001, "Cart has no items")
        assert resp.code == 2001
        assert resp.data is None
