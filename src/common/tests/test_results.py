import pytest
from ninja.errors import HttpError

from common.results import Err, ErrorCode, Ok, err, unwrap


def test_unwrap_ok_returns_data() -> None:
    assert unwrap(Ok(data={"id": 1})) == {"id": 1}


@pytest.mark.parametrize(
    "code,status",
    [
        (ErrorCode.NOT_FOUND, 404),
        (ErrorCode.PROMO_NOT_FOUND, 404),
        (ErrorCode.FORBIDDEN, 403),
        (ErrorCode.EMAIL_NOT_VERIFIED, 403),
        (ErrorCode.SOLD_OUT, 409),
        (ErrorCode.ALREADY_CLAIMED, 409),
        (ErrorCode.RETRY, 503),
        (ErrorCode.DOB_MISMATCH, 400),
    ],
)
def test_unwrap_err_maps_code_to_status(code: ErrorCode, status: int) -> None:
    with pytest.raises(HttpError) as exc_info:
        unwrap(err(code, "Nope."))

    assert exc_info.value.status_code == status
    assert str(exc_info.value) == f"{code}: Nope."


def test_ok_and_err_are_distinguishable() -> None:
    result: Ok[int] | Err = err(ErrorCode.INVALID_STATE, "Bad state.")

    assert result.ok is False
    assert isinstance(result, Err)
    assert result.model_dump() == {"ok": False, "code": "INVALID_STATE", "error": "Bad state."}
