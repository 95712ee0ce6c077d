from datetime import date, timedelta

import pytest

from osot.error_handler import ErrorCode
from osot.utils.masking import mask_email, mask_phone
from osot.validation import (
    FormValidationError,
    normalize_phone,
    normalize_postal_code,
    raise_if_errors,
    validate_date_iso,
    validate_email,
    validate_in,
    validate_person_name,
    validate_phone,
    validate_postal_code,
)


def test_mask_email():
    assert mask_email("john.doe@example.com") == "joh*****@example.com"
    assert mask_email("ab@x.com") == "a*@x.com"
    assert mask_email("not-an-email") == "***"


def test_mask_phone_keeps_last_four_digits():
    assert mask_phone("(416) 555-0123") == "(***) ***-0123"
    assert mask_phone("1234") == "1234"


def test_phone_normalization():
    assert normalize_phone("416.555.0123") == "(416) 555-0123"
    assert normalize_phone("+1 416 555 0123") == "(416) 555-0123"
    errors = {}
    assert validate_phone("555-01", errors) == "555-01"
    assert "mobile_phone" in errors


def test_postal_code_normalization():
    assert normalize_postal_code(" k1a0b1 ") == "K1A 0B1"
    errors = {}
    assert validate_postal_code("k1a 0b1", errors) == "K1A 0B1"
    assert errors == {}
    validate_postal_code("D1A 0B1", errors)
    assert "postal_code" in errors


def test_email_lowercased_and_checked():
    errors = {}
    assert validate_email("  Jane.Doe@Example.COM ", errors) == "jane.doe@example.com"
    assert errors == {}
    validate_email("jane@", errors)
    assert errors["email"] == "Email is not valid"
    optional = {}
    validate_email("", optional, "secondary_email", required=False)
    assert optional == {}


def test_person_names():
    errors = {}
    validate_person_name("O'Brien-Smith", errors, "last_name")
    validate_person_name("Zoë", errors, "first_name")
    assert errors == {}
    validate_person_name("J0hn", errors, "first_name", label="First name")
    assert errors["first_name"].startswith("First name may only contain")


def test_dates():
    errors = {}
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    validate_date_iso(tomorrow, errors, "date_of_birth", not_future=True)
    assert errors["date_of_birth"] == "date_of_birth cannot be in the future"
    validate_date_iso("2020-13-01", errors, "year_ends")
    assert "valid date" in errors["year_ends"]
    assert validate_date_iso(date(2024, 1, 2), {}, "d") == "2024-01-02"


def test_validate_in():
    errors = {}
    validate_in("ON", ["ON", "QC"], errors, "province")
    assert errors == {}
    validate_in("XX", ["ON", "QC"], errors, "province")
    assert errors["province"] == "province has an invalid value"


@pytest.mark.parametrize(
    "errors,code",
    [
        ({"email": "bad"}, ErrorCode.INVALID_EMAIL_FORMAT),
        ({"secondary_email": "bad"}, ErrorCode.INVALID_EMAIL_FORMAT),
        ({"mobile_phone": "bad"}, ErrorCode.INVALID_PHONE_FORMAT),
        ({"postal_code": "bad"}, ErrorCode.INVALID_POSTAL_CODE),
        ({"password": "bad"}, ErrorCode.WEAK_PASSWORD),
        ({"first_name": "bad"}, ErrorCode.INVALID_NAME_FORMAT),
        ({"city": "bad"}, ErrorCode.VALIDATION_ERROR),
        ({"email": "bad", "city": "bad"}, ErrorCode.VALIDATION_ERROR),
    ],
)
def test_error_code_follows_single_field(errors, code):
    with pytest.raises(FormValidationError) as exc:
        raise_if_errors(errors)
    assert exc.value.code == code
    assert exc.value.field_errors == errors


def test_no_errors_no_raise():
    raise_if_errors({})
