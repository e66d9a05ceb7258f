import pytest

from spritepay_api.services.security.errors import InputValidationError
from spritepay_api.services.security.validators import (
    PaymentKeyKind,
    TaxIdKind,
    classify_payment_key,
    require_amount,
    require_payment_key,
    sanitize_text,
    validate_amount,
    validate_cnpj,
    validate_cpf,
    validate_payment_key,
    validate_tax_id,
)

VALID_CPF = "52998224725"
VALID_CNPJ = "11222333000181"


def test_valid_personal_tax_id_accepted_in_both_formats() -> None:
    assert validate_cpf(VALID_CPF)
    assert validate_cpf("529.982.247-25")
    assert validate_tax_id(VALID_CPF, TaxIdKind.PERSONAL)
    assert validate_tax_id(VALID_CPF, "personal")


def test_any_single_digit_change_breaks_personal_tax_id() -> None:
    for index in range(len(VALID_CPF)):
        original = int(VALID_CPF[index])
        for replacement in range(10):
            if replacement == original:
                continue
            altered = VALID_CPF[:index] + str(replacement) + VALID_CPF[index + 1 :]
            assert not validate_cpf(altered), altered


def test_valid_business_tax_id_accepted() -> None:
    assert validate_cnpj(VALID_CNPJ)
    assert validate_cnpj("11.222.333/0001-81")
    assert validate_tax_id(VALID_CNPJ, TaxIdKind.BUSINESS)
    assert not validate_cnpj("11222333000182")


@pytest.mark.parametrize("digit", list("0123456789"))
def test_repeated_digits_rejected(digit: str) -> None:
    assert not validate_cpf(digit * 11)
    assert not validate_cnpj(digit * 14)


def test_tax_id_rejects_wrong_length_and_unknown_kind() -> None:
    assert not validate_cpf("1234567890")
    assert not validate_cnpj("123")
    assert not validate_tax_id(VALID_CPF, "corporate")
    assert not validate_tax_id(None, TaxIdKind.PERSONAL)


@pytest.mark.parametrize(
    "value,kind",
    [
        (VALID_CPF, PaymentKeyKind.PERSONAL_TAX_ID),
        ("529.982.247-25", PaymentKeyKind.PERSONAL_TAX_ID),
        ("11.222.333/0001-81", PaymentKeyKind.BUSINESS_TAX_ID),
        ("player@example.com", PaymentKeyKind.EMAIL),
        ("(11) 98765-4321", PaymentKeyKind.PHONE),
        ("123e4567-e89b-12d3-a456-426614174000", PaymentKeyKind.RANDOM_KEY),
        ("a" * 16 + "B" * 16, PaymentKeyKind.RANDOM_KEY),
    ],
)
def test_payment_key_shapes(value: str, kind: PaymentKeyKind) -> None:
    assert classify_payment_key(value) is kind
    assert validate_payment_key(value)


def test_phone_with_invalid_area_code_rejected() -> None:
    assert classify_payment_key("(01) 3333-4444") is PaymentKeyKind.PHONE
    assert not validate_payment_key("(01) 3333-4444")
    assert validate_payment_key("(21) 3333-4444")


def test_bare_eleven_digit_phone_is_read_as_personal_tax_id() -> None:
    assert classify_payment_key("11987654321") is PaymentKeyKind.PERSONAL_TAX_ID
    assert not validate_payment_key("11987654321")


@pytest.mark.parametrize(
    "value",
    ["", "   ", "not a key!", "player@", "a" * 31, None, 42, 3.5, ["x"], {"k": "v"}],
)
def test_payment_key_validation_is_total(value) -> None:
    assert validate_payment_key(value) is False


def test_sanitize_text_strips_markup_and_caps_length() -> None:
    assert sanitize_text("  <b>hi</b> & 'you' \"there\"  ") == "bhi/b  you there"
    assert sanitize_text(None) == ""
    assert len(sanitize_text("x" * 400)) == 255


def test_validate_amount_accepts_only_integers_in_range() -> None:
    assert validate_amount(1)
    assert validate_amount(10000)
    assert not validate_amount(0)
    assert not validate_amount(10001)
    assert not validate_amount(5.0)
    assert not validate_amount(True)
    assert not validate_amount("10")
    assert validate_amount(60, min_value=50, max_value=100)


def test_raising_helpers_report_a_reason() -> None:
    sanitized, kind = require_payment_key("  player@example.com ")
    assert sanitized == "player@example.com"
    assert kind is PaymentKeyKind.EMAIL

    with pytest.raises(InputValidationError) as missing:
        require_payment_key("   ")
    assert missing.value.field == "pix_key"

    with pytest.raises(InputValidationError) as invalid:
        require_payment_key("12345")
    assert "Invalid PIX key" in invalid.value.reason

    assert require_amount(25) == 25
    with pytest.raises(InputValidationError) as amount_error:
        require_amount(2.5)
    assert amount_error.value.field == "amount"
