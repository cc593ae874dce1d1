import pytest

from wondernest.validation import (
	is_valid_email,
	is_valid_uuid,
	sanitize_string,
	validate_engagement_type,
	validate_password,
	validate_pin,
)


@pytest.mark.parametrize("pin", ["135790", "246813", "902468"])
def test_valid_pins(pin):
	assert validate_pin(pin).is_valid


@pytest.mark.parametrize(
	"pin, message",
	[
		("", "Please enter a PIN"),
		(None, "Please enter a PIN"),
		("12345", "PIN must be exactly 6 digits"),
		("1234567", "PIN must be exactly 6 digits"),
		("12a456", "PIN must be exactly 6 digits"),
		("111111", "PIN cannot be all the same digit"),
		("000000", "PIN cannot be all the same digit"),
		("123456", "PIN cannot be sequential (e.g., 123456)"),
		("456789", "PIN cannot be sequential (e.g., 123456)"),
		("654321", "PIN cannot be reverse sequential (e.g., 654321)"),
		("987654", "PIN cannot be reverse sequential (e.g., 654321)"),
	],
)
def test_invalid_pins(pin, message):
	result = validate_pin(pin)
	assert not result.is_valid
	assert result.error_message == message


def test_non_ascii_digits_rejected():
	assert not validate_pin("١٣٥٧٩٠").is_valid


def test_password_rules():
	assert validate_password("Sunshine42").is_valid
	assert validate_password("").error_message == "Password is required"
	short = validate_password("Ab1")
	assert "at least 8 characters" in short.error_message
	missing = validate_password("alllowercase")
	assert "uppercase letter" in missing.error_message
	assert "digit" in missing.error_message
	assert ", " in missing.error_message


def test_common_password_is_case_insensitive():
	result = validate_password("PASSWORD123")
	assert not result.is_valid
	assert "too common" in result.error_message


def test_email():
	assert is_valid_email(" parent@example.com ")
	assert not is_valid_email("parent@")
	assert not is_valid_email("")
	assert not is_valid_email(None)


def test_uuid():
	assert is_valid_uuid("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
	assert not is_valid_uuid("not-a-uuid")
	assert not is_valid_uuid("")


def test_engagement_types():
	assert validate_engagement_type(" Completed ").is_valid
	assert validate_engagement_type("viewed").is_valid
	assert not validate_engagement_type("watched").is_valid
	assert not validate_engagement_type(None).is_valid


def test_sanitize_string():
	assert sanitize_string("  <b>Hi</b> 'there' ") == "bHi/b there"
	assert sanitize_string(None) is None
