"""Input validators and ValidationError."""

import pytest

from getmeachai.core.validation import (
    ValidationError, required, validate_string, validate_number, validate_email, validate_url,
    validate_array, validate_enum, validate_object, validate_input, sanitize_html,
)


def test_validation_error_to_dict():
    err = ValidationError("Title is required", "title", "")
    assert err.to_dict() == {"error": "Title is required", "field": "title", "value": ""}
    assert isinstance(err, ValueError)


def test_required_rejects_blank():
    with pytest.raises(ValidationError):
        required("   ", "Name")
    assert required(0, "Count") == 0


def test_validate_string_trims_and_bounds():
    assert validate_string("  chai  ", "Drink") == "chai"
    with pytest.raises(ValidationError, match="at least 3"):
        validate_string("ab", "Title", min_length=3)
    with pytest.raises(ValidationError, match="must not exceed 5"):
        validate_string("abcdef", "Title", max_length=5)
    with pytest.raises(ValidationError, match="cannot be empty"):
        validate_string("   ", "Title")
    assert validate_string("   ", "Bio", allow_empty=True) == ""


def test_validate_string_pattern_and_type():
    assert validate_string("chai_lover", "Username", pattern=r"^[a-z_]+$") == "chai_lover"
    with pytest.raises(ValidationError, match="invalid format"):
        validate_string("chai lover", "Username", pattern=r"^[a-z_]+$")
    with pytest.raises(ValidationError, match="must be a string"):
        validate_string(12, "Title")


def test_validate_number():
    assert validate_number("42", "Amount") == 42
    assert validate_number(2.5, "Temperature") == 2.5
    assert validate_number(10.0, "Goal", integer=True) == 10
    with pytest.raises(ValidationError, match="must be an integer"):
        validate_number(10.5, "Goal", integer=True)
    with pytest.raises(ValidationError, match="at least 10"):
        validate_number(5, "Amount", min_value=10)
    with pytest.raises(ValidationError, match="valid number"):
        validate_number(True, "Amount")
    with pytest.raises(ValidationError, match="valid number"):
        validate_number(float("nan"), "Amount")


def test_validate_email_lowercases():
    assert validate_email(" Asha@Example.COM ") == "asha@example.com"
    with pytest.raises(ValidationError):
        validate_email("not-an-email")


def test_validate_url():
    assert validate_url("https://getmeachai.com/x") == "https://getmeachai.com/x"
    with pytest.raises(ValidationError, match="protocols"):
        validate_url("ftp://files.example.com")
    with pytest.raises(ValidationError):
        validate_url("getmeachai.com")


def test_validate_array_reports_index():
    assert validate_array(["a", "b"], "Tags", max_length=3) == ["a", "b"]
    with pytest.raises(ValidationError, match=r"Tags\[1\]"):
        validate_array(["ok", ""], "Tags", item_validator=lambda t: validate_string(t, "Tag"))
    with pytest.raises(ValidationError, match="must be an array"):
        validate_array("nope", "Tags")


def test_validate_enum():
    assert validate_enum("art", ("art", "music"), "Category") == "art"
    with pytest.raises(ValidationError, match="must be one of: art, music"):
        validate_enum("sports", ("art", "music"), "Category")


def test_validate_object_collects_errors():
    schema = {
        "title": (lambda v: validate_string(v, "Title", min_length=3), {"required": True}),
        "goal": (lambda v: validate_number(v, "Goal", min_value=1000), {"required": True}),
        "brief": lambda v: validate_string(v, "Brief"),
    }
    with pytest.raises(ValidationError) as exc:
        validate_object({"title": "ab", "goal": 5}, schema)
    assert "Title must be at least 3 characters" in exc.value.message
    assert "Goal must be at least 1000" in exc.value.message

    cleaned = validate_object({"title": " Chai ", "goal": 2000, "brief": None}, schema)
    assert cleaned == {"title": "Chai", "goal": 2000}


def test_validate_input_rejects_unknown_fields():
    with pytest.raises(ValidationError, match="Unexpected fields: extra"):
        validate_input({"name": "x", "extra": 1}, {"name": lambda v: v})


def test_sanitize_html():
    assert sanitize_html('<b>"hi"</b>') == "&lt;b&gt;&quot;hi&quot;&lt;&#x2F;b&gt;"
    assert sanitize_html(5) == 5
