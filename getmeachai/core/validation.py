"""
Input validation helpers.

Every validator returns the cleaned value or raises ValidationError, which
route handlers turn into a 400 response via ValidationError.to_dict().
"""

import re
import math
from urllib.parse import urlparse

EMAIL_REGEX = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MAX_EMAIL_LENGTH = 254
MAX_URL_LENGTH = 2048


class ValidationError(ValueError):
    """Raised when user input fails validation"""

    def __init__(self, message, field=None, value=None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value

    def to_dict(self):
        data = {'error': self.message}
        if self.field:
            data['field'] = self.field
        if self.value is not None and isinstance(self.value, (str, int, float, bool)):
            data['value'] = self.value
        return data


def required(value, field_name='Field'):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required", field_name, value)
    return value


def validate_string(value, field_name='Field', min_length=None, max_length=None,
                    pattern=None, trim=True, allow_empty=False):
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string", field_name, value)

    result = value.strip() if trim else value

    if not allow_empty and len(result) == 0:
        raise ValidationError(f"{field_name} cannot be empty", field_name, value)

    if min_length is not None and len(result) < min_length:
        raise ValidationError(
            f"{field_name} must be at least {min_length} characters", field_name, value
        )

    if max_length is not None and len(result) > max_length:
        raise ValidationError(
            f"{field_name} must not exceed {max_length} characters", field_name, value
        )

    if pattern is not None:
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        if not regex.search(result):
            raise ValidationError(f"{field_name} has invalid format", field_name, value)

    return result


def validate_number(value, field_name='Field', min_value=None, max_value=None, integer=False):
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a valid number", field_name, value)

    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field_name} must be a valid number", field_name, value)
    elif isinstance(value, (int, float)):
        number = value
    else:
        raise ValidationError(f"{field_name} must be a valid number", field_name, value)

    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        raise ValidationError(f"{field_name} must be a valid number", field_name, value)

    if integer:
        if isinstance(number, float) and not number.is_integer():
            raise ValidationError(f"{field_name} must be an integer", field_name, value)
        number = int(number)
    elif isinstance(number, float) and number.is_integer() and isinstance(value, str) and '.' not in value:
        number = int(number)

    if min_value is not None and number < min_value:
        raise ValidationError(f"{field_name} must be at least {min_value}", field_name, value)

    if max_value is not None and number > max_value:
        raise ValidationError(f"{field_name} must not exceed {max_value}", field_name, value)

    return number


def validate_email(value, field_name='Email'):
    email = validate_string(value, field_name, max_length=MAX_EMAIL_LENGTH)
    if not EMAIL_REGEX.match(email):
        raise ValidationError(f"{field_name} must be a valid email address", field_name, value)
    return email.lower()


def validate_url(value, field_name='URL', protocols=('http', 'https')):
    url = validate_string(value, field_name, max_length=MAX_URL_LENGTH)
    try:
        parsed = urlparse(url)
    except ValueError:
        raise ValidationError(f"{field_name} must be a valid URL", field_name, value)
    if not parsed.scheme or not parsed.netloc:
        raise ValidationError(f"{field_name} must be a valid URL", field_name, value)
    if parsed.scheme not in protocols:
        raise ValidationError(
            f"{field_name} must use one of these protocols: {', '.join(protocols)}",
            field_name, value
        )
    return url


def validate_array(value, field_name='Field', min_length=None, max_length=None, item_validator=None):
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field_name} must be an array", field_name, value)

    if min_length is not None and len(value) < min_length:
        raise ValidationError(f"{field_name} must have at least {min_length} items", field_name, value)

    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field_name} must not have more than {max_length} items", field_name, value)

    if item_validator is None:
        return list(value)

    cleaned = []
    for i, item in enumerate(value):
        try:
            cleaned.append(item_validator(item))
        except ValidationError as e:
            raise ValidationError(f"{field_name}[{i}]: {e.message}", field_name, item)
    return cleaned


def validate_enum(value, allowed, field_name='Field'):
    if value not in allowed:
        raise ValidationError(
            f"{field_name} must be one of: {', '.join(str(a) for a in allowed)}",
            field_name, value
        )
    return value


def validate_object(data, schema, allow_extra=True):
    """
    Validate a dict against a schema of field -> validator.

    A schema entry is either a callable taking the value, or a tuple
    (callable, {'required': True}). Optional fields that are absent are
    skipped. All field errors are collected and raised together.
    """
    if not isinstance(data, dict):
        raise ValidationError("Input must be an object", None, None)

    errors = []
    result = {}

    for field, rule in schema.items():
        if isinstance(rule, tuple):
            validator, options = rule
        else:
            validator, options = rule, {}

        value = data.get(field)
        if value is None:
            if options.get('required'):
                errors.append(f"{field} is required")
            continue

        try:
            result[field] = validator(value)
        except ValidationError as e:
            errors.append(e.message)

    if not allow_extra:
        extra = [key for key in data if key not in schema]
        if extra:
            errors.append(f"Unexpected fields: {', '.join(extra)}")

    if errors:
        raise ValidationError('; '.join(errors))

    return result


def validate_input(data, schema):
    return validate_object(data, schema, allow_extra=False)


_HTML_ESCAPES = {
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
    '"': '&quot;',
    "'": '&#x27;',
    '/': '&#x2F;',
}


def sanitize_html(text):
    if not isinstance(text, str):
        return text
    return ''.join(_HTML_ESCAPES.get(ch, ch) for ch in text)
