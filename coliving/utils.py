"""Utility functions for the application."""

from .errors import ValidationError


def validate_form(form):
    """Validate a submitted Flask-WTF form or raise ``ValidationError``.

    The message names the first field that failed and its first error.
    """
    if form.validate_on_submit():
        return form
    for field_name, messages in form.errors.items():
        if messages:
            field = getattr(form, field_name, None)
            label = field.label.text if field is not None else field_name
            raise ValidationError(f"{label}: {messages[0]}")
    raise ValidationError("Invalid request.")


def json_list(payload, key):
    """Read an optional list from a JSON payload."""
    value = (payload or {}).get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list.")
    return value
