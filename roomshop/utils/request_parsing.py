"""Helpers for reading JSON request bodies."""
from typing import Any, Dict, Optional
from flask import request
from roomshop.exceptions import ValidationError


def get_payload() -> Dict[str, Any]:
    """JSON body, falling back to form data."""
    if request.is_json:
        payload = request.get_json(silent=True)
        if payload is None:
            raise ValidationError('Malformed JSON body')
        if not isinstance(payload, dict):
            raise ValidationError('JSON body must be an object')
        return payload
    return request.form.to_dict()


def get_int(payload: Dict[str, Any], key: str, required: bool = True,
            default: Optional[int] = None, min_value: Optional[int] = None,
            max_value: Optional[int] = None) -> Optional[int]:
    """
    Read an integer field.

    Accepts ints and numeric strings ("3"); rejects floats, booleans and
    anything outside [min_value, max_value].
    """
    value = payload.get(key)
    if value is None or value == '':
        if required:
            raise ValidationError(f'{key} is required', field=key)
        return default

    if isinstance(value, bool):
        raise ValidationError(f'{key} must be a whole number', field=key)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(f'{key} must be a whole number', field=key)
    elif not isinstance(value, int):
        raise ValidationError(f'{key} must be a whole number', field=key)

    if min_value is not None and value < min_value:
        raise ValidationError(f'{key} must be at least {min_value}', field=key)
    if max_value is not None and value > max_value:
        raise ValidationError(f'{key} must be at most {max_value}', field=key)
    return value


def get_str(payload: Dict[str, Any], key: str, required: bool = True,
            max_length: Optional[int] = None) -> Optional[str]:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{key} is required', field=key)
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{key} must be text', field=key)
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f'{key} must be at most {max_length} characters', field=key)
    return value


def get_bool(payload: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = payload.get(key, default)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)
