# Overview: Request payload parsing and coercion shared by the API routes.

from __future__ import annotations

from typing import Any

from flask import request

from .errors import ValidationFailure


def json_body() -> dict:
    """Request JSON object, or {} when the body is empty. Non-object bodies are rejected."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationFailure("Request body must be a JSON object")
    return payload


def coerce_int(value: Any, key: str) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationFailure(f"{key} must be an integer")


def require_int(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationFailure(f"{key} is required")
    return coerce_int(payload[key], key)


def optional_int(payload: dict, key: str) -> int | None:
    if payload.get(key) is None:
        return None
    return coerce_int(payload[key], key)


def optional_str(payload: dict, key: str, *, max_length: int = 2000) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailure(f"{key} must be a string")
    if len(value) > max_length:
        raise ValidationFailure(f"{key} must be at most {max_length} characters")
    return value


def require_bool(payload: dict, key: str) -> bool:
    value = payload.get(key)
    if not isinstance(value, bool):
        raise ValidationFailure(f"{key} must be a boolean")
    return value


def int_list(payload: dict, key: str) -> list[int]:
    value = payload.get(key)
    if not isinstance(value, list) or not value:
        raise ValidationFailure(f"{key} must be a non-empty list")
    return [coerce_int(v, key) for v in value]
