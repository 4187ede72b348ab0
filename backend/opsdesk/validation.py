from __future__ import annotations

from typing import Any, Mapping


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""


USER_TYPES = {"customer", "staff"}
MIN_PASSWORD_LENGTH = 6


def require_text(data: Mapping[str, Any], field: str, *, label: str | None = None) -> str:
    """Return data[field] stripped, or raise ValidationError when missing/blank."""
    value = data.get(field)
    if value is None:
        raise ValidationError(f"{label or field} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{label or field} must be a string")
    value = value.strip()
    if not value:
        raise ValidationError(f"{label or field} is required")
    return value


def optional_text(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


def validate_password(password: Any) -> str:
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


def validate_user_type(user_type: Any) -> str:
    if user_type not in USER_TYPES:
        raise ValidationError(
            f"Invalid userType {user_type!r}. Must be one of: {', '.join(sorted(USER_TYPES))}"
        )
    return user_type


def normalize_sequence(value: Any) -> list:
    """
    Normalize an ordered field persisted either as a list or as a key-indexed
    mapping ({"0": "a", "1": "b"}) to a list.

    - None -> []
    - list -> same order, None holes dropped
    - mapping -> values ordered by integer key when every key is an integer,
      otherwise by key
    - scalar -> [scalar]
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item is not None]
    if isinstance(value, Mapping):
        keys = list(value.keys())
        if all(isinstance(k, int) or (isinstance(k, str) and k.lstrip("-").isdigit()) for k in keys):
            keys.sort(key=lambda k: int(k))
        else:
            keys.sort(key=str)
        return [value[k] for k in keys if value[k] is not None]
    return [value]


def validate_options(options: Any, *, field: str = "options", min_count: int = 1) -> list[str]:
    """Options must be non-empty strings; list or key-indexed mapping accepted."""
    if options is None:
        raise ValidationError(f"{field} is required")
    if not isinstance(options, (list, tuple, Mapping)):
        raise ValidationError(f"{field} must be a list of strings")
    items = normalize_sequence(options)
    cleaned: list[str] = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"Every entry in {field} must be a non-empty string")
        cleaned.append(item.strip())
    if len(cleaned) < min_count:
        raise ValidationError(f"{field} must contain at least {min_count} entr{'y' if min_count == 1 else 'ies'}")
    return cleaned
