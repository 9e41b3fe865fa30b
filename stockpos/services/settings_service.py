from __future__ import annotations

import json
from typing import Any

from ..extensions import db
from ..models import Setting
from ..validation import ValidationError

MAX_KEY_LENGTH = 128


class SettingsValidationError(ValidationError):
    pass


def _stringify(key: str, value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    raise SettingsValidationError(
        f"Setting {key} must be a string, number or boolean",
        details=[{"field": key, "message": "must be a string, number or boolean"}],
    )


def get_settings() -> dict[str, str | None]:
    """All settings as a flat {key: value} mapping, ordered by key."""
    rows = db.session.query(Setting).order_by(Setting.key.asc()).all()
    return {row.key: row.value for row in rows}


def update_settings(values: Any) -> dict[str, str | None]:
    """
    Upsert every key in values in one transaction.

    Returns the full settings mapping after the update.
    """
    if not isinstance(values, dict):
        raise SettingsValidationError("settings must be an object")

    cleaned: dict[str, str | None] = {}
    details = []
    for key, value in values.items():
        key = str(key).strip()
        if not key or len(key) > MAX_KEY_LENGTH:
            details.append({"field": key, "message": f"key must be 1-{MAX_KEY_LENGTH} characters"})
            continue
        try:
            cleaned[key] = _stringify(key, value)
        except SettingsValidationError as e:
            details.extend(e.details)
    if details:
        raise SettingsValidationError("Invalid settings", details=details)

    try:
        existing = {
            row.key: row
            for row in db.session.query(Setting).filter(Setting.key.in_(list(cleaned))).all()
        } if cleaned else {}
        for key, value in cleaned.items():
            row = existing.get(key)
            if row is None:
                db.session.add(Setting(key=key, value=value))
            else:
                row.value = value
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return get_settings()
