"""Custom price overrides keyed by contractor and line item."""

from __future__ import annotations

import math
from typing import Dict, Iterable, Mapping, Optional

from .errors import InputValidationError


def override_key(contractor_id: str, item_id: str) -> str:
    return f"{contractor_id}-{item_id}"


def _parse_override_value(value: object) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InputValidationError([f"Override value must be numeric, got {value!r}"])
    if isinstance(value, (int, float)):
        numeric = float(value)
    else:
        text = str(value).replace("$", "").replace(",", "").strip()
        if not text:
            return None
        try:
            numeric = float(text)
        except ValueError:
            raise InputValidationError([f"Override value must be numeric, got {value!r}"]) from None
    if not math.isfinite(numeric):
        raise InputValidationError([f"Override value must be finite, got {value!r}"])
    return numeric


def apply_override_input(
    overrides: Mapping[str, float],
    contractor_id: str,
    item_id: str,
    value: object,
) -> Dict[str, float]:
    """Return a copy of ``overrides`` with the evaluator's input applied.

    Blank input clears the override for the cell; anything else must parse as
    a finite number (``$`` and thousands separators are accepted).
    """

    key = override_key(contractor_id, item_id)
    updated = dict(overrides)
    numeric = _parse_override_value(value)
    if numeric is None:
        updated.pop(key, None)
    else:
        updated[key] = numeric
    return updated


def overrides_for_contractor(
    overrides: Mapping[str, float],
    contractor_id: str,
    item_ids: Iterable[str],
) -> Dict[str, float]:
    """Return ``{item_id: value}`` for the contractor's overridden cells."""

    result: Dict[str, float] = {}
    for item_id in item_ids:
        key = override_key(contractor_id, item_id)
        if key in overrides:
            result[item_id] = overrides[key]
    return result


__all__ = ["override_key", "apply_override_input", "overrides_for_contractor"]
