"""Helpers for loading and sanitising relevance threshold overrides."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp *value* to the inclusive range [low, high]."""

    return max(low, min(high, value))


def coerce_unit_float(value: Any, default: float) -> float:
    """Parse ``value`` as a float in [0, 1], returning ``default`` when invalid."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return clamp(number)


def load_calibration_profile(path: str) -> Dict[str, Any]:
    """Load an optional calibration profile.

    The expected file format is JSON with a structure similar to::

        {
            "relevance": {
                "ratio": 0.3,
                "min_score": 0.05
            }
        }

    Any missing fields are ignored. The function returns an empty dictionary
    when the file is absent or malformed.
    """

    if not path:
        return {}

    try:
        data_path = Path(path)
    except (TypeError, ValueError):
        return {}

    if not data_path.is_file():
        return {}

    try:
        with data_path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, ValueError):
        return {}

    if not isinstance(payload, MutableMapping):
        return {}

    return dict(payload)


def relevance_overrides(
    mapping: Optional[Mapping[str, Any]], *, defaults: Mapping[str, float]
) -> Dict[str, float]:
    """Merge ``mapping`` onto ``defaults`` keeping only valid unit floats."""

    merged: Dict[str, float] = {k: float(v) for k, v in defaults.items()}
    for key, value in (mapping or {}).items():
        if key not in merged:
            continue
        merged[key] = coerce_unit_float(value, merged[key])
    return merged
