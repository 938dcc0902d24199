"""Standalone validators for weight distributions. Read-only."""
from __future__ import annotations

from typing import Any, Mapping

# Single tolerance for every "does it sum to 100" check
WEIGHT_TOLERANCE = 0.5

MIN_WEIGHT = 5
MAX_WEIGHT = 100


def _numeric(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def weight_total(weights: Mapping[str, Any]) -> float:
    return round(sum(_numeric(w) for w in (weights or {}).values()), 2)


def validate_weight_total(weights: Mapping[str, Any], tolerance: float = WEIGHT_TOLERANCE) -> dict:
    total = sum(_numeric(w) for w in (weights or {}).values())
    valid = abs(total - 100) <= tolerance
    result = {"valid": valid, "total": round(total, 2)}
    if not valid:
        result["error"] = f"Weight total is {total:.2f}%, expected 100%"
    return result


def validate_weight_range(
    weights: Mapping[str, Any],
    min_weight: float = MIN_WEIGHT,
    max_weight: float = MAX_WEIGHT,
) -> dict:
    """A weight of 0 means the KPI is excluded and is not a violation."""
    violations: list[str] = []
    for name, value in (weights or {}).items():
        weight = _numeric(value)
        if 0 < weight < min_weight:
            violations.append(f"{name}: {weight}% (below minimum {min_weight}%)")
        if weight > max_weight:
            violations.append(f"{name}: {weight}% (above maximum {max_weight}%)")
    return {"valid": not violations, "violations": violations}


def is_total_valid(total: float, tolerance: float = WEIGHT_TOLERANCE) -> bool:
    return abs(total - 100) <= tolerance
