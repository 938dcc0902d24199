"""
Weight normalization.

Turns an arbitrary name -> weight mapping (possibly AI generated, possibly
malformed) into percentages that sum to exactly 100.00.

Rules:
  - non-finite, non-numeric and <= 0 values are dropped before the total
  - an empty input gives an empty mapping
  - a non-empty input without any positive value is split equally
  - values are rounded to 2 decimals, the rounding drift is added to the
    largest value (ties: first seen) so the sum is exactly 100.00

The same correction policy is used at every call site (project creation,
report-triggered recalculation, explicit application, analysis).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from .catalog import channel_for

logger = logging.getLogger(__name__)

DECIMALS = 2
DRIFT_EPSILON = 0.0001

WEIGHT_CHANNELS = ("fieldWeight", "hqWeight")


@dataclass
class NormalizationReport:
    """Diagnostic event describing one normalization run."""
    input_count: int = 0
    mode: str = "empty"  # empty | equal_split | proportional
    kept: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    raw_total: float = 0.0
    correction: float = 0.0
    corrected_key: str | None = None
    total: float = 0.0

    def as_dict(self) -> dict:
        return {
            "inputCount": self.input_count,
            "mode": self.mode,
            "kept": list(self.kept),
            "dropped": list(self.dropped),
            "rawTotal": self.raw_total,
            "correction": self.correction,
            "correctedKey": self.corrected_key,
            "total": self.total,
        }


def is_valid_weight(value: Any) -> bool:
    """True for finite, strictly positive int/float values (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def _largest_key(values: Mapping[str, float]) -> str:
    # max() keeps the first maximal key, which is the tie-break we want
    return max(values, key=lambda k: values[k])


def _correct_drift(normalized: dict[str, float], report: NormalizationReport) -> None:
    diff = round(100 - sum(normalized.values()), DECIMALS)
    if abs(diff) > DRIFT_EPSILON:
        key = _largest_key(normalized)
        normalized[key] = round(normalized[key] + diff, DECIMALS)
        report.correction = diff
        report.corrected_key = key


def normalize_weights_with_report(
    raw: Mapping[str, Any] | None,
) -> tuple[dict[str, float], NormalizationReport]:
    report = NormalizationReport(input_count=len(raw or {}))
    if not raw:
        return {}, report

    filtered: dict[str, float] = {}
    for key, value in raw.items():
        if is_valid_weight(value):
            filtered[key] = float(value)
        else:
            report.dropped.append(key)
    report.kept = list(filtered)

    # Shares of the largest value; the plain sum of huge finite inputs overflows
    peak = max(filtered.values(), default=0.0)
    shares = {key: value / peak for key, value in filtered.items()}
    total = sum(shares.values())
    report.raw_total = round(total * peak, 6)

    if not filtered or total <= 0:
        report.mode = "equal_split"
        share = round(100 / len(raw), DECIMALS)
        normalized = {key: share for key in raw}
    else:
        report.mode = "proportional"
        normalized = {
            key: round((share / total) * 100, DECIMALS)
            for key, share in shares.items()
        }

    _correct_drift(normalized, report)
    report.total = round(sum(normalized.values()), DECIMALS)

    logger.debug("[Normalize] %s", report.as_dict())
    return normalized, report


def normalize_weights(raw: Mapping[str, Any] | None) -> dict[str, float]:
    normalized, _ = normalize_weights_with_report(raw)
    return normalized


def _channel_value(pair: Any, channel: str) -> Any:
    if isinstance(pair, Mapping):
        return pair.get(channel)
    return None


def normalize_dual(weights: Mapping[str, Any] | None) -> dict[str, dict[str, float]]:
    """
    Normalize the field and HQ channels of a KPI weight mapping independently.

    Every input name is kept; a channel value filtered out by the normalizer
    comes back as 0.
    """
    if not weights:
        return {}

    channels: dict[str, dict[str, float]] = {}
    for channel in WEIGHT_CHANNELS:
        channels[channel] = normalize_weights(
            {name: _channel_value(pair, channel) for name, pair in weights.items()}
        )

    normalized = {
        name: {channel: channels[channel].get(name, 0) for channel in WEIGHT_CHANNELS}
        for name in weights
    }

    logger.debug(
        "[Normalize] dual: kpis=%d field_total=%.2f hq_total=%.2f",
        len(normalized),
        sum(channels["fieldWeight"].values()),
        sum(channels["hqWeight"].values()),
    )
    return normalized


def normalize_channel(weights: Mapping[str, Any] | None, employer_type: str | None) -> dict[str, float]:
    """Normalized weights of the channel that applies to an employer type."""
    channel = channel_for(employer_type)
    return normalize_weights(
        {name: _channel_value(pair, channel) for name, pair in (weights or {}).items()}
    )
