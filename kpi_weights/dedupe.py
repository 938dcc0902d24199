"""
Deduplication of named weight entries.

The same KPI can show up twice (AI output listing a name twice, or a stale
record left next to a fresh one). Names are matched exactly and
case-sensitively; the higher weight wins, ties keep the first entry seen.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from .normalize import WEIGHT_CHANNELS, is_valid_weight

logger = logging.getLogger(__name__)


def _weight_of(entry: Mapping[str, Any], weight_keys: Sequence[str]) -> float:
    for key in weight_keys:
        value = entry.get(key)
        if is_valid_weight(value):
            return float(value)
    return 0.0


def _name_of(entry: Mapping[str, Any], name_keys: Sequence[str]) -> str:
    for key in name_keys:
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def split_duplicates(
    entries: Iterable[Mapping[str, Any]],
    name_keys: Sequence[str] = ("kpiName", "name"),
    weight_keys: Sequence[str] = ("weightage", "weight"),
) -> tuple[list[Mapping[str, Any]], list[Mapping[str, Any]]]:
    """
    Returns (kept, duplicates). `kept` holds one entry per name in first-seen
    name order; `duplicates` holds every losing entry. Entries without a name
    are dropped from both.
    """
    winners: dict[str, Mapping[str, Any]] = {}
    losers: list[Mapping[str, Any]] = []

    for entry in entries:
        name = _name_of(entry, name_keys)
        if not name:
            continue
        current = winners.get(name)
        if current is None:
            winners[name] = entry
        elif _weight_of(entry, weight_keys) > _weight_of(current, weight_keys):
            losers.append(current)
            winners[name] = entry
        else:
            losers.append(entry)

    return list(winners.values()), losers


def dedupe_entries(
    entries: Iterable[Mapping[str, Any]],
    name_keys: Sequence[str] = ("kpiName", "name"),
    weight_keys: Sequence[str] = ("weightage", "weight"),
) -> list[Mapping[str, Any]]:
    entries = list(entries)
    kept, duplicates = split_duplicates(entries, name_keys, weight_keys)
    if duplicates:
        logger.info(
            "[Dedupe] Removed duplicate KPIs: original=%d deduplicated=%d removed=%d",
            len(entries), len(kept), len(duplicates),
        )
    return kept


def merge_weight_pairs(
    pairs: Mapping[str, Mapping[str, Any]] | Iterable[tuple[str, Mapping[str, Any]]],
) -> dict[str, dict[str, float]]:
    """
    Pairwise-max merge of KPI weight pairs keyed by name.

    For a name listed several times the surviving fieldWeight is the max of
    all fieldWeights and, independently, the surviving hqWeight is the max of
    all hqWeights. Invalid channel values count as 0.
    """
    items = pairs.items() if isinstance(pairs, Mapping) else pairs

    merged: dict[str, dict[str, float]] = {}
    seen = 0
    for name, pair in items:
        seen += 1
        if not isinstance(name, str) or not name:
            continue
        values = {
            channel: float(pair.get(channel)) if isinstance(pair, Mapping) and is_valid_weight(pair.get(channel)) else 0.0
            for channel in WEIGHT_CHANNELS
        }
        current = merged.get(name)
        if current is None:
            merged[name] = values
        else:
            for channel in WEIGHT_CHANNELS:
                current[channel] = max(current[channel], values[channel])

    if len(merged) < seen:
        logger.info("[Dedupe] Merged KPI weight pairs: original=%d merged=%d", seen, len(merged))
    return merged
