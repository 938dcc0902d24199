"""
Project KPI weight source
=========================
Asks Google Gemini for a KPI weight distribution for a project and coerces the
answer into a valid profile. The model output is never trusted: it is parsed
against a schema, restricted to the KPI catalog, deduplicated and normalized
per channel.

Any failure (missing key, timeout, upstream error, unparseable or empty
answer) falls back to the static default table. `resolve_project_weights`
never raises.
"""
from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Mapping

import google.generativeai as genai
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .catalog import DEFAULT_PROJECT_WEIGHTS, KPI_CATALOG
from .dedupe import merge_weight_pairs
from .errors import InvalidInput, UpstreamUnavailable
from .normalize import normalize_dual

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-flash-latest"
DEFAULT_TIMEOUT_SEC = 20.0

GENERATION_CONFIG = {
    "temperature": 0.2,
    "top_p": 0.8,
    "top_k": 40,
    "response_mime_type": "application/json",
}

SOURCE_AI = "ai"
SOURCE_DEFAULT = "default"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

PROMPT_TEMPLATE = """
You are a meticulous performance analysis AI for a government employee management system.
Analyze the project data below and return a JSON object that assigns KPI weights for
Field Engineers ("fieldWeight") and HQ Officers ("hqWeight").

CRITICAL RULES:
1. Output ONLY a single valid JSON object of the form
   {{"<KPI name>": {{"fieldWeight": <number>, "hqWeight": <number>}}, ...}}
   with no markdown and no text before or after it.
2. Use ONLY KPI names from the list below, spelled exactly as written.
3. The "fieldWeight" values MUST sum to exactly 100.
4. The "hqWeight" values MUST sum to exactly 100.
5. Weights are non-negative numbers. Use 0 for KPIs that do not apply to a role.
6. Field Engineers focus on on-ground work, surveys, DPR quality, expenditure and timelines.
7. HQ Officers focus on file processing, turnaround, responsiveness, drafting and digital adoption.

Available KPIs:
{catalog}

PROJECT DATA:
{project}
"""


class KpiWeightPair(BaseModel):
    """One KPI entry of the model output."""
    model_config = ConfigDict(extra="ignore")

    fieldWeight: float = Field(default=0, ge=0, strict=True, allow_inf_nan=False)
    hqWeight: float = Field(default=0, ge=0, strict=True, allow_inf_nan=False)


class _PairsDict(dict):
    """dict that keeps the raw (name, value) pairs so duplicate names survive parsing."""

    def __init__(self, pairs):
        super().__init__(pairs)
        self.pairs = list(pairs)


def get_default_weights() -> dict[str, dict[str, float]]:
    """Static fallback profile, normalized per channel."""
    return normalize_dual(DEFAULT_PROJECT_WEIGHTS)


def build_prompt(project_data: Mapping[str, Any]) -> str:
    catalog = "\n".join(f"- {name}" for name in KPI_CATALOG)
    project = json.dumps(dict(project_data or {}), indent=2, default=str)
    return PROMPT_TEMPLATE.format(catalog=catalog, project=project)


def _strip_fence(text: str) -> str:
    return _FENCE_RE.sub("", (text or "").strip()).strip()


def parse_weight_response(text: str) -> dict[str, dict[str, float]]:
    """
    Schema-validated parse of a model answer into a normalized KPI profile.

    Raises InvalidInput when the answer is not a JSON object or when no valid
    catalog entry remains.
    """
    try:
        payload = json.loads(_strip_fence(text), object_pairs_hook=_PairsDict)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Weight source output is not valid JSON: {e}")

    if not isinstance(payload, _PairsDict):
        raise InvalidInput("Weight source output must be a JSON object")

    # Tolerate {"kpiWeights": {...}} wrappers
    if len(payload) == 1 and isinstance(payload.get("kpiWeights"), _PairsDict):
        payload = payload["kpiWeights"]

    catalog = set(KPI_CATALOG)
    accepted: list[tuple[str, dict]] = []
    for name, value in payload.pairs:
        if name not in catalog:
            logger.warning(f"[WeightSource] Ignoring KPI outside the catalog: {name!r}")
            continue
        try:
            pair = KpiWeightPair.model_validate(value)
        except ValidationError as e:
            logger.warning(f"[WeightSource] Ignoring invalid entry for {name!r}: {e.error_count()} error(s)")
            continue
        accepted.append((name, pair.model_dump()))

    if not accepted:
        raise InvalidInput("Weight source output has no usable catalog KPIs")

    merged = merge_weight_pairs(accepted)
    if not any(v for pair in merged.values() for v in pair.values()):
        raise InvalidInput("Weight source output has only zero weights")

    return normalize_dual(merged)


def _timeout() -> float:
    try:
        return float(os.getenv("GEMINI_TIMEOUT_SEC", str(DEFAULT_TIMEOUT_SEC)))
    except ValueError:
        return DEFAULT_TIMEOUT_SEC


def generate_project_weights(project_data: Mapping[str, Any], *, timeout: float | None = None) -> dict[str, dict[str, float]]:
    """
    Call Gemini and return a validated, normalized profile.

    Raises UpstreamUnavailable (no key, timeout, API error) or InvalidInput
    (answer that cannot be parsed).
    """
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise UpstreamUnavailable("GEMINI_API_KEY not set")

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(
            model_name=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
            generation_config=GENERATION_CONFIG,
        )
        response = model.generate_content(
            build_prompt(project_data),
            request_options={"timeout": timeout or _timeout()},
        )
        text = response.text
    except Exception as e:
        raise UpstreamUnavailable(f"Gemini call failed: {e}") from e

    return parse_weight_response(text)


def resolve_project_weights(project_data: Mapping[str, Any]) -> tuple[dict[str, dict[str, float]], str]:
    """Weights for a new project plus where they came from ("ai" or "default")."""
    name = (project_data or {}).get("name")
    try:
        weights = generate_project_weights(project_data)
        logger.info(f"[WeightSource] Received and normalized KPI weights from Gemini for project {name!r}")
        return weights, SOURCE_AI
    except UpstreamUnavailable as e:
        logger.warning(f"[WeightSource] Upstream unavailable for project {name!r}, using default weights: {e.message}")
    except InvalidInput as e:
        logger.warning(f"[WeightSource] Unusable AI output for project {name!r}, using default weights: {e.message}")
    return get_default_weights(), SOURCE_DEFAULT
