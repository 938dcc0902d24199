"""
KPI catalog, default employee templates and the static fallback weight table.

The catalog is the union of the Field and HQ template names: a project weight
can only be applied to an employee KPI that shares its exact name, so the AI
is restricted to these names and anything else is filtered out.
"""
from __future__ import annotations

from typing import Any

EMPLOYER_TYPES = ("Field", "HQ")
DEFAULT_EMPLOYER_TYPE = "Field"
DEFAULT_PERIOD = "Annual"

# Employer type -> channel of a {fieldWeight, hqWeight} pair
CHANNEL_BY_TYPE: dict[str, str] = {
    "Field": "fieldWeight",
    "HQ": "hqWeight",
}

# Field employees: 8 parameters, 12.5 each
FIELD_EMPLOYEE_KPIS: list[dict[str, Any]] = [
    {"kpiName": "Timeliness of DPR Preparation", "weightage": 12.5, "metric": "Score", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Quality of DPR Preparation", "weightage": 12.5, "metric": "Score", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Survey Accuracy", "weightage": 12.5, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Adherence to Project Timelines", "weightage": 12.5, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Expenditure Targets", "weightage": 12.5, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Financial Targets", "weightage": 12.5, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Physical Progress of Works", "weightage": 12.5, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Compliance with Technical Standards", "weightage": 12.5, "metric": "Score", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
]

# HQ employees: 5 parameters, 20 each
HQ_EMPLOYEE_KPIS: list[dict[str, Any]] = [
    {"kpiName": "File Disposal Rate", "weightage": 20, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Turnaround Time", "weightage": 20, "metric": "Days", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Quality of Drafting", "weightage": 20, "metric": "Score", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Responsiveness", "weightage": 20, "metric": "Score", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
    {"kpiName": "Digital Adoption", "weightage": 20, "metric": "Percentage", "target": 100, "achievedValue": 0, "period": DEFAULT_PERIOD},
]

TEMPLATES_BY_TYPE: dict[str, list[dict[str, Any]]] = {
    "Field": FIELD_EMPLOYEE_KPIS,
    "HQ": HQ_EMPLOYEE_KPIS,
}

KPI_CATALOG: tuple[str, ...] = tuple(
    k["kpiName"] for k in FIELD_EMPLOYEE_KPIS + HQ_EMPLOYEE_KPIS
)

# KPIs bumped by a daily progress report submission
DPR_TIMELINESS_KPI = "Timeliness of DPR Preparation"
DPR_QUALITY_KPI = "Quality of DPR Preparation"

# Fallback project weights when the generative source is unavailable.
# Each channel sums to 100 before normalization.
DEFAULT_PROJECT_WEIGHTS: dict[str, dict[str, float]] = {
    "Timeliness of DPR Preparation": {"fieldWeight": 15, "hqWeight": 0},
    "Quality of DPR Preparation": {"fieldWeight": 15, "hqWeight": 0},
    "Survey Accuracy": {"fieldWeight": 20, "hqWeight": 0},
    "Adherence to Project Timelines": {"fieldWeight": 15, "hqWeight": 0},
    "Expenditure Targets": {"fieldWeight": 10, "hqWeight": 0},
    "Financial Targets": {"fieldWeight": 5, "hqWeight": 0},
    "Physical Progress of Works": {"fieldWeight": 10, "hqWeight": 0},
    "Compliance with Technical Standards": {"fieldWeight": 10, "hqWeight": 0},
    "File Disposal Rate": {"fieldWeight": 0, "hqWeight": 25},
    "Turnaround Time": {"fieldWeight": 0, "hqWeight": 20},
    "Quality of Drafting": {"fieldWeight": 0, "hqWeight": 15},
    "Responsiveness": {"fieldWeight": 0, "hqWeight": 25},
    "Digital Adoption": {"fieldWeight": 0, "hqWeight": 15},
}


def normalize_employer_type(value: str | None) -> str:
    """Unknown or missing employer types are treated as Field."""
    if value in CHANNEL_BY_TYPE:
        return value
    return DEFAULT_EMPLOYER_TYPE


def channel_for(employer_type: str | None) -> str:
    return CHANNEL_BY_TYPE[normalize_employer_type(employer_type)]
