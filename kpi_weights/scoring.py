"""
Score aggregation for KPI analysis and APAR finalization.

The e-office (output) score of an employee is the weighted sum of the KPI
performances of their active KPI set. The annual appraisal combines 70 % of
that output with a behavioural reviewer score of at most 30.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .application import get_active_kpis
from .dedupe import split_duplicates
from .normalize import normalize_weights
from .store import COLL_KPI_SUMMARIES, COLL_KPIS, COLL_USERS, get_employee, utcnow
from .validation import WEIGHT_TOLERANCE, is_total_valid

logger = logging.getLogger(__name__)

OUTPUT_SHARE = 70
APAR_EOFFICE_SHARE = 30
REVIEWER_MAX = 30

STATUS_COMPLETED_AT = 90
STATUS_IN_PROGRESS_AT = 60


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def calculate_final_score(kpi_scores: Mapping[str, Any], weights: Mapping[str, Any]) -> float:
    """Weighted mean of KPI scores (0-100 each), rescaled by the total weight."""
    total_weight = sum(_number(w) for w in weights.values())
    if total_weight <= 0:
        return 0.0
    weighted = sum(_number(kpi_scores.get(name)) * _number(w) / 100 for name, w in weights.items())
    return round(weighted * 100 / total_weight, 2)


def performance_for(kpi: Mapping[str, Any]) -> float:
    target = _number(kpi.get("target"))
    if target <= 0:
        return 0.0
    return max(0.0, min(100.0, _number(kpi.get("achievedValue")) / target * 100))


def status_for(progress: float) -> str:
    if progress >= STATUS_COMPLETED_AT:
        return "completed"
    if progress >= STATUS_IN_PROGRESS_AT:
        return "in_progress"
    return "at_risk"


def analyze_employee(db, employee_id: Any) -> dict:
    employee = get_employee(db, employee_id)
    base = {
        "employeeId": str(employee["_id"]),
        "employeeName": employee.get("name"),
        "department": employee.get("department"),
        "employerType": employee.get("employerType"),
    }

    active = get_active_kpis(db, employee)
    if not active:
        return {**base, "hasData": False, "message": "No KPIs found for this employee"}

    kpis, _ = split_duplicates(active)
    weights = normalize_weights({k["kpiName"]: k.get("weightage") for k in kpis})

    total_weight = sum(weights.values())
    if not is_total_valid(total_weight, WEIGHT_TOLERANCE):
        logger.warning(f"[Analyze] Weight total mismatch for {employee.get('name')}: {total_weight}%")

    now = utcnow()
    total_score = 0.0
    breakdown = []
    coll = db[COLL_KPIS]
    for kpi in kpis:
        weight = weights.get(kpi["kpiName"], 0)
        performance = performance_for(kpi)
        score = round(weight * performance / 100, 2)
        status = status_for(performance)
        coll.update_one(
            {"_id": kpi["_id"]},
            {
                "$set": {
                    "weightage": weight,
                    "progress": round(performance, 2),
                    "score": score,
                    "status": status,
                    "progressNotes": f"Performance: {performance:.1f}% of target",
                    "lastUpdated": now,
                }
            },
        )
        total_score += score
        breakdown.append({"kpiName": kpi["kpiName"], "weightage": weight, "progress": round(performance, 2), "score": score, "status": status})

    total_score = min(100.0, max(0.0, round(total_score, 2)))
    output_score = round(total_score / 100 * OUTPUT_SHARE, 2)

    period = kpis[0].get("period") or "Annual"
    db[COLL_KPI_SUMMARIES].update_one(
        {"userId": employee["_id"], "period": period},
        {"$set": {"outputScore": output_score, "totalScore": total_score, "computedAt": now}},
        upsert=True,
    )
    db[COLL_USERS].update_one({"_id": employee["_id"]}, {"$set": {"hasAIKPI": True}})

    logger.info(f"[Analyze] {employee.get('name')}: total={total_score} output={output_score}")
    return {**base, "hasData": True, "totalScore": total_score, "outputScore": output_score, "kpis": breakdown}


def analyze_all(db) -> list[dict]:
    results = []
    for emp in db[COLL_USERS].find({"role": "employee", "archived": {"$ne": True}}, {"_id": 1}):
        result = analyze_employee(db, emp["_id"])
        if result.get("hasData"):
            results.append(result)
    return results


def apar_weighted_score(eoffice_score: float) -> float:
    return round(_number(eoffice_score) * APAR_EOFFICE_SHARE / 100, 2)


def apar_final_score(kpis: Iterable[Mapping[str, Any]], reviewer_score: Any) -> float:
    """70 % of the completed-KPI output plus the reviewer score clamped to [0, 30]."""
    behavioural = max(0.0, min(float(REVIEWER_MAX), _number(reviewer_score)))
    completed = [k for k in kpis if str(k.get("status", "")).lower() == "completed"]
    total_weight = sum(_number(k.get("weightage")) for k in completed)
    if total_weight <= 0:
        return round(behavioural, 2)
    weighted = sum(_number(k.get("score")) for k in completed)
    return round(weighted / total_weight * OUTPUT_SHARE + behavioural, 2)
