"""
Report-triggered KPI recalculation.

When an employee submits a daily progress report for a project, their KPI
weightages are refreshed from the project's weight profile and the DPR
related KPIs get an achievement bump.

Unlike the explicit application path, KPIs weighted below MIN_TRACKED_WEIGHT
are not tracked here at all: they are neither created nor updated.

This path never fails the report submission. Problems are logged and an
empty summary is returned.
"""
from __future__ import annotations

import logging
from typing import Any

from pymongo.errors import PyMongoError

from .application import new_scope_id
from .catalog import (
    DEFAULT_PERIOD,
    DPR_QUALITY_KPI,
    DPR_TIMELINESS_KPI,
    TEMPLATES_BY_TYPE,
    normalize_employer_type,
)
from .dedupe import split_duplicates
from .errors import KpiWeightsError
from .locks import employee_lock
from .normalize import normalize_channel
from .store import COLL_KPIS, COLL_PROJECTS, COLL_USERS, to_object_id, utcnow

logger = logging.getLogger(__name__)

MIN_TRACKED_WEIGHT = 5

DPR_TIMELINESS_BUMP = 10
DPR_QUALITY_BUMP_LONG = 10
DPR_QUALITY_BUMP_SHORT = 5
DPR_QUALITY_LONG_TEXT = 50

_TEMPLATE_BY_NAME = {
    t["kpiName"]: t for templates in TEMPLATES_BY_TYPE.values() for t in templates
}


def _empty_summary() -> dict:
    return {"created": [], "updated": [], "skipped": [], "removedDuplicates": 0, "retired": 0, "kpiScope": None}


def _load(db, employee_id: Any, project_id: Any) -> tuple[dict | None, dict | None]:
    try:
        employee_oid = to_object_id(employee_id, "employeeId")
        project_oid = to_object_id(project_id, "projectId")
    except KpiWeightsError as e:
        logger.warning(f"[Recalc] Skipping: {e.message}")
        return None, None

    project = db[COLL_PROJECTS].find_one({"_id": project_oid})
    if not project or not project.get("kpiWeights"):
        logger.info(f"[Recalc] No KPI weights found for project {project_id}, skipping recalculation.")
        return None, None

    employee = db[COLL_USERS].find_one({"_id": employee_oid})
    if not employee:
        logger.info(f"[Recalc] Employee {employee_id} not found, skipping recalculation.")
        return None, None
    return employee, project


def _new_kpi(name: str, weight: float, employee: dict, employer_type: str, project: dict, scope: str, now) -> dict:
    template = _TEMPLATE_BY_NAME.get(name, {})
    return {
        "kpiName": name,
        "title": name,
        "metric": template.get("metric", name),
        "target": 100,
        "achievedValue": 0,
        "weightage": weight,
        "assignedTo": employee["_id"],
        "period": DEFAULT_PERIOD,
        "employerType": employer_type,
        "status": "in_progress",
        "source": "e-office",
        "isDefault": False,
        "isProjectSpecific": True,
        "projectId": project["_id"],
        "projectName": project.get("name"),
        "kpiScope": scope,
        "progress": 0,
        "score": 0,
        "createdAt": now,
        "lastUpdated": now,
    }


def _recalculate_locked(db, employee: dict, project: dict) -> dict:
    summary = _empty_summary()
    employer_type = normalize_employer_type(employee.get("employerType"))
    weights = normalize_channel(project["kpiWeights"], employer_type)

    # Keep the active scope while it belongs to this project, otherwise open a new one
    scope = employee.get("activeKpiScope")
    scope_changed = not scope or employee.get("activeProjectId") != project["_id"]
    if scope_changed:
        scope = new_scope_id()
    summary["kpiScope"] = scope

    kpis = db[COLL_KPIS]
    candidates = list(
        kpis.find(
            {
                "assignedTo": employee["_id"],
                "isDefault": {"$ne": True},
                "$or": [{"isProjectSpecific": {"$ne": True}}, {"kpiScope": scope}],
            }
        ).sort("_id", 1)
    )
    kept, duplicates = split_duplicates(candidates)
    if duplicates:
        kpis.delete_many({"_id": {"$in": [d["_id"] for d in duplicates]}})
        summary["removedDuplicates"] = len(duplicates)
        logger.info(f"[Recalc] Removed {len(duplicates)} duplicate KPI(s) for employee {employee['_id']}")
    existing = {k["kpiName"]: k for k in kept}

    now = utcnow()
    for name, weight in weights.items():
        if weight < MIN_TRACKED_WEIGHT:
            summary["skipped"].append(name)
            continue

        weight = round(weight, 2)
        current = existing.get(name)
        if current is None:
            kpis.insert_one(_new_kpi(name, weight, employee, employer_type, project, scope, now))
            summary["created"].append(name)
            continue

        kpis.update_one(
            {"_id": current["_id"]},
            {
                "$set": {
                    "originalWeightage": current.get("weightage"),
                    "weightage": weight,
                    "isProjectSpecific": True,
                    "projectId": project["_id"],
                    "projectName": project.get("name"),
                    "kpiScope": scope,
                    "lastUpdated": now,
                }
            },
        )
        summary["updated"].append(name)

    update: dict[str, Any] = {
        "$set": {"activeKpiScope": scope, "activeProjectId": project["_id"], "hasAIKPI": True}
    }
    if scope_changed:
        update["$inc"] = {"kpiVersion": 1}
    db[COLL_USERS].update_one({"_id": employee["_id"]}, update)

    summary["retired"] = kpis.delete_many(
        {"assignedTo": employee["_id"], "isProjectSpecific": True, "kpiScope": {"$ne": scope}}
    ).deleted_count

    logger.info(
        f"[Recalc] KPI recalculation complete for {employee['_id']} on project {project['_id']}: "
        f"created={len(summary['created'])} updated={len(summary['updated'])} "
        f"skipped={len(summary['skipped'])} retired={summary['retired']}"
    )
    return summary


def recalculate_kpis_for_employee(db, employee_id: Any, project_id: Any) -> dict:
    employee, project = _load(db, employee_id, project_id)
    if employee is None:
        return _empty_summary()
    with employee_lock(db, employee["_id"]):
        return _recalculate_locked(db, employee, project)


def _bump(db, kpi: dict | None, amount: float) -> float | None:
    if not kpi:
        return None
    target = kpi.get("target") or 100
    achieved = min((kpi.get("achievedValue") or 0) + amount, target)
    db[COLL_KPIS].update_one({"_id": kpi["_id"]}, {"$set": {"achievedValue": achieved, "lastUpdated": utcnow()}})
    return achieved


def _find_tracked(db, employee_oid, scope: str | None, name: str) -> dict | None:
    query: dict[str, Any] = {"assignedTo": employee_oid, "kpiName": name, "isDefault": {"$ne": True}}
    if scope:
        query["kpiScope"] = scope
    return db[COLL_KPIS].find_one(query)


def update_kpis_from_dpr(db, employee_id: Any, project_id: Any, dpr: dict | None) -> dict:
    """
    Recalculate the employee's KPIs for the project, then credit the report:
    timeliness +10, quality +10 for a progress text over 50 characters, else +5.
    Achievements are capped at the KPI target.
    """
    dpr = dpr or {}
    result = {"recalculation": _empty_summary(), "timeliness": None, "quality": None}
    try:
        employee, project = _load(db, employee_id, project_id)
        if employee is None:
            return result
        with employee_lock(db, employee["_id"]):
            summary = _recalculate_locked(db, employee, project)
            result["recalculation"] = summary

            scope = summary["kpiScope"]
            result["timeliness"] = _bump(
                db, _find_tracked(db, employee["_id"], scope, DPR_TIMELINESS_KPI), DPR_TIMELINESS_BUMP
            )
            progress = dpr.get("progress")
            if isinstance(progress, str) and progress:
                amount = DPR_QUALITY_BUMP_LONG if len(progress) > DPR_QUALITY_LONG_TEXT else DPR_QUALITY_BUMP_SHORT
                result["quality"] = _bump(db, _find_tracked(db, employee["_id"], scope, DPR_QUALITY_KPI), amount)
    except (KpiWeightsError, PyMongoError) as e:
        logger.error(f"[Recalc] Error updating KPIs from DPR for employee {employee_id}: {e}", exc_info=True)
    return result
