"""Read-only weight reports used by the debug endpoint and tools/check_weights.py."""
from __future__ import annotations

from typing import Any

from .errors import NotFound, PreconditionFailed
from .normalize import WEIGHT_CHANNELS
from .store import COLL_KPIS, COLL_PROJECTS, get_project, to_object_id
from .validation import WEIGHT_TOLERANCE, validate_weight_total


def _channel_totals(kpi_weights: dict) -> dict[str, dict[str, Any]]:
    channels: dict[str, dict[str, Any]] = {c: {} for c in WEIGHT_CHANNELS}
    for name, pair in (kpi_weights or {}).items():
        pair = pair if isinstance(pair, dict) else {}
        for channel in WEIGHT_CHANNELS:
            channels[channel][name] = pair.get(channel) or 0
    return channels


def project_weight_report(db, project_id: Any) -> dict:
    project = get_project(db, project_id)
    if not project.get("kpiWeights"):
        raise PreconditionFailed("Project does not have KPI weights", projectId=str(project["_id"]))

    channels = _channel_totals(project["kpiWeights"])
    field = validate_weight_total(channels["fieldWeight"], WEIGHT_TOLERANCE)
    hq = validate_weight_total(channels["hqWeight"], WEIGHT_TOLERANCE)
    return {
        "project": project.get("name"),
        "projectId": str(project["_id"]),
        "fieldWeights": channels["fieldWeight"],
        "hqWeights": channels["hqWeight"],
        "totals": {"field": field["total"], "hq": hq["total"]},
        "validation": {"fieldValid": field["valid"], "hqValid": hq["valid"]},
    }


def employee_weight_report(db, employee_id: Any) -> dict:
    oid = to_object_id(employee_id, "employeeId")
    kpis = list(db[COLL_KPIS].find({"assignedTo": oid}))
    if not kpis:
        raise NotFound("No KPIs found for this employee", employeeId=str(employee_id))

    project_specific = [k for k in kpis if k.get("isProjectSpecific")]
    # The live set is what gets scored; fall back to defaults when there is no project set
    live = project_specific or [k for k in kpis if k.get("isDefault")]
    weights = {k["kpiName"]: k.get("weightage") or 0 for k in live}
    check = validate_weight_total(weights, WEIGHT_TOLERANCE)
    scopes = sorted({str(k.get("kpiScope")) for k in project_specific})
    return {
        "employeeId": str(oid),
        "totalKpis": len(kpis),
        "projectSpecificCount": len(project_specific),
        "scopes": scopes,
        "weights": weights,
        "total": check["total"],
        "validation": {
            "valid": check["valid"] and len(scopes) <= 1,
            "message": check.get("error") or ("Weights sum to 100%" if len(scopes) <= 1 else "Multiple project KPI sets are live"),
        },
    }


def all_projects_weight_report(db) -> dict:
    results = []
    for project in db[COLL_PROJECTS].find({"kpiWeights": {"$exists": True}}, {"name": 1, "kpiWeights": 1}):
        channels = _channel_totals(project.get("kpiWeights"))
        field = validate_weight_total(channels["fieldWeight"], WEIGHT_TOLERANCE)
        hq = validate_weight_total(channels["hqWeight"], WEIGHT_TOLERANCE)
        results.append(
            {
                "projectId": str(project["_id"]),
                "name": project.get("name"),
                "fieldTotal": field["total"],
                "hqTotal": hq["total"],
                "fieldValid": field["valid"],
                "hqValid": hq["valid"],
            }
        )
    invalid = [r for r in results if not (r["fieldValid"] and r["hqValid"])]
    return {
        "totalProjects": len(results),
        "invalidProjects": len(invalid),
        "projects": results,
    }
