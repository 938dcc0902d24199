from bson import ObjectId

from kpi_weights.application import apply_project_weights
from kpi_weights.recalculate import MIN_TRACKED_WEIGHT, recalculate_kpis_for_employee, update_kpis_from_dpr
from kpi_weights.store import COLL_KPIS, COLL_USERS

# Survey Accuracy normalizes to 3 %, below the tracked minimum
LOW_WEIGHT_PROFILE = {
    "Timeliness of DPR Preparation": {"fieldWeight": 57, "hqWeight": 0},
    "Quality of DPR Preparation": {"fieldWeight": 40, "hqWeight": 0},
    "Survey Accuracy": {"fieldWeight": 3, "hqWeight": 0},
}

OTHER_PROFILE = {
    "Timeliness of DPR Preparation": {"fieldWeight": 20, "hqWeight": 0},
    "Physical Progress of Works": {"fieldWeight": 80, "hqWeight": 0},
}


def _non_default(db, employee_id):
    return {k["kpiName"]: k for k in db[COLL_KPIS].find({"assignedTo": employee_id, "isDefault": {"$ne": True}})}


def test_threshold_skip_differs_between_paths(db, make_employee, make_project):
    """
    The recalculation path does not track KPIs below the minimum weight,
    while explicit application keeps them at their true normalized weight.
    """
    applied_employee = make_employee(name="Ravi Kumar")
    recalc_employee = make_employee(name="Anil Verma", defaults=False)
    project = make_project(kpi_weights=LOW_WEIGHT_PROFILE)

    apply_project_weights(db, project, applied_employee)
    applied = _non_default(db, applied_employee)
    assert applied["Survey Accuracy"]["weightage"] == 3

    summary = recalculate_kpis_for_employee(db, recalc_employee, project)
    recalculated = _non_default(db, recalc_employee)
    assert "Survey Accuracy" in summary["skipped"]
    assert "Survey Accuracy" not in recalculated
    assert recalculated["Timeliness of DPR Preparation"]["weightage"] == 57
    assert 3 < MIN_TRACKED_WEIGHT


def test_recalc_creates_missing_kpis(db, make_employee, make_project):
    employee = make_employee(defaults=False)
    project = make_project(kpi_weights=OTHER_PROFILE)

    summary = recalculate_kpis_for_employee(db, employee, project)

    assert sorted(summary["created"]) == ["Physical Progress of Works", "Timeliness of DPR Preparation"]
    kpis = _non_default(db, employee)
    created = kpis["Physical Progress of Works"]
    assert created["weightage"] == 80
    assert created["target"] == 100
    assert created["status"] == "in_progress"
    assert created["isProjectSpecific"] is True
    assert created["kpiScope"] == summary["kpiScope"]

    user = db[COLL_USERS].find_one({"_id": employee})
    assert user["activeKpiScope"] == summary["kpiScope"]
    assert user["hasAIKPI"] is True


def test_recalc_updates_the_applied_set_in_place(db, make_employee, make_project):
    employee = make_employee()
    project = make_project(kpi_weights=LOW_WEIGHT_PROFILE)
    applied = apply_project_weights(db, project, employee)

    summary = recalculate_kpis_for_employee(db, employee, project)

    assert summary["kpiScope"] == applied["kpiScope"]
    assert sorted(summary["updated"]) == ["Quality of DPR Preparation", "Timeliness of DPR Preparation"]
    assert summary["created"] == []
    assert summary["retired"] == 0
    kpis = _non_default(db, employee)
    assert kpis["Timeliness of DPR Preparation"]["originalWeightage"] == 57
    # Below the minimum: left as applied
    assert kpis["Survey Accuracy"]["weightage"] == 3


def test_recalc_for_another_project_retires_previous_set(db, make_employee, make_project):
    employee = make_employee()
    p1 = make_project(name="Ring Road", kpi_weights=LOW_WEIGHT_PROFILE)
    p2 = make_project(name="Flyover", kpi_weights=OTHER_PROFILE)
    applied = apply_project_weights(db, p1, employee)

    summary = recalculate_kpis_for_employee(db, employee, p2)

    assert summary["kpiScope"] != applied["kpiScope"]
    assert summary["retired"] == 8
    kpis = list(db[COLL_KPIS].find({"assignedTo": employee, "isProjectSpecific": True}))
    assert {k["projectId"] for k in kpis} == {p2}
    assert {k["kpiScope"] for k in kpis} == {summary["kpiScope"]}
    assert db[COLL_USERS].find_one({"_id": employee})["kpiVersion"] == 2


def test_duplicate_records_are_collapsed(db, make_employee, make_project):
    employee = make_employee(defaults=False)
    project = make_project(kpi_weights=OTHER_PROFILE)
    for weight in (10, 35, 20):
        db[COLL_KPIS].insert_one(
            {"kpiName": "Physical Progress of Works", "weightage": weight, "assignedTo": employee, "isDefault": False}
        )

    summary = recalculate_kpis_for_employee(db, employee, project)

    assert summary["removedDuplicates"] == 2
    docs = list(db[COLL_KPIS].find({"assignedTo": employee, "kpiName": "Physical Progress of Works"}))
    assert len(docs) == 1
    assert docs[0]["originalWeightage"] == 35
    assert docs[0]["weightage"] == 80


def test_missing_project_or_employee_returns_empty_summary(db, make_employee, make_project):
    employee = make_employee()
    bare = make_project(name="No Weights")

    for employee_id, project_id in (
        (employee, bare),
        (employee, ObjectId()),
        (ObjectId(), make_project(kpi_weights=OTHER_PROFILE)),
        ("bad-id", bare),
    ):
        summary = recalculate_kpis_for_employee(db, employee_id, project_id)
        assert summary["created"] == [] and summary["updated"] == []


def test_dpr_bumps_timeliness_and_quality(db, make_employee, make_project):
    employee = make_employee()
    project = make_project(kpi_weights=LOW_WEIGHT_PROFILE)
    apply_project_weights(db, project, employee)

    result = update_kpis_from_dpr(db, employee, project, {"progress": "x" * 60})
    assert result["timeliness"] == 10
    assert result["quality"] == 10

    result = update_kpis_from_dpr(db, employee, project, {"progress": "short"})
    assert result["timeliness"] == 20
    assert result["quality"] == 15

    result = update_kpis_from_dpr(db, employee, project, {})
    assert result["timeliness"] == 30
    assert result["quality"] is None


def test_dpr_bump_is_capped_at_target(db, make_employee, make_project):
    employee = make_employee()
    project = make_project(kpi_weights=LOW_WEIGHT_PROFILE)
    apply_project_weights(db, project, employee)
    db[COLL_KPIS].update_many(
        {"assignedTo": employee, "kpiName": "Timeliness of DPR Preparation", "isProjectSpecific": True},
        {"$set": {"achievedValue": 95}},
    )

    result = update_kpis_from_dpr(db, employee, project, {"progress": "done"})

    assert result["timeliness"] == 100


def test_dpr_update_never_raises_for_bad_ids(db):
    result = update_kpis_from_dpr(db, "nope", "nope", {"progress": "text"})
    assert result["timeliness"] is None


def test_dpr_with_non_text_progress_only_credits_timeliness(db, make_employee, make_project):
    employee = make_employee()
    project = make_project(kpi_weights=LOW_WEIGHT_PROFILE)
    apply_project_weights(db, project, employee)

    result = update_kpis_from_dpr(db, employee, project, {"progress": 12345})

    assert result["timeliness"] == 10
    assert result["quality"] is None
