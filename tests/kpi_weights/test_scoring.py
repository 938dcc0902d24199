import pytest

from kpi_weights.application import apply_project_weights
from kpi_weights.scoring import (
    analyze_all,
    analyze_employee,
    apar_final_score,
    apar_weighted_score,
    calculate_final_score,
    performance_for,
    status_for,
)
from kpi_weights.store import COLL_KPI_SUMMARIES, COLL_KPIS, COLL_USERS


def test_final_score_is_weighted_mean():
    assert calculate_final_score({"a": 80, "b": 60}, {"a": 50, "b": 50}) == 70
    assert calculate_final_score({"a": 80, "b": 60}, {"a": 30, "b": 10}) == 75
    assert calculate_final_score({"a": 80}, {"a": 0}) == 0


def test_performance_is_capped_share_of_target():
    assert performance_for({"target": 100, "achievedValue": 45}) == 45
    assert performance_for({"target": 50, "achievedValue": 80}) == 100
    assert performance_for({"target": 0, "achievedValue": 10}) == 0
    assert performance_for({}) == 0


@pytest.mark.parametrize("progress,status", [(100, "completed"), (90, "completed"), (60, "in_progress"), (59.9, "at_risk"), (0, "at_risk")])
def test_status_thresholds(progress, status):
    assert status_for(progress) == status


def test_analyze_scores_active_set(db, make_employee):
    employee = make_employee()
    db[COLL_KPIS].update_many({"assignedTo": employee}, {"$set": {"achievedValue": 80}})
    db[COLL_KPIS].update_one(
        {"assignedTo": employee, "kpiName": "Timeliness of DPR Preparation"}, {"$set": {"achievedValue": 100}}
    )

    result = analyze_employee(db, employee)

    assert result["hasData"] is True
    assert result["totalScore"] == pytest.approx(82.5)
    assert result["outputScore"] == pytest.approx(57.75)

    timeliness = db[COLL_KPIS].find_one({"assignedTo": employee, "kpiName": "Timeliness of DPR Preparation"})
    assert timeliness["status"] == "completed"
    assert timeliness["score"] == 12.5
    survey = db[COLL_KPIS].find_one({"assignedTo": employee, "kpiName": "Survey Accuracy"})
    assert survey["status"] == "in_progress"

    summary = db[COLL_KPI_SUMMARIES].find_one({"userId": employee, "period": "Annual"})
    assert summary["outputScore"] == pytest.approx(57.75)
    assert db[COLL_USERS].find_one({"_id": employee})["hasAIKPI"] is True


def test_analyze_uses_project_set_after_apply(db, make_employee, make_project):
    employee = make_employee()
    project = make_project(
        kpi_weights={
            "Survey Accuracy": {"fieldWeight": 60, "hqWeight": 0},
            "Financial Targets": {"fieldWeight": 40, "hqWeight": 0},
        }
    )
    apply_project_weights(db, project, employee)
    db[COLL_KPIS].update_one(
        {"assignedTo": employee, "isProjectSpecific": True, "kpiName": "Survey Accuracy"},
        {"$set": {"achievedValue": 50}},
    )

    result = analyze_employee(db, employee)

    assert result["totalScore"] == pytest.approx(30)
    assert {k["kpiName"] for k in result["kpis"]} >= {"Survey Accuracy", "Financial Targets"}


def test_analyze_without_kpis(db, make_employee):
    employee = make_employee(defaults=False)
    assert analyze_employee(db, employee)["hasData"] is False


def test_analyze_all_skips_employees_without_data(db, make_employee):
    make_employee(name="Ravi Kumar")
    make_employee(name="Anil Verma", defaults=False)
    make_employee(name="Old Hand")
    db[COLL_USERS].update_one({"name": "Old Hand"}, {"$set": {"archived": True}})

    results = analyze_all(db)

    assert [r["employeeName"] for r in results] == ["Ravi Kumar"]


def test_apar_scores():
    assert apar_weighted_score(85) == 25.5

    kpis = [
        {"status": "completed", "score": 12.5, "weightage": 12.5},
        {"status": "Completed", "score": 9, "weightage": 10},
        {"status": "at_risk", "score": 1, "weightage": 50},
    ]
    assert apar_final_score(kpis, 40) == pytest.approx(21.5 / 22.5 * 70 + 30, abs=0.01)
    assert apar_final_score([], -5) == 0
    assert apar_final_score(kpis[2:], 12) == 12
