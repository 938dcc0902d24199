import pytest

from kpi_weights.application import apply_project_weights
from kpi_weights.diagnostics import all_projects_weight_report, employee_weight_report, project_weight_report
from kpi_weights.errors import NotFound, PreconditionFailed
from kpi_weights.weight_source import get_default_weights


def test_project_report_uses_shared_tolerance(db, make_project):
    project = make_project(
        kpi_weights={
            "Survey Accuracy": {"fieldWeight": 60, "hqWeight": 50},
            "Responsiveness": {"fieldWeight": 39.6, "hqWeight": 49},
        }
    )

    report = project_weight_report(db, project)

    assert report["totals"] == {"field": 99.6, "hq": 99}
    assert report["validation"] == {"fieldValid": True, "hqValid": False}


def test_project_without_weights(db, make_project):
    with pytest.raises(PreconditionFailed):
        project_weight_report(db, make_project(name="Bare"))


def test_employee_report_checks_live_set(db, make_employee, make_project):
    employee = make_employee()
    report = employee_weight_report(db, employee)
    assert report["total"] == 100
    assert report["projectSpecificCount"] == 0
    assert report["validation"]["valid"] is True

    apply_project_weights(db, make_project(kpi_weights=get_default_weights()), employee)
    report = employee_weight_report(db, employee)
    assert report["projectSpecificCount"] == 8
    assert len(report["scopes"]) == 1
    assert report["validation"]["valid"] is True


def test_employee_without_kpis(db, make_employee):
    with pytest.raises(NotFound):
        employee_weight_report(db, make_employee(defaults=False))


def test_all_projects_report(db, make_project):
    make_project(name="Good", kpi_weights=get_default_weights())
    make_project(name="Bad", kpi_weights={"Survey Accuracy": {"fieldWeight": 70, "hqWeight": 100}})
    make_project(name="Bare")

    report = all_projects_weight_report(db)

    assert report["totalProjects"] == 2
    assert report["invalidProjects"] == 1
