"""
Audit KPI weight totals.

Prints the per-channel totals of every project profile (or the live KPI set of
one employee) and exits non-zero when anything is outside the tolerance.
"""
import argparse
import logging
import os
import sys

from bson import json_util

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kpi_weights.diagnostics import all_projects_weight_report, employee_weight_report, project_weight_report  # noqa: E402
from utils import settings  # noqa: E402
from utils.db_utils import get_db  # noqa: E402


def check(project_id=None, employee_id=None) -> bool:
    db = get_db()
    if employee_id:
        report = employee_weight_report(db, employee_id)
        ok = report["validation"]["valid"]
    elif project_id:
        report = project_weight_report(db, project_id)
        ok = report["validation"]["fieldValid"] and report["validation"]["hqValid"]
    else:
        report = all_projects_weight_report(db)
        ok = report["invalidProjects"] == 0

    print(json_util.dumps(report, indent=2))
    if not ok:
        logging.error("[Check] Weight totals outside tolerance")
    return ok


if __name__ == "__main__":
    settings.bootstrap()

    parser = argparse.ArgumentParser(description="Check KPI weight totals")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--project-id", help="Check one project profile")
    group.add_argument("--employee-id", help="Check one employee's KPI set")

    args = parser.parse_args()
    sys.exit(0 if check(args.project_id, args.employee_id) else 1)
