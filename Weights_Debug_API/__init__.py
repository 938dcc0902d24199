import logging

import azure.functions as func

from kpi_weights.diagnostics import all_projects_weight_report, employee_weight_report, project_weight_report
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, options_response, respond
from utils.rbac import require_admin

settings.bootstrap()


def weights_report(req: func.HttpRequest) -> func.HttpResponse:
    require_admin(req)
    db = get_db()

    project_id = req.params.get("projectId")
    if project_id:
        return respond({"success": True, **project_weight_report(db, project_id)})

    employee_id = req.params.get("employeeId")
    if employee_id:
        return respond({"success": True, **employee_weight_report(db, employee_id)})

    return respond({"success": True, **all_projects_weight_report(db)})


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('Weights_Debug_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    try:
        if req.method.lower() == "get":
            return weights_report(req)
        return respond({"error": "Method not allowed"}, 405)
    except Exception as e:
        return error_response(e)
