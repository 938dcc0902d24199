import logging

import azure.functions as func
from pymongo import DESCENDING

from kpi_weights.errors import InvalidInput
from kpi_weights.store import COLL_PROJECTS, utcnow
from kpi_weights.weight_source import resolve_project_weights
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, get_json_body, options_response, respond
from utils.rbac import get_user_doc, require_user

settings.bootstrap()

# Fields forwarded to the weight source
PROJECT_FIELDS = (
    "name",
    "description",
    "department",
    "tags",
    "complexity",
    "duration",
    "budget",
    "fieldInvolvement",
    "hqInvolvement",
    "expectedDeliverables",
)


def list_projects(req: func.HttpRequest) -> func.HttpResponse:
    require_user(req)
    projects = list(get_db()[COLL_PROJECTS].find().sort("createdAt", DESCENDING))
    return respond({"projects": projects})


def create_project(req: func.HttpRequest) -> func.HttpResponse:
    email = require_user(req)
    body = get_json_body(req)

    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidInput("Project name is required", field="name")

    project_data = {k: body.get(k) for k in PROJECT_FIELDS}
    project_data["name"] = name = name.strip()
    kpi_weights, source = resolve_project_weights(project_data)

    creator = get_user_doc(email)
    doc = {
        **project_data,
        "status": body.get("status") or "active",
        "assignedTo": body.get("assignedTo") or [],
        "kpiWeights": kpi_weights,
        "kpiWeightsSource": source,
        "createdBy": creator["_id"] if creator else email,
        "createdAt": utcnow(),
    }
    result = get_db()[COLL_PROJECTS].insert_one(doc)
    doc["_id"] = result.inserted_id

    logging.info(f"[Projects] Created '{name}' with {source} KPI weights ({len(kpi_weights)} KPIs)")
    return respond({"project": doc, "kpiWeights": kpi_weights, "kpiWeightsSource": source}, 201)


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('Projects_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    method = req.method.lower()
    try:
        if method == "get":
            return list_projects(req)
        if method == "post":
            return create_project(req)
        return respond({"error": "Method not allowed"}, 405)
    except Exception as e:
        return error_response(e)
