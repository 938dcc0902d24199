"""
Create the default KPI template for every employee that does not have one yet.

Usage:
    python tools/seed_default_kpis.py --dry-run
    python tools/seed_default_kpis.py --employer-type HQ --email someone@example.gov
"""
import argparse
import logging
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kpi_weights.application import create_default_kpis  # noqa: E402
from kpi_weights.catalog import EMPLOYER_TYPES, normalize_employer_type  # noqa: E402
from kpi_weights.store import COLL_KPIS, COLL_USERS  # noqa: E402
from utils import settings  # noqa: E402
from utils.db_utils import get_db  # noqa: E402


def seed(employer_type=None, email=None, dry_run=False) -> int:
    db = get_db()
    query = {"role": "employee", "archived": {"$ne": True}}
    if email:
        query["email"] = email.lower()

    created = 0
    for user in db[COLL_USERS].find(query):
        if db[COLL_KPIS].count_documents({"assignedTo": user["_id"], "isDefault": True}, limit=1):
            logging.debug(f"[Seed] {user.get('email')} already has default KPIs")
            continue

        etype = employer_type or normalize_employer_type(user.get("employerType"))
        if dry_run:
            logging.info(f"[Seed] DRY RUN: would create {etype} defaults for {user.get('email')}")
            created += 1
            continue

        docs = create_default_kpis(db, user["_id"], etype, assigned_by="seed_default_kpis")
        logging.info(f"[Seed] Created {len(docs)} {etype} default KPIs for {user.get('email')}")
        created += 1

    logging.info(f"[Seed] Done. Employees seeded: {created}")
    return created


if __name__ == "__main__":
    settings.bootstrap()

    parser = argparse.ArgumentParser(description="Seed default KPI templates for employees")
    parser.add_argument("--employer-type", choices=EMPLOYER_TYPES, help="Force a template instead of the user's employerType")
    parser.add_argument("--email", help="Only seed this employee")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be created")

    args = parser.parse_args()
    seed(args.employer_type, args.email, args.dry_run)
