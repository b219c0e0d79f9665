"""Summary numbers and CSV export for the admin user list."""

from __future__ import annotations

import csv
import io
from typing import Iterable, Sequence

from .models import UserRecord

EXPORT_COLUMNS = (
    "id",
    "email",
    "first_name",
    "last_name",
    "company",
    "location",
    "signup_source",
    "status",
    "roles",
    "spend",
)


def summarise_users(users: Sequence[UserRecord]) -> dict:
    total = len(users)
    total_spend = sum(user.spend or 0 for user in users)
    return {
        "total": total,
        "active": sum(1 for user in users if user.status == "active"),
        "inactive": sum(1 for user in users if user.status == "inactive"),
        "total_spend": round(total_spend, 2),
        "average_spend": round(total_spend / total, 2) if total else 0.0,
    }


def export_users_csv(users: Iterable[UserRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for user in users:
        row = user.model_dump(include=set(EXPORT_COLUMNS))
        row["roles"] = ";".join(user.roles)
        writer.writerow({key: "" if row.get(key) is None else row[key] for key in EXPORT_COLUMNS})
    return buffer.getvalue()
