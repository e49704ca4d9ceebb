"""SOQL query construction for change polling."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from sftrigger.core.checkpoints import ensure_utc

OPERATIONS = ("=", "!=", "<", "<=", ">", ">=")

TIMESTAMP_FIELDS = ["Id", "CreatedDate", "LastModifiedDate"]

# Default columns per built-in object, keyed by lower-cased object name.
DEFAULT_FIELDS: Dict[str, List[str]] = {
    "account": ["Name", "Type"],
    "attachment": ["Name", "ParentId"],
    "case": ["AccountId", "ContactId", "Priority", "Status", "Subject", "Type"],
    "contact": ["FirstName", "LastName", "Email"],
    "lead": ["Company", "FirstName", "LastName", "Email", "Status"],
    "opportunity": ["AccountId", "Name", "Amount", "Probability", "StageName", "Type"],
    "task": ["Subject", "Status", "Priority"],
    "user": ["Name", "Email"],
}


def escape_soql(value: str) -> str:
    """Escape a string literal for SOQL."""
    return (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def format_soql_datetime(value: datetime) -> str:
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_soql_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return format_soql_datetime(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return str(value)
    return f"'{escape_soql(str(value))}'"


@dataclass(frozen=True)
class Condition:
    field: str
    operation: str
    value: Any

    def __post_init__(self) -> None:
        if self.operation not in OPERATIONS:
            raise ValueError(f"Unsupported SOQL operation: {self.operation}")

    def to_soql(self) -> str:
        return f"{self.field} {self.operation} {format_soql_value(self.value)}"


def default_fields(resource: str) -> List[str]:
    return TIMESTAMP_FIELDS + DEFAULT_FIELDS.get(resource.lower(), [])


def build_query(
    resource: str,
    conditions: Sequence[Condition] = (),
    limit: Optional[int] = None,
    fields: Optional[Sequence[str]] = None,
    order_by: Optional[str] = None,
) -> str:
    """Build a SOQL SELECT for ``resource`` with AND-ed conditions."""
    if not resource:
        raise ValueError("resource is required")
    if limit is not None and limit < 1:
        raise ValueError("limit must be positive")

    columns = list(fields) if fields else default_fields(resource)
    query = f"SELECT {','.join(columns)} FROM {resource}"
    if conditions:
        query += " WHERE " + " AND ".join(c.to_soql() for c in conditions)
    if order_by:
        query += f" ORDER BY {order_by}"
    if limit is not None:
        query += f" LIMIT {limit}"
    return query
