from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "companies": {"id", "office_latitude", "office_longitude", "allowed_radius"},
    "employees": {"id", "company_id", "ssn_encrypted", "iban_encrypted"},
    "time_entries": {"id", "employee_id", "type", "timestamp", "latitude", "longitude"},
    "expenses": {"id", "employee_id", "amount", "expense_date", "category"},
    "vacations": {"id", "employee_id", "start_date", "status", "days"},
    "anomaly_events": {"id", "entity_type", "entity_id", "score", "reasons", "status"},
    "alerts": {"id", "type", "severity", "is_dismissed"},
    "alembic_version": {"version_num"},
}

# The anomaly sink relies on ON CONFLICT over this pair.
REQUIRED_UNIQUE_KEYS: dict[str, set[str]] = {
    "anomaly_events": {"entity_type", "entity_id"},
}


def _has_unique_key(inspector, table_name: str, columns: set[str]) -> bool:  # type: ignore[no-untyped-def]
    for constraint in inspector.get_unique_constraints(table_name):
        if set(constraint.get("column_names") or []) == columns:
            return True
    for index in inspector.get_indexes(table_name):
        if index.get("unique") and set(index.get("column_names") or []) == columns:
            return True
    return False


def verify_runtime_schema(engine: Engine, *, check_alembic: bool = True) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        if table_name == "alembic_version" and not check_alembic:
            continue
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, columns in REQUIRED_UNIQUE_KEYS.items():
        try:
            present = _has_unique_key(inspector, table_name, columns)
        except Exception as exc:
            warnings.append(f"UNIQUE_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue
        if not present:
            issues.append(f"MISSING_UNIQUE_KEY:{table_name}:{','.join(sorted(columns))}")

    if check_alembic:
        try:
            with engine.connect() as connection:
                row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
                version = str(row).strip() if row is not None else ""
                if not version:
                    issues.append("ALEMBIC_VERSION_EMPTY")
        except Exception as exc:
            issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
