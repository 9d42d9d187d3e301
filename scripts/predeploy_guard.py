#!/usr/bin/env python
"""Pre-deploy checks: migrations, field cipher key, JWT secret and live schema.

Prints a JSON summary and exits non-zero when any check fails.
"""
from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from workforce.services.crypto import FieldCipher
from workforce.services.schema_guard import verify_runtime_schema
from workforce.settings import get_settings

VERSIONS_DIR = ROOT_DIR / "workforce" / "migrations" / "versions"
# alembic_version.version_num is VARCHAR(32).
MAX_REVISION_LENGTH = 32
_REVISION_PATTERN = re.compile(r'^\s*revision\s*:\s*str\s*=\s*"([^"]+)"\s*$', re.MULTILINE)


@dataclass(slots=True)
class CheckResult:
    name: str
    status: str
    details: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _status(passed: bool) -> str:
    return "ok" if passed else "fail"


def _extract_revision_ids() -> list[str]:
    revisions: list[str] = []
    for path in sorted(VERSIONS_DIR.glob("*.py")):
        if path.name.startswith("__"):
            continue
        match = _REVISION_PATTERN.search(path.read_text(encoding="utf-8"))
        if match:
            revisions.append(match.group(1).strip())
    return revisions


def _check_revision_id_lengths() -> CheckResult:
    revisions = _extract_revision_ids()
    too_long = [revision for revision in revisions if len(revision) > MAX_REVISION_LENGTH]
    return CheckResult(
        name="migration_revision_length",
        status=_status(not too_long),
        details={"max_len": MAX_REVISION_LENGTH, "too_long": too_long, "total": len(revisions)},
    )


def _check_field_cipher() -> CheckResult:
    cipher = FieldCipher(get_settings().encryption_key)
    self_test_ok = cipher.self_test()
    return CheckResult(
        name="field_cipher_self_test",
        status=_status(self_test_ok),
        details={"key_is_valid": cipher.key_is_valid, "self_test_ok": self_test_ok},
    )


def _check_jwt_secret() -> CheckResult:
    secret_set = bool((get_settings().jwt_secret or "").strip())
    return CheckResult(name="jwt_secret_set", status=_status(secret_set), details={"jwt_secret_set": secret_set})


def _check_database_migration_and_schema() -> CheckResult:
    database_url = (os.getenv("DATABASE_URL") or "").strip()
    if not database_url:
        return CheckResult(name="database_schema_guard", status="warn", details={"reason": "DATABASE_URL_NOT_SET"})

    script = ScriptDirectory.from_config(Config(str(ROOT_DIR / "alembic.ini")))
    expected_heads = sorted(script.get_heads())

    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        with engine.connect() as connection:
            current_heads = sorted(MigrationContext.configure(connection).get_current_heads())
        schema_result = verify_runtime_schema(engine)
    finally:
        engine.dispose()

    missing_heads = [head for head in expected_heads if head not in current_heads]
    return CheckResult(
        name="database_schema_guard",
        status=_status(not missing_heads and schema_result.ok),
        details={
            "expected_heads": expected_heads,
            "current_heads": current_heads,
            "missing_heads": missing_heads,
            "schema_guard": schema_result.to_dict(),
        },
    )


CHECKS: tuple[Callable[[], CheckResult], ...] = (
    _check_revision_id_lengths,
    _check_field_cipher,
    _check_jwt_secret,
    _check_database_migration_and_schema,
)


def main() -> int:
    results = [check() for check in CHECKS]
    ok = not any(result.status == "fail" for result in results)
    summary = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "ok": ok,
        "checks": [{"name": item.name, "status": item.status, "details": item.details} for item in results],
    }
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
