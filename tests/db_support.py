from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workforce import models  # noqa: F401
from workforce.db import Base
from workforce.models import Company, Employee
from workforce.services.timeutils import attendance_timezone

PALMA_OFFICE = (39.5696, 2.6502)


def make_engine() -> Engine:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    return sessionmaker(bind=engine or make_engine(), autoflush=False)


def override_get_db(session: Session):
    def _override() -> Generator[Session, None, None]:
        yield session

    return _override


def local_dt(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Wall-clock time in the attendance timezone, returned as UTC."""
    local = datetime(year, month, day, hour, minute, tzinfo=attendance_timezone())
    return local.astimezone(timezone.utc)


def seed_employee(
    db: Session,
    *,
    full_name: str = "Ana Torres",
    office: tuple[float, float] | None = PALMA_OFFICE,
    allowed_radius: int | None = 100,
    is_active: bool = True,
    vacation_days_total: int | None = None,
) -> Employee:
    company = Company(
        name=f"Company of {full_name}",
        office_latitude=office[0] if office else None,
        office_longitude=office[1] if office else None,
        allowed_radius=allowed_radius,
    )
    employee = Employee(
        full_name=full_name,
        is_active=is_active,
        vacation_days_total=vacation_days_total,
        company=company,
    )
    db.add_all([company, employee])
    db.commit()
    db.refresh(employee)
    return employee
