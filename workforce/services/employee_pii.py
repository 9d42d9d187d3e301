from __future__ import annotations

from sqlalchemy.orm import Session

from workforce.errors import not_found
from workforce.models import Employee
from workforce.schemas import EmployeePiiRead
from workforce.services.crypto import FieldCipher, get_field_cipher


def _get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")
    return employee


def read_employee_pii(
    db: Session,
    employee_id: int,
    *,
    cipher: FieldCipher | None = None,
) -> EmployeePiiRead:
    codec = cipher or get_field_cipher()
    employee = _get_employee(db, employee_id)
    return EmployeePiiRead(
        employee_id=employee.id,
        ssn=codec.decrypt(employee.ssn_encrypted),
        iban=codec.decrypt(employee.iban_encrypted),
    )


def set_employee_pii(
    db: Session,
    employee_id: int,
    *,
    ssn: str | None,
    iban: str | None,
    cipher: FieldCipher | None = None,
) -> EmployeePiiRead:
    codec = cipher or get_field_cipher()
    employee = _get_employee(db, employee_id)
    # Encrypt both before touching the row so a key failure never stores plaintext.
    ssn_token = codec.encrypt(ssn.strip() if ssn else None)
    iban_token = codec.encrypt(iban.replace(" ", "").upper() if iban else None)
    employee.ssn_encrypted = ssn_token
    employee.iban_encrypted = iban_token
    db.commit()
    db.refresh(employee)
    return read_employee_pii(db, employee.id, cipher=codec)
