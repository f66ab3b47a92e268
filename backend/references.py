"""Patients, doctors and departments referenced by invoices and rooms."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from database import create_document, find_by_id, get_documents
from errors import NotFound, ValidationError
from schemas import Department, Doctor, Patient

logger = logging.getLogger(__name__)

PATIENTS = "patient"
DOCTORS = "doctor"
DEPARTMENTS = "department"


def generate_patient_id(name: str) -> str:
    base = "PT-" + datetime.utcnow().strftime("%y%m%d")
    suffix = str(abs(hash(name + str(datetime.utcnow().timestamp()))) % 100000).zfill(5)
    return f"{base}-{suffix}"


def create_patient(p: Patient) -> Dict[str, Any]:
    if not p.patient_id:
        p.patient_id = generate_patient_id(f"{p.firstName} {p.lastName}")
    return create_document(PATIENTS, p.model_dump())


def get_patient(patient_id: str) -> Dict[str, Any]:
    patient = find_by_id(PATIENTS, patient_id)
    if patient is None:
        raise NotFound("Patient not found")
    return patient


def list_patients(limit: int = 100) -> List[Dict[str, Any]]:
    return get_documents(PATIENTS, {}, limit=limit)


def create_department(d: Department) -> Dict[str, Any]:
    return create_document(DEPARTMENTS, d.model_dump())


def create_doctor(d: Doctor) -> Dict[str, Any]:
    if d.department and find_by_id(DEPARTMENTS, d.department) is None:
        raise ValidationError("Department not found")
    return create_document(DOCTORS, d.model_dump())


def get_doctor(doctor_id: str) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Return the doctor and its department document (``None`` if it has none)."""
    doctor = find_by_id(DOCTORS, doctor_id)
    if doctor is None:
        raise NotFound("Doctor not found")
    department = None
    if doctor.get("department"):
        department = find_by_id(DEPARTMENTS, doctor["department"])
    return doctor, department


def list_doctors(limit: int = 100) -> List[Dict[str, Any]]:
    return get_documents(DOCTORS, {}, limit=limit)


def resolve_department(
    explicit: Optional[str],
    doctor: Dict[str, Any],
    department: Optional[Dict[str, Any]] = None,
) -> str:
    # explicit > department name > department id > specialization > "General"
    if explicit:
        return explicit
    if department is not None:
        if department.get("name"):
            return department["name"]
        return department["_id"]
    if doctor.get("department"):
        return doctor["department"]
    return doctor.get("specialization") or "General"
