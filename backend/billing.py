"""Invoice totals, invoice creation and invoice mutation."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pymongo.errors import DuplicateKeyError

from config import settings
from database import (
    count_documents,
    create_document,
    find_by_id,
    get_documents,
    modify_versioned,
    next_sequence,
    soft_delete,
)
from errors import Conflict, NotFound, ValidationError
from references import DOCTORS, PATIENTS, get_doctor, get_patient, resolve_department
from schemas import InvoiceCreate, InvoiceUpdate

logger = logging.getLogger(__name__)

INVOICES = "invoice"
INVOICE_COUNTER = "invoiceNumber"
SNAPSHOT_FIELDS = ("patientDetails", "hospitalDetails", "insuranceDetails", "signatures")
# Fields that may be cleared by sending null
NULLABLE_FIELDS = ("notes", "appointment")


def compute_totals(
    items: Iterable[Mapping[str, Any]], tax: float = 0, discount: float = 0
) -> Dict[str, float]:
    """Compute invoice totals from line items.

    ``tax`` and ``discount`` are percentages of the subtotal. The grand total
    is not clamped; callers are expected to have validated quantities and
    prices already.
    """
    sub_total = sum((item["quantity"] * item["unitPrice"] for item in items), 0.0)
    tax_amount = sub_total * tax / 100
    discount_amount = sub_total * discount / 100
    return {
        "subTotal": sub_total,
        "taxAmount": tax_amount,
        "discountAmount": discount_amount,
        "grandTotal": sub_total + tax_amount - discount_amount,
    }


def normalize_items(items: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    normalized = []
    for item in items:
        line = dict(item)
        if line.get("total") is None:
            line["total"] = line["quantity"] * line["unitPrice"]
        normalized.append(line)
    return normalized


def balance_due(grand_total: float, amount_paid: float) -> float:
    # Overpayment is absorbed, not carried as credit
    return max(float(grand_total) - float(amount_paid or 0), 0.0)


def next_invoice_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    seq = next_sequence(
        INVOICE_COUNTER, seed=lambda: count_documents(INVOICES, include_deleted=True)
    )
    return f"{settings.INVOICE_NUMBER_PREFIX}-{now.year}-{str(seq).zfill(settings.INVOICE_SEQUENCE_PADDING)}"


def _populate(invoice: Dict[str, Any]) -> Dict[str, Any]:
    for field, collection in (("patient", PATIENTS), ("doctor", DOCTORS)):
        ref = find_by_id(collection, invoice.get(field), include_deleted=True)
        if ref is not None:
            invoice[field] = ref
    return invoice


def _snapshots(data: InvoiceCreate, patient: Dict[str, Any]) -> Dict[str, Any]:
    pd, hd, ins, sig = data.patientDetails, data.hospitalDetails, data.insuranceDetails, data.signatures
    return {
        "patientDetails": {
            "name": pd.name or f"{patient.get('firstName', '')} {patient.get('lastName', '')}".strip(),
            "admissionNumber": pd.admissionNumber or "",
            "contact": pd.contact or patient.get("phone") or "",
        },
        "hospitalDetails": {
            "name": hd.name or settings.DEFAULT_HOSPITAL_NAME,
            "address": hd.address or settings.DEFAULT_HOSPITAL_ADDRESS,
            "contact": hd.contact or settings.DEFAULT_HOSPITAL_CONTACT,
        },
        "insuranceDetails": {
            "provider": ins.provider or "",
            "policyNumber": ins.policyNumber or "",
            "coverageAmount": ins.coverageAmount or 0,
            "coveragePercentage": ins.coveragePercentage or 0,
        },
        "signatures": {
            "billingStaff": sig.billingStaff or "",
            "patient": sig.patient or "",
        },
    }


def create_invoice(data: InvoiceCreate) -> Dict[str, Any]:
    if not data.items:
        raise ValidationError("Invoice must contain at least one item")

    patient = get_patient(data.patient)
    doctor, department = get_doctor(data.doctor)

    items = normalize_items(item.model_dump() for item in data.items)
    totals = compute_totals(items, data.tax, data.discount)

    payload = data.model_dump(exclude={"invoiceNumber", *SNAPSHOT_FIELDS})
    payload.update(_snapshots(data, patient))
    payload.update(totals)
    payload.update(
        items=items,
        invoiceDate=data.invoiceDate or datetime.utcnow(),
        department=resolve_department(data.department, doctor, department),
        status="pending",
        amountPaid=data.amountPaid,
        balanceDue=balance_due(totals["grandTotal"], data.amountPaid),
    )

    requested = (data.invoiceNumber or "").strip()
    for attempt in range(1, settings.WRITE_RETRIES + 1):
        number = requested or next_invoice_number()
        try:
            invoice = create_document(INVOICES, {**payload, "invoiceNumber": number})
            break
        except DuplicateKeyError:
            if requested:
                raise Conflict(f"Invoice number {number} already exists")
            logger.warning("Invoice number %s already taken, regenerating (%d)", number, attempt)
    else:
        raise Conflict("Could not allocate a unique invoice number")

    logger.info(
        "Invoice %s created for patient %s, grand total %.2f",
        invoice["invoiceNumber"], data.patient, invoice["grandTotal"],
    )
    invoice["patient"] = patient
    invoice["doctor"] = doctor
    return invoice


def get_invoice(invoice_id: str) -> Dict[str, Any]:
    invoice = find_by_id(INVOICES, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")
    return _populate(invoice)


def list_invoices(
    patient: Optional[str] = None, status: Optional[str] = None, limit: int = 100
) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if patient:
        query["patient"] = patient
    if status:
        query["status"] = status
    return [_populate(doc) for doc in get_documents(INVOICES, query, limit=limit)]


def _invoice_changes(
    current: Dict[str, Any],
    changes: Dict[str, Any],
    doctor: Optional[Dict[str, Any]] = None,
    department: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Translate a partial update into the full set of fields to write."""
    fields = {
        k: v
        for k, v in changes.items()
        if k not in ("items", "tax", "discount", "amountPaid", "doctor", "department", *SNAPSHOT_FIELDS)
    }

    if "doctor" in changes:
        fields["doctor"] = changes["doctor"]
        fields["department"] = resolve_department(
            changes.get("department"), doctor, department
        )
    elif changes.get("department"):
        fields["department"] = changes["department"]

    # Snapshots merge field by field; unspecified sub-fields keep their stored value
    for key in SNAPSHOT_FIELDS:
        if key in changes:
            fields[key] = {**(current.get(key) or {}), **changes[key]}

    recompute = any(k in changes for k in ("items", "tax", "discount"))
    if recompute:
        items = normalize_items(changes["items"]) if "items" in changes else current.get("items", [])
        tax = changes.get("tax", current.get("tax", 0))
        discount = changes.get("discount", current.get("discount", 0))
        fields.update(items=items, tax=tax, discount=discount)
        fields.update(compute_totals(items, tax, discount))

    if "amountPaid" in changes:
        fields["amountPaid"] = float(changes["amountPaid"])

    if recompute or "amountPaid" in changes:
        fields["balanceDue"] = balance_due(
            fields.get("grandTotal", current.get("grandTotal", 0)),
            fields.get("amountPaid", current.get("amountPaid", 0)),
        )
    return fields


def update_invoice(invoice_id: str, patch: InvoiceUpdate) -> Dict[str, Any]:
    changes = {
        k: v
        for k, v in patch.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    if "items" in changes and not changes["items"]:
        raise ValidationError("Invoice must contain at least one item")

    doctor = department = None
    if "doctor" in changes:
        try:
            doctor, department = get_doctor(changes["doctor"])
        except NotFound as exc:
            raise ValidationError("Doctor not found") from exc

    invoice = modify_versioned(
        INVOICES, invoice_id, lambda current: {"$set": _invoice_changes(current, changes, doctor, department)}
    )
    if invoice is None:
        raise NotFound("Invoice not found")
    logger.info("Invoice %s updated: %s", invoice["invoiceNumber"], ", ".join(sorted(patch.model_fields_set)))
    return _populate(invoice)


def mark_invoice_paid(invoice_id: str) -> Dict[str, Any]:
    invoice = modify_versioned(
        INVOICES,
        invoice_id,
        lambda current: {
            "$set": {
                "status": "paid",
                "amountPaid": current.get("grandTotal", 0),
                "balanceDue": 0.0,
            }
        },
    )
    if invoice is None:
        raise NotFound("Invoice not found")
    logger.info("Invoice %s marked paid (%.2f)", invoice["invoiceNumber"], invoice["amountPaid"])
    return _populate(invoice)


def delete_invoice(invoice_id: str) -> None:
    if soft_delete(INVOICES, invoice_id) is None:
        raise NotFound("Invoice not found")
    logger.info("Invoice %s deleted", invoice_id)
