from typing import Optional

from fastapi import APIRouter

import billing
from response import ok
from schemas import InvoiceCreate, InvoiceStatus, InvoiceUpdate, Totals, TotalsRequest

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/totals")
async def preview_totals(body: TotalsRequest):
    items = [item.model_dump() for item in body.items]
    return ok(Totals(**billing.compute_totals(items, body.tax, body.discount)))


@router.post("")
async def create_invoice(body: InvoiceCreate):
    invoice = billing.create_invoice(body)
    return ok(invoice, "Invoice created successfully", status_code=201)


@router.get("")
async def list_invoices(
    patient: Optional[str] = None, status: Optional[InvoiceStatus] = None, limit: int = 100
):
    docs = billing.list_invoices(patient=patient, status=status, limit=limit)
    return ok(docs, meta={"count": len(docs)})


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: str):
    return ok(billing.get_invoice(invoice_id))


@router.patch("/{invoice_id}/pay")
async def mark_paid(invoice_id: str):
    return ok(billing.mark_invoice_paid(invoice_id), "Invoice marked as paid")


@router.patch("/{invoice_id}")
async def update_invoice(invoice_id: str, body: InvoiceUpdate):
    return ok(billing.update_invoice(invoice_id, body), "Invoice updated successfully")


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: str):
    billing.delete_invoice(invoice_id)
    return ok(message="Invoice deleted successfully")
