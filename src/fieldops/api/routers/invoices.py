# src/fieldops/api/routers/invoices.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status

from fieldops.api.deps import get_actor, get_invoice_engine
from fieldops.schemas.invoices import InvoiceGenerateIn, InvoiceOut, PaymentIn, PaymentOut, ReceiptOut
from fieldops.services import InvoiceEngine

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/generate", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    payload: InvoiceGenerateIn,
    engine: InvoiceEngine = Depends(get_invoice_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    return InvoiceOut.model_validate(await engine.generate_from_service_request(payload, actor))


@router.post("/mark-overdue", response_model=list[InvoiceOut])
async def mark_invoices_overdue(
    as_of: Optional[date] = None,
    company_id: Optional[uuid.UUID] = None,
    engine: InvoiceEngine = Depends(get_invoice_engine),
):
    return [InvoiceOut.model_validate(i) for i in await engine.mark_overdue(as_of, company_id)]


@router.get("/{invoice_id}", response_model=InvoiceOut)
async def get_invoice(invoice_id: uuid.UUID, engine: InvoiceEngine = Depends(get_invoice_engine)):
    return InvoiceOut.model_validate(await engine.get(invoice_id))


@router.post("/{invoice_id}/send", response_model=InvoiceOut)
async def send_invoice(invoice_id: uuid.UUID, engine: InvoiceEngine = Depends(get_invoice_engine)):
    return InvoiceOut.model_validate(await engine.send(invoice_id))


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
async def cancel_invoice(invoice_id: uuid.UUID, engine: InvoiceEngine = Depends(get_invoice_engine)):
    return InvoiceOut.model_validate(await engine.cancel(invoice_id))


@router.post("/{invoice_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def record_payment(
    invoice_id: uuid.UUID,
    payload: PaymentIn,
    engine: InvoiceEngine = Depends(get_invoice_engine),
    actor: Optional[uuid.UUID] = Depends(get_actor),
):
    payment = await engine.record_payment(
        invoice_id, payload.amount, payload.payment_method, payload.reference, payload.notes, actor
    )
    return PaymentOut.model_validate(payment)


@router.get("/{invoice_id}/receipts", response_model=list[ReceiptOut])
async def list_receipts(invoice_id: uuid.UUID, engine: InvoiceEngine = Depends(get_invoice_engine)):
    return [ReceiptOut.model_validate(r) for r in await engine.receipts(invoice_id)]
