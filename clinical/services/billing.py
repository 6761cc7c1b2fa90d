"""
Invoice ledger and payment application.

An invoice's ``balance`` and ``status`` are never set directly: every
writer recomputes them from ``total`` and ``amount_paid`` through
:func:`invoice_balance` and :func:`derive_invoice_status`.

Overpayment is accepted and reconciled rather than rejected.  The
payment row keeps the amount actually tendered, ``amount_paid`` is the
sum of completed payments, the balance floors at zero and the surplus is
exposed as :attr:`Invoice.overpaid_amount <clinical.models.Invoice.overpaid_amount>`.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from clinical.exceptions import (
    AuthorizationError,
    ConflictError,
    IllegalStateTransitionError,
    NotFoundError,
    ValidationError,
)
from clinical.models import Invoice, MedicalRecord, PatientProfile, Payment, User
from clinical.services.audit import log_action

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value, field: str = 'amount') -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a decimal amount')
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a decimal amount')
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def derive_invoice_status(total: Decimal, amount_paid: Decimal) -> str:
    """ISSUED while nothing is paid, PARTIAL while short, PAID once covered.

    A zero-total invoice is PAID from the start.
    """
    if amount_paid >= total:
        return Invoice.Status.PAID
    if amount_paid > 0:
        return Invoice.Status.PARTIAL
    return Invoice.Status.ISSUED


def invoice_balance(total: Decimal, amount_paid: Decimal) -> Decimal:
    return max(total - amount_paid, ZERO)


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    now = now or timezone.now()
    return f"INV-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def generate_transaction_reference(now: Optional[datetime] = None) -> str:
    now = now or timezone.now()
    return f"TX-{now:%Y%m%d%H%M%S}-{secrets.token_hex(4).upper()}"


def build_line(description: str, quantity, unit_price) -> dict:
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError('line quantity must be an integer')
    if qty <= 0:
        raise ValidationError('line quantity must be positive')
    price = to_money(unit_price, 'unit price')
    if price < 0:
        raise ValidationError('unit price must not be negative')
    return {'description': description, 'quantity': qty, 'unitPrice': str(price)}


def line_total(line: dict) -> Decimal:
    return Decimal(line['unitPrice']) * line['quantity']


def create_invoice(*, patient: PatientProfile, items: Iterable[dict], medical_record: Optional[MedicalRecord] = None,
                   tax: Decimal = ZERO, now: Optional[datetime] = None) -> Invoice:
    """Insert an invoice for already-built lines; must run inside the caller's transaction."""
    lines = list(items)
    subtotal = sum((line_total(line) for line in lines), ZERO).quantize(CENT)
    tax = to_money(tax, 'tax')
    total = subtotal + tax
    paid = ZERO
    return Invoice.objects.create(
        invoice_number=generate_invoice_number(now),
        patient=patient,
        medical_record=medical_record,
        items=lines,
        subtotal=subtotal,
        tax=tax,
        total=total,
        amount_paid=paid,
        balance=invoice_balance(total, paid),
        status=derive_invoice_status(total, paid),
    )


@transaction.atomic
def apply_payment(actor: User, invoice_id, amount, method: str, reference: Optional[str] = None) -> Payment:
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError('payment amount must be positive')
    if method not in Payment.Method.values:
        raise ValidationError(f'unknown payment method {method!r}')

    invoice = Invoice.objects.select_for_update().filter(id=invoice_id).first()
    if invoice is None:
        raise NotFoundError(f'invoice {invoice_id} not found')
    if getattr(actor, 'role', '') == User.Role.PATIENT and invoice.patient.user_id != actor.id:
        raise AuthorizationError('not allowed to pay this invoice')
    if invoice.status == Invoice.Status.PAID:
        raise IllegalStateTransitionError(
            'invoice', invoice.status, Invoice.Status.PAID, message=f'invoice {invoice.invoice_number} is already paid'
        )

    try:
        with transaction.atomic():
            payment = Payment.objects.create(
                invoice=invoice,
                amount=amount,
                method=method,
                status=Payment.Status.COMPLETED,
                transaction_reference=reference or generate_transaction_reference(),
                processed_by=actor if getattr(actor, 'pk', None) else None,
            )
    except IntegrityError as exc:
        raise ConflictError(f'duplicate transaction reference {reference!r}') from exc

    invoice.amount_paid += amount
    invoice.balance = invoice_balance(invoice.total, invoice.amount_paid)
    invoice.status = derive_invoice_status(invoice.total, invoice.amount_paid)
    invoice.save(update_fields=['amount_paid', 'balance', 'status', 'updated_at'])
    log_action(user=actor, action='payment_apply', obj=payment, detail={
        'invoiceId': invoice.id, 'amount': str(amount), 'method': method, 'status': invoice.status,
    })
    if invoice.overpaid_amount > 0:
        logger.warning('invoice %s overpaid by %s', invoice.invoice_number, invoice.overpaid_amount)
    return payment


def invoices_for(user: User, *, patient_id=None):
    """Invoices visible to ``user``, newest first: a patient only ever sees their own."""
    qs = Invoice.objects.select_related('patient')
    if getattr(user, 'role', '') == User.Role.PATIENT:
        qs = qs.filter(patient__user_id=user.id)
    elif patient_id:
        qs = qs.filter(patient_id=patient_id)
    return qs.order_by('-created_at', '-id')


def format_payment(payment: Payment) -> dict:
    return {
        'id': payment.id,
        'amount': str(payment.amount),
        'method': payment.method,
        'status': payment.status,
        'reference': payment.transaction_reference,
        'createdAt': payment.created_at.isoformat(),
    }


def format_invoice(invoice: Invoice, *, with_payments: bool = False) -> dict:
    data = {
        'id': invoice.id,
        'invoiceNumber': invoice.invoice_number,
        'patientId': invoice.patient_id,
        'medicalRecordId': invoice.medical_record_id,
        'items': invoice.items,
        'subtotal': str(invoice.subtotal),
        'tax': str(invoice.tax),
        'total': str(invoice.total),
        'amountPaid': str(invoice.amount_paid),
        'balance': str(invoice.balance),
        'overpaid': str(invoice.overpaid_amount),
        'status': invoice.status,
        'createdAt': invoice.created_at.isoformat(),
    }
    if with_payments:
        data['payments'] = [format_payment(p) for p in invoice.payments.order_by('created_at', 'id')]
    return data
