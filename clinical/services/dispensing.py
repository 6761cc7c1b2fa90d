"""
Pharmacy dispensing: turns a prescription into stock deductions and an invoice.

A dispense is one transaction.  Every requested line is allocated from
inventory before anything is committed; if any line is short the whole
dispense rolls back, leaving stock, the prescription and the invoice
ledger as they were.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from django.db import transaction
from django.db.models import QuerySet

from clinical.exceptions import AuthorizationError, NotFoundError, ValidationError
from clinical.models import Dispensing, Invoice, Medication, Prescription, User
from clinical.services.audit import log_action
from clinical.services.billing import build_line, create_invoice
from clinical.services.inventory import _positive_int, allocate_for_dispense
from clinical.services.notifications import PHARMACY, notify_pending_work_on_commit
from clinical.transitions import ensure_transition

logger = logging.getLogger(__name__)


@dataclass
class DispenseResult:
    invoice: Invoice
    dispensings: list[Dispensing] = field(default_factory=list)


def _normalise_items(requested_items) -> list[tuple[int, int]]:
    items = list(requested_items or [])
    if not items:
        raise ValidationError('at least one item is required')
    normalised = []
    for item in items:
        try:
            medication_id = int(item['medication_id'])
            quantity = item['quantity']
        except (KeyError, TypeError, ValueError):
            raise ValidationError('each item needs a medication_id and an integer quantity')
        normalised.append((medication_id, _positive_int(quantity, 'quantity')))
    return normalised


@transaction.atomic
def dispense(actor: User, prescription_id, requested_items: Iterable[dict], *,
             now: Optional[datetime] = None) -> DispenseResult:
    prescription = Prescription.objects.select_for_update().filter(id=prescription_id).first()
    if prescription is None:
        raise NotFoundError(f'prescription {prescription_id} not found')
    ensure_transition('prescription', prescription.status, Prescription.Status.DISPENSED)
    items = _normalise_items(requested_items)

    dispensings: list[Dispensing] = []
    lines: list[dict] = []
    for medication_id, quantity in items:
        medication = Medication.objects.filter(id=medication_id).first()
        if medication is None:
            raise NotFoundError(f'medication {medication_id} not found')
        for allocation in allocate_for_dispense(medication.id, quantity):
            dispensings.append(Dispensing.objects.create(
                prescription=prescription,
                medication=medication,
                batch=allocation.batch,
                batch_number=allocation.batch.batch_number,
                quantity=allocation.quantity,
                dispensed_by=actor,
            ))
        description = f"{medication.name} ({medication.dosage_form})" if medication.dosage_form else medication.name
        lines.append(build_line(description, quantity, medication.unit_price))

    old_status = prescription.status
    prescription.status = Prescription.Status.DISPENSED
    prescription.save(update_fields=['status'])

    invoice = create_invoice(patient=prescription.patient, items=lines,
                             medical_record=prescription.medical_record, now=now)
    log_action(user=actor, action='prescription_dispense', obj=prescription, detail={
        'from': old_status,
        'invoiceId': invoice.id,
        'allocations': [[d.batch_id, d.quantity] for d in dispensings],
    })
    logger.info('prescription %s dispensed (%d batch lines), invoice %s',
                prescription.id, len(dispensings), invoice.invoice_number)
    return DispenseResult(invoice=invoice, dispensings=dispensings)


@transaction.atomic
def request_refill(actor: User, prescription_id) -> Prescription:
    prescription = Prescription.objects.select_for_update().filter(id=prescription_id).first()
    if prescription is None:
        raise NotFoundError(f'prescription {prescription_id} not found')
    if getattr(actor, 'role', '') == User.Role.PATIENT and prescription.patient.user_id != actor.id:
        raise AuthorizationError('not allowed to request a refill for this prescription')
    ensure_transition('prescription', prescription.status, Prescription.Status.REFILL_REQUESTED)

    prescription.status = Prescription.Status.REFILL_REQUESTED
    prescription.save(update_fields=['status'])
    log_action(user=actor, action='prescription_refill', obj=prescription)
    notify_pending_work_on_commit(PHARMACY, patient_id=prescription.patient_id,
                                  record_id=prescription.medical_record_id, item_ids=[prescription.id])
    return prescription


def pending_prescriptions() -> QuerySet:
    """Pharmacy work queue, oldest first."""
    return (
        Prescription.objects
        .filter(status__in=[Prescription.Status.PENDING, Prescription.Status.REFILL_REQUESTED])
        .select_related('patient')
        .order_by('created_at', 'id')
    )


def format_prescription(rx: Prescription) -> dict:
    return {
        'id': rx.id,
        'patientId': rx.patient_id,
        'patientName': str(rx.patient),
        'medicalRecordId': rx.medical_record_id,
        'medicationName': rx.medication_name,
        'dosage': rx.dosage,
        'frequency': rx.frequency,
        'route': rx.route,
        'duration': rx.duration,
        'quantity': rx.quantity,
        'status': rx.status,
        'createdAt': rx.created_at.isoformat(),
    }


def format_dispensing(d: Dispensing) -> dict:
    return {
        'id': d.id,
        'medicationId': d.medication_id,
        'batchId': d.batch_id,
        'batchNumber': d.batch_number,
        'quantity': d.quantity,
        'dispensedAt': d.dispensed_at.isoformat(),
    }
