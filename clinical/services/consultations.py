"""
Consultation save: the doctor's SOAP note with its orders and the visit bill.

Everything the doctor submits is stored in one transaction: the medical
record, its prescriptions and lab orders, completion of the linked
appointment and the consultation invoice.  Work-queue notifications go
out only after that transaction commits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

import bleach
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clinical.exceptions import AuthorizationError, NotFoundError, ValidationError
from clinical.models import Appointment, Invoice, LabOrder, MedicalRecord, PatientProfile, Prescription, User
from clinical.services.audit import log_action
from clinical.services.billing import build_line, create_invoice
from clinical.services.notifications import LAB, PHARMACY, notify_pending_work_on_commit
from clinical.services.scheduling import transition_appointment

logger = logging.getLogger(__name__)

SOAP_FIELDS = ('subjective', 'objective', 'assessment', 'plan')


@dataclass
class ConsultationResult:
    record: MedicalRecord
    invoice: Invoice


def _clean(value) -> str:
    return bleach.clean(str(value or '').strip(), strip=True)


def _prescription_rows(record: MedicalRecord, patient: PatientProfile, prescriptions) -> list[Prescription]:
    rows = []
    for item in prescriptions:
        try:
            duration = int(item.get('duration', 0))
            quantity = int(item['quantity'])
        except (KeyError, TypeError, ValueError):
            raise ValidationError('prescription needs an integer quantity and duration')
        name = _clean(item.get('medication_name') or item.get('medicationName'))
        if not name or quantity <= 0 or duration < 0:
            raise ValidationError('prescription needs a medication name and a positive quantity')
        rows.append(Prescription(
            medical_record=record,
            patient=patient,
            medication_name=name,
            dosage=_clean(item.get('dosage')),
            frequency=_clean(item.get('frequency')),
            route=_clean(item.get('route')) or 'ORAL',
            duration=duration,
            quantity=quantity,
            status=Prescription.Status.PENDING,
        ))
    return rows


def _lab_order_rows(record: MedicalRecord, patient: PatientProfile, lab_orders) -> list[LabOrder]:
    rows = []
    for item in lab_orders:
        test_name = _clean(item.get('test_name') or item.get('testName'))
        if not test_name:
            raise ValidationError('lab order needs a test name')
        priority = item.get('priority') or LabOrder.Priority.ROUTINE
        if priority not in LabOrder.Priority.values:
            raise ValidationError(f'unknown lab priority {priority!r}')
        rows.append(LabOrder(
            medical_record=record,
            patient=patient,
            test_name=test_name,
            priority=priority,
            clinical_indication=_clean(item.get('clinical_indication') or item.get('clinicalIndication')),
            status=LabOrder.Status.PENDING,
        ))
    return rows


def _billing_lines(billing_items) -> list[dict]:
    lines = [build_line('Consultation fee', 1, Decimal(str(settings.CONSULTATION_FEE)))]
    for item in billing_items:
        description = _clean(item.get('description'))
        if not description:
            raise ValidationError('billing item needs a description')
        lines.append(build_line(description, item.get('quantity', 1), item.get('amount')))
    return lines


@transaction.atomic
def save_consultation(actor: User, *, patient_id, doctor_id, soap: dict,
                      prescriptions: Iterable[dict] = (), lab_orders: Iterable[dict] = (),
                      billing_items: Iterable[dict] = (), appointment_id=None,
                      now: Optional[datetime] = None) -> ConsultationResult:
    now = now or timezone.now()
    patient = PatientProfile.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFoundError(f'patient {patient_id} not found')
    doctor = User.objects.filter(id=doctor_id).first()
    if doctor is None:
        raise NotFoundError(f'doctor {doctor_id} not found')
    if doctor.role != User.Role.DOCTOR:
        raise ValidationError(f'user {doctor_id} is not a doctor')
    if actor.role == User.Role.DOCTOR and actor.id != doctor.id:
        raise AuthorizationError('doctors may only record their own consultations')

    appointment = None
    if appointment_id is not None:
        appointment = Appointment.objects.select_for_update().filter(id=appointment_id).first()
        if appointment is None:
            raise NotFoundError(f'appointment {appointment_id} not found')
        if appointment.patient_id != patient.id or appointment.doctor_id != doctor.id:
            raise ValidationError('appointment does not belong to this patient and doctor')
        transition_appointment(appointment, Appointment.Status.COMPLETED, actor=actor, reason='consultation saved')

    soap = soap or {}
    record = MedicalRecord.objects.create(
        patient=patient,
        doctor=doctor,
        appointment=appointment,
        visit_date=now,
        **{name: _clean(soap.get(name)) for name in SOAP_FIELDS},
    )
    rx_rows = Prescription.objects.bulk_create(_prescription_rows(record, patient, prescriptions))
    lab_rows = LabOrder.objects.bulk_create(_lab_order_rows(record, patient, lab_orders))

    invoice = create_invoice(patient=patient, items=_billing_lines(billing_items), medical_record=record, now=now)
    log_action(user=actor, action='consultation_save', obj=record, detail={
        'appointmentId': appointment.id if appointment else None,
        'prescriptions': len(rx_rows),
        'labOrders': len(lab_rows),
        'invoiceId': invoice.id,
    })

    # bulk_create only returns primary keys on some backends
    rx_ids = list(record.prescriptions.values_list('id', flat=True))
    lab_ids = list(record.lab_orders.values_list('id', flat=True))
    if rx_ids:
        notify_pending_work_on_commit(PHARMACY, patient_id=patient.id, record_id=record.id, item_ids=rx_ids)
    if lab_ids:
        notify_pending_work_on_commit(LAB, patient_id=patient.id, record_id=record.id, item_ids=lab_ids)
    logger.info('consultation %s saved for patient %s (%d rx, %d lab)',
                record.id, patient.id, len(rx_ids), len(lab_ids))
    return ConsultationResult(record=record, invoice=invoice)


def format_record(record: MedicalRecord) -> dict:
    return {
        'id': record.id,
        'patientId': record.patient_id,
        'doctorId': record.doctor_id,
        'appointmentId': record.appointment_id,
        'visitDate': record.visit_date.isoformat(),
        **{name: getattr(record, name) for name in SOAP_FIELDS},
        'prescriptionIds': list(record.prescriptions.values_list('id', flat=True)),
        'labOrderIds': list(record.lab_orders.values_list('id', flat=True)),
    }
