"""
Scheduling ledger: appointment booking, status changes and rescheduling.

A doctor's timeline is the contended resource.  Writers serialise on it
by locking the doctor's user row before running the overlap check, so
two concurrent bookings for overlapping slots cannot both commit.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import bleach
from django.db import transaction
from django.db.models import QuerySet

from clinical.exceptions import (
    AuthorizationError,
    ConflictError,
    IllegalStateTransitionError,
    NotFoundError,
    ValidationError,
)
from clinical.models import Appointment, AppointmentTransition, PatientProfile, User
from clinical.services.audit import log_action
from clinical.transitions import RESCHEDULABLE_APPOINTMENT_STATUSES, ensure_transition

logger = logging.getLogger(__name__)

AUTO_CONFIRM_ROLES = frozenset({User.Role.ADMIN, User.Role.DOCTOR, User.Role.RECEPTIONIST})


def _is_patient(user) -> bool:
    return getattr(user, 'role', '') == User.Role.PATIENT


def _validate_range(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise ValidationError('start and end time are required')
    if start >= end:
        raise ValidationError('start time must be before end time')


def _lock_doctor(doctor_id) -> User:
    doctor = User.objects.select_for_update().filter(id=doctor_id).first()
    if doctor is None:
        raise NotFoundError(f'doctor {doctor_id} not found')
    if doctor.role != User.Role.DOCTOR:
        raise ValidationError(f'user {doctor_id} is not a doctor')
    return doctor


def find_conflicts(doctor_id, start: datetime, end: datetime, *, exclude_id=None) -> QuerySet:
    """Non-cancelled appointments of ``doctor_id`` overlapping ``[start, end)``."""
    qs = (
        Appointment.objects
        .filter(doctor_id=doctor_id, start_time__lt=end, end_time__gt=start)
        .exclude(status=Appointment.Status.CANCELLED)
    )
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return qs


def transition_appointment(appointment: Appointment, new_status: str, *, actor, reason: str = '') -> Appointment:
    """Apply a status change to an appointment row the caller holds locked."""
    ensure_transition('appointment', appointment.status, new_status)
    old_status = appointment.status
    appointment.status = new_status
    appointment.save(update_fields=['status', 'updated_at'])
    AppointmentTransition.objects.create(
        appointment=appointment,
        from_status=old_status,
        to_status=new_status,
        operator=actor if getattr(actor, 'pk', None) else None,
        reason=reason,
    )
    log_action(user=actor, action='appointment_status', obj=appointment,
               detail={'from': old_status, 'to': new_status})
    return appointment


@transaction.atomic
def schedule_appointment(actor: User, *, patient_id, doctor_id, start: datetime, end: datetime,
                         type: str = Appointment.Type.CONSULTATION, reason: str = '') -> Appointment:
    _validate_range(start, end)
    if type not in Appointment.Type.values:
        raise ValidationError(f'unknown appointment type {type!r}')

    patient = PatientProfile.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFoundError(f'patient {patient_id} not found')
    if _is_patient(actor) and patient.user_id != actor.id:
        raise AuthorizationError('patients may only book appointments for themselves')

    doctor = _lock_doctor(doctor_id)
    clash = find_conflicts(doctor.id, start, end).first()
    if clash is not None:
        raise ConflictError(f'doctor is not available at this time (overlaps appointment {clash.id})')

    status = Appointment.Status.CONFIRMED if actor.role in AUTO_CONFIRM_ROLES else Appointment.Status.REQUESTED
    appointment = Appointment.objects.create(
        patient=patient,
        doctor=doctor,
        start_time=start,
        end_time=end,
        type=type,
        reason=bleach.clean((reason or '').strip(), strip=True),
        status=status,
    )
    AppointmentTransition.objects.create(
        appointment=appointment, from_status=None, to_status=status, operator=actor, reason='booked'
    )
    log_action(user=actor, action='appointment_schedule', obj=appointment,
               detail={'doctorId': doctor.id, 'start': start.isoformat(), 'end': end.isoformat()})
    logger.info('appointment %s booked for doctor %s (%s)', appointment.id, doctor.id, status)
    return appointment


@transaction.atomic
def update_appointment_status(actor: User, appointment_id, new_status: str, *, reason: str = '') -> Appointment:
    """Move an appointment through its lifecycle.

    Patients may only cancel, and only their own appointments; both are
    authorisation failures raised before the state machine is consulted.
    """
    if new_status not in Appointment.Status.values:
        raise ValidationError(f'unknown appointment status {new_status!r}')

    appointment = Appointment.objects.select_for_update().filter(id=appointment_id).first()
    if appointment is None:
        raise NotFoundError(f'appointment {appointment_id} not found')
    if _is_patient(actor):
        if appointment.patient.user_id != actor.id:
            raise AuthorizationError('not allowed to modify this appointment')
        if new_status != Appointment.Status.CANCELLED:
            raise AuthorizationError('patients can only cancel appointments')

    transition_appointment(appointment, new_status, actor=actor,
                           reason=bleach.clean((reason or '').strip(), strip=True))
    logger.info('appointment %s -> %s by %s', appointment.id, new_status, actor.id)
    return appointment


@transaction.atomic
def reschedule_appointment(actor: User, appointment_id, new_start: datetime, new_end: datetime) -> Appointment:
    _validate_range(new_start, new_end)

    appointment = Appointment.objects.select_for_update().filter(id=appointment_id).first()
    if appointment is None:
        raise NotFoundError(f'appointment {appointment_id} not found')
    if _is_patient(actor) and appointment.patient.user_id != actor.id:
        raise AuthorizationError('not allowed to modify this appointment')

    new_status = Appointment.Status.REQUESTED if _is_patient(actor) else Appointment.Status.CONFIRMED
    if appointment.status not in RESCHEDULABLE_APPOINTMENT_STATUSES:
        raise IllegalStateTransitionError('appointment', appointment.status, new_status)

    _lock_doctor(appointment.doctor_id)
    clash = find_conflicts(appointment.doctor_id, new_start, new_end, exclude_id=appointment.id).first()
    if clash is not None:
        raise ConflictError(f'doctor is not available at the new time (overlaps appointment {clash.id})')

    old_status = appointment.status
    old_start, old_end = appointment.start_time, appointment.end_time
    appointment.start_time = new_start
    appointment.end_time = new_end
    appointment.status = new_status
    appointment.save(update_fields=['start_time', 'end_time', 'status', 'updated_at'])
    AppointmentTransition.objects.create(
        appointment=appointment, from_status=old_status, to_status=new_status, operator=actor, reason='rescheduled'
    )
    log_action(user=actor, action='appointment_reschedule', obj=appointment, detail={
        'from': [old_start.isoformat(), old_end.isoformat()],
        'to': [new_start.isoformat(), new_end.isoformat()],
    })
    return appointment


def appointments_for(user: User, *, doctor_id: Optional[int] = None, patient_id: Optional[int] = None) -> QuerySet:
    """Appointments visible to ``user``: patients see their own, doctors their timeline."""
    qs = Appointment.objects.select_related('patient', 'doctor')
    if _is_patient(user):
        qs = qs.filter(patient__user_id=user.id)
    elif user.role == User.Role.DOCTOR:
        qs = qs.filter(doctor_id=user.id)
    else:
        if doctor_id:
            qs = qs.filter(doctor_id=doctor_id)
        if patient_id:
            qs = qs.filter(patient_id=patient_id)
    return qs.order_by('start_time')


def appointment_visible_to(user: User, appointment_id) -> Appointment:
    appointment = Appointment.objects.select_related('patient', 'doctor').filter(id=appointment_id).first()
    if appointment is None:
        raise NotFoundError(f'appointment {appointment_id} not found')
    if _is_patient(user) and appointment.patient.user_id != user.id:
        raise AuthorizationError('not allowed to view this appointment')
    if user.role == User.Role.DOCTOR and appointment.doctor_id != user.id:
        raise AuthorizationError('not allowed to view this appointment')
    return appointment
