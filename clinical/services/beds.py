"""
Bed allocation: admission, discharge and housekeeping status of beds.

A bed is OCCUPIED exactly while one ADMITTED admission references it.
Admission and discharge lock the bed row (and the patient row) so the
vacancy check and the write happen under the same lock; the conditional
unique constraints on :class:`~clinical.models.Admission` back this up
at the database level.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

import bleach
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Count, Prefetch, Q
from django.utils import timezone

from clinical.exceptions import ConflictError, IllegalStateTransitionError, NotFoundError, ValidationError
from clinical.models import Admission, Bed, PatientProfile, User, Ward
from clinical.services.audit import log_action
from clinical.transitions import BED_ADMINISTRATIVE_TARGETS, ensure_transition

logger = logging.getLogger(__name__)

OCCUPANCY_CACHE_KEY = 'wards:occupancy'


def _invalidate_occupancy() -> None:
    transaction.on_commit(lambda: cache.delete(OCCUPANCY_CACHE_KEY))


@transaction.atomic
def admit_patient(actor: User, *, patient_id, bed_id, reason: str,
                  estimated_discharge_date: Optional[date] = None, now: Optional[datetime] = None) -> Admission:
    bed = Bed.objects.select_for_update().filter(id=bed_id).first()
    if bed is None:
        raise NotFoundError(f'bed {bed_id} not found')
    patient = PatientProfile.objects.select_for_update().filter(id=patient_id).first()
    if patient is None:
        raise NotFoundError(f'patient {patient_id} not found')

    if bed.status != Bed.Status.VACANT_CLEAN:
        raise ConflictError(f'bed {bed.number} is not available ({bed.status})')
    active = Admission.objects.filter(patient=patient, status=Admission.Status.ADMITTED).first()
    if active is not None:
        raise ConflictError(f'patient is already admitted (admission {active.id})')

    try:
        # savepoint so a constraint violation leaves the outer block usable
        with transaction.atomic():
            admission = Admission.objects.create(
                patient=patient,
                bed=bed,
                reason=bleach.clean((reason or '').strip(), strip=True),
                status=Admission.Status.ADMITTED,
                admission_date=now or timezone.now(),
                estimated_discharge_date=estimated_discharge_date,
                admitted_by=actor if getattr(actor, 'pk', None) else None,
            )
    except IntegrityError as exc:
        raise ConflictError('bed or patient already has an active admission') from exc

    ensure_transition('bed', bed.status, Bed.Status.OCCUPIED)
    bed.status = Bed.Status.OCCUPIED
    bed.save(update_fields=['status'])
    _invalidate_occupancy()
    log_action(user=actor, action='patient_admit', obj=admission, detail={'bedId': bed.id, 'patientId': patient.id})
    logger.info('patient %s admitted to bed %s', patient.id, bed.id)
    return admission


@transaction.atomic
def discharge_patient(actor: User, admission_id, *, now: Optional[datetime] = None) -> Admission:
    admission = Admission.objects.select_for_update().filter(id=admission_id).first()
    if admission is None:
        raise NotFoundError(f'admission {admission_id} not found')
    ensure_transition('admission', admission.status, Admission.Status.DISCHARGED)

    bed = Bed.objects.select_for_update().get(id=admission.bed_id)
    admission.status = Admission.Status.DISCHARGED
    admission.discharge_date = now or timezone.now()
    admission.save(update_fields=['status', 'discharge_date'])

    ensure_transition('bed', bed.status, Bed.Status.VACANT_DIRTY)
    bed.status = Bed.Status.VACANT_DIRTY
    bed.save(update_fields=['status'])
    _invalidate_occupancy()
    log_action(user=actor, action='patient_discharge', obj=admission, detail={'bedId': bed.id})
    logger.info('admission %s discharged, bed %s needs cleaning', admission.id, bed.id)
    return admission


@transaction.atomic
def set_bed_status(actor: User, bed_id, new_status: str) -> Bed:
    """Housekeeping move between VACANT_CLEAN and VACANT_DIRTY.

    OCCUPIED is reachable only through :func:`admit_patient` and left only
    through :func:`discharge_patient`.
    """
    if new_status not in Bed.Status.values:
        raise ValidationError(f'unknown bed status {new_status!r}')
    bed = Bed.objects.select_for_update().filter(id=bed_id).first()
    if bed is None:
        raise NotFoundError(f'bed {bed_id} not found')
    if new_status not in BED_ADMINISTRATIVE_TARGETS or bed.status == Bed.Status.OCCUPIED:
        raise IllegalStateTransitionError('bed', bed.status, new_status)
    if bed.status == new_status:
        return bed

    ensure_transition('bed', bed.status, new_status)
    old_status = bed.status
    bed.status = new_status
    bed.save(update_fields=['status'])
    _invalidate_occupancy()
    log_action(user=actor, action='bed_status', obj=bed, detail={'from': old_status, 'to': new_status})
    return bed


def ward_occupancy(*, use_cache: bool = True) -> list[dict]:
    """Per-ward bed counts, cached until the next committed bed change."""
    if use_cache:
        cached = cache.get(OCCUPANCY_CACHE_KEY)
        if cached is not None:
            return cached
    wards = Ward.objects.annotate(
        total=Count('beds'),
        occupied=Count('beds', filter=Q(beds__status=Bed.Status.OCCUPIED)),
        available=Count('beds', filter=Q(beds__status=Bed.Status.VACANT_CLEAN)),
        dirty=Count('beds', filter=Q(beds__status=Bed.Status.VACANT_DIRTY)),
    ).order_by('name')
    data = [format_ward(w) for w in wards]
    cache.set(OCCUPANCY_CACHE_KEY, data, 300)
    return data


def ward_detail(ward_id) -> dict:
    """A ward with each bed and, for occupied beds, the current admission and patient."""
    current = Prefetch(
        'admissions',
        queryset=Admission.objects.filter(status=Admission.Status.ADMITTED).select_related('patient'),
        to_attr='current_admissions',
    )
    ward = Ward.objects.prefetch_related(
        Prefetch('beds', queryset=Bed.objects.order_by('number').prefetch_related(current))
    ).filter(id=ward_id).first()
    if ward is None:
        raise NotFoundError(f'ward {ward_id} not found')

    beds = []
    for bed in ward.beds.all():
        admission = bed.current_admissions[0] if bed.current_admissions else None
        beds.append({
            'id': bed.id,
            'number': bed.number,
            'status': bed.status,
            'dailyRate': str(bed.daily_rate),
            'admission': format_admission(admission) if admission else None,
            'patientName': str(admission.patient) if admission else None,
        })
    return {'id': ward.id, 'name': ward.name, 'capacity': ward.capacity, 'beds': beds}


def format_ward(ward: Ward) -> dict:
    return {
        'id': ward.id,
        'name': ward.name,
        'capacity': ward.capacity,
        'totalBeds': ward.total,
        'occupied': ward.occupied,
        'available': ward.available,
        'dirty': ward.dirty,
    }


def format_admission(admission: Admission) -> dict:
    return {
        'id': admission.id,
        'patientId': admission.patient_id,
        'bedId': admission.bed_id,
        'reason': admission.reason,
        'status': admission.status,
        'admissionDate': admission.admission_date.isoformat(),
        'dischargeDate': admission.discharge_date.isoformat() if admission.discharge_date else None,
        'estimatedDischargeDate': (
            admission.estimated_discharge_date.isoformat() if admission.estimated_discharge_date else None
        ),
    }
