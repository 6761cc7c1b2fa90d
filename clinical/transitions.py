"""
Lifecycle transition tables.

Every status change in the engine goes through :func:`ensure_transition`
so that the legal moves of each entity are defined once, here, instead
of being re-derived at each call site.
"""
from __future__ import annotations

from .exceptions import IllegalStateTransitionError
from .models import Admission, Appointment, Bed, Prescription

AS = Appointment.Status

APPOINTMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    AS.REQUESTED: frozenset({AS.CONFIRMED, AS.CHECKED_IN, AS.CANCELLED, AS.NO_SHOW}),
    AS.CONFIRMED: frozenset({AS.CHECKED_IN, AS.CANCELLED, AS.NO_SHOW}),
    AS.CHECKED_IN: frozenset({AS.IN_PROGRESS, AS.CANCELLED, AS.NO_SHOW}),
    AS.IN_PROGRESS: frozenset({AS.COMPLETED}),
    AS.COMPLETED: frozenset(),
    AS.CANCELLED: frozenset(),
    AS.NO_SHOW: frozenset(),
}

# Statuses from which the slot itself may still be moved.
RESCHEDULABLE_APPOINTMENT_STATUSES = frozenset({AS.REQUESTED, AS.CONFIRMED})

# OCCUPIED is entered and left only through admission and discharge.
BED_TRANSITIONS: dict[str, frozenset[str]] = {
    Bed.Status.VACANT_CLEAN: frozenset({Bed.Status.VACANT_DIRTY, Bed.Status.OCCUPIED}),
    Bed.Status.VACANT_DIRTY: frozenset({Bed.Status.VACANT_CLEAN}),
    Bed.Status.OCCUPIED: frozenset({Bed.Status.VACANT_DIRTY}),
}
BED_ADMINISTRATIVE_TARGETS = frozenset({Bed.Status.VACANT_CLEAN, Bed.Status.VACANT_DIRTY})

ADMISSION_TRANSITIONS: dict[str, frozenset[str]] = {
    Admission.Status.ADMITTED: frozenset({Admission.Status.DISCHARGED}),
    Admission.Status.DISCHARGED: frozenset(),
}

PRESCRIPTION_TRANSITIONS: dict[str, frozenset[str]] = {
    Prescription.Status.PENDING: frozenset({Prescription.Status.DISPENSED}),
    Prescription.Status.REFILL_REQUESTED: frozenset({Prescription.Status.DISPENSED}),
    Prescription.Status.DISPENSED: frozenset({Prescription.Status.REFILL_REQUESTED}),
}

TABLES = {
    'appointment': APPOINTMENT_TRANSITIONS,
    'bed': BED_TRANSITIONS,
    'admission': ADMISSION_TRANSITIONS,
    'prescription': PRESCRIPTION_TRANSITIONS,
}


def can_transition(entity: str, current: str, new: str) -> bool:
    """Return True if ``entity`` may move from ``current`` to ``new``."""
    return new in TABLES[entity].get(current, frozenset())


def ensure_transition(entity: str, current: str, new: str) -> None:
    if not can_transition(entity, current, new):
        raise IllegalStateTransitionError(entity, current, new)
