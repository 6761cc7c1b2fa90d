import pytest

from clinical.exceptions import (
    AuthorizationError,
    ConflictError,
    IllegalStateTransitionError,
    NotFoundError,
    ValidationError,
)
from clinical.models import Appointment, AppointmentTransition, AuditEvent
from clinical.services.scheduling import (
    find_conflicts,
    reschedule_appointment,
    schedule_appointment,
    update_appointment_status,
)
from clinical.tests.helpers import at

pytestmark = pytest.mark.django_db

S = Appointment.Status


def book(actor, patient, doctor, start, end, **kw):
    return schedule_appointment(actor, patient_id=patient.id, doctor_id=doctor.id, start=start, end=end, **kw)


def test_overlap_rejected_and_touching_boundary_allowed(receptionist, patient, doctor):
    first = book(receptionist, patient, doctor, at(9), at(9, 30))
    assert first.status == S.CONFIRMED

    with pytest.raises(ConflictError):
        book(receptionist, patient, doctor, at(9, 15), at(9, 45))

    second = book(receptionist, patient, doctor, at(9, 30), at(10))
    assert second.status == S.CONFIRMED
    assert Appointment.objects.filter(doctor=doctor).count() == 2


def test_cancelled_appointment_frees_the_slot(receptionist, patient, doctor):
    first = book(receptionist, patient, doctor, at(9), at(9, 30))
    update_appointment_status(receptionist, first.id, S.CANCELLED)
    again = book(receptionist, patient, doctor, at(9), at(9, 30))
    assert again.id != first.id


def test_other_doctor_timeline_is_independent(receptionist, patient, doctor, other_doctor):
    book(receptionist, patient, doctor, at(9), at(9, 30))
    appt = book(receptionist, patient, other_doctor, at(9), at(9, 30))
    assert appt.doctor_id == other_doctor.id


def test_find_conflicts_excludes_given_id(receptionist, patient, doctor):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    assert list(find_conflicts(doctor.id, at(9, 10), at(9, 20))) == [appt]
    assert not find_conflicts(doctor.id, at(9, 10), at(9, 20), exclude_id=appt.id).exists()


@pytest.mark.parametrize('start,end', [(at(10), at(10)), (at(10, 30), at(10))])
def test_empty_or_inverted_range_is_invalid(receptionist, patient, doctor, start, end):
    with pytest.raises(ValidationError):
        book(receptionist, patient, doctor, start, end)
    assert not Appointment.objects.exists()


def test_booking_with_non_doctor_is_invalid(receptionist, patient, nurse):
    with pytest.raises(ValidationError):
        book(receptionist, patient, nurse, at(9), at(9, 30))


def test_unknown_patient_is_not_found(receptionist, doctor):
    with pytest.raises(NotFoundError):
        schedule_appointment(receptionist, patient_id=999999, doctor_id=doctor.id, start=at(9), end=at(9, 30))


def test_patient_self_booking_is_requested(patient_user, patient, doctor):
    appt = book(patient_user, patient, doctor, at(11), at(11, 30))
    assert appt.status == S.REQUESTED
    history = list(appt.transitions.values_list('from_status', 'to_status'))
    assert history == [(None, S.REQUESTED)]


def test_patient_cannot_book_for_someone_else(patient_user, other_patient, doctor):
    with pytest.raises(AuthorizationError):
        book(patient_user, other_patient, doctor, at(11), at(11, 30))


def test_full_visit_lifecycle_records_transitions(receptionist, doctor, patient):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    for target in (S.CHECKED_IN, S.IN_PROGRESS, S.COMPLETED):
        update_appointment_status(doctor, appt.id, target)
    appt.refresh_from_db()
    assert appt.status == S.COMPLETED
    steps = list(
        AppointmentTransition.objects.filter(appointment=appt).order_by('id').values_list('from_status', 'to_status')
    )
    assert steps == [
        (None, S.CONFIRMED),
        (S.CONFIRMED, S.CHECKED_IN),
        (S.CHECKED_IN, S.IN_PROGRESS),
        (S.IN_PROGRESS, S.COMPLETED),
    ]
    assert AuditEvent.objects.filter(action='appointment_status', object_id=appt.id).count() == 3


def test_staff_confirms_requested_booking(patient_user, patient, doctor, receptionist):
    appt = book(patient_user, patient, doctor, at(11), at(11, 30))
    update_appointment_status(receptionist, appt.id, S.CONFIRMED)
    appt.refresh_from_db()
    assert appt.status == S.CONFIRMED


@pytest.mark.parametrize('path', [
    [S.COMPLETED],
    [S.CHECKED_IN, S.IN_PROGRESS, S.CANCELLED],
    [S.CANCELLED, S.CONFIRMED],
    [S.NO_SHOW, S.CHECKED_IN],
])
def test_illegal_transitions_are_rejected(receptionist, doctor, patient, path):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    *legal, illegal = path
    for target in legal:
        update_appointment_status(doctor, appt.id, target)
    with pytest.raises(IllegalStateTransitionError):
        update_appointment_status(doctor, appt.id, illegal)
    appt.refresh_from_db()
    assert appt.status == (legal[-1] if legal else S.CONFIRMED)


def test_unknown_status_is_invalid(receptionist, doctor, patient):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    with pytest.raises(ValidationError):
        update_appointment_status(doctor, appt.id, 'FINISHED')


def test_patient_may_only_cancel_own_appointment(receptionist, doctor, patient, patient_user, other_patient):
    own = book(receptionist, patient, doctor, at(9), at(9, 30))
    foreign = book(receptionist, other_patient, doctor, at(10), at(10, 30))

    with pytest.raises(AuthorizationError):
        update_appointment_status(patient_user, own.id, S.CHECKED_IN)
    with pytest.raises(AuthorizationError):
        update_appointment_status(patient_user, foreign.id, S.CANCELLED)

    update_appointment_status(patient_user, own.id, S.CANCELLED)
    own.refresh_from_db()
    foreign.refresh_from_db()
    assert own.status == S.CANCELLED
    assert foreign.status == S.CONFIRMED


def test_patient_cancelling_completed_visit_is_illegal_not_unauthorised(receptionist, doctor, patient, patient_user):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    for target in (S.CHECKED_IN, S.IN_PROGRESS, S.COMPLETED):
        update_appointment_status(doctor, appt.id, target)
    with pytest.raises(IllegalStateTransitionError):
        update_appointment_status(patient_user, appt.id, S.CANCELLED)


def test_reschedule_may_overlap_its_own_old_slot(receptionist, doctor, patient):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    moved = reschedule_appointment(receptionist, appt.id, at(9, 15), at(9, 45))
    assert (moved.start_time, moved.end_time) == (at(9, 15), at(9, 45))
    assert moved.status == S.CONFIRMED


def test_reschedule_onto_another_booking_conflicts(receptionist, doctor, patient, other_patient):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    book(receptionist, other_patient, doctor, at(10), at(10, 30))
    with pytest.raises(ConflictError):
        reschedule_appointment(receptionist, appt.id, at(10, 15), at(10, 45))
    appt.refresh_from_db()
    assert appt.start_time == at(9)


def test_reschedule_by_patient_resets_to_requested(receptionist, doctor, patient, patient_user):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    moved = reschedule_appointment(patient_user, appt.id, at(14), at(14, 30))
    assert moved.status == S.REQUESTED
    assert moved.transitions.filter(reason='rescheduled').exists()


def test_reschedule_after_check_in_is_illegal(receptionist, doctor, patient):
    appt = book(receptionist, patient, doctor, at(9), at(9, 30))
    update_appointment_status(receptionist, appt.id, S.CHECKED_IN)
    with pytest.raises(IllegalStateTransitionError):
        reschedule_appointment(receptionist, appt.id, at(14), at(14, 30))


def test_patient_cannot_reschedule_someone_elses_appointment(receptionist, doctor, other_patient, patient_user):
    appt = book(receptionist, other_patient, doctor, at(9), at(9, 30))
    with pytest.raises(AuthorizationError):
        reschedule_appointment(patient_user, appt.id, at(14), at(14, 30))
