from datetime import date
from decimal import Decimal

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from clinical.models import (
    Bed,
    InventoryBatch,
    MedicalRecord,
    Medication,
    PatientProfile,
    Prescription,
    User,
    Ward,
)


@pytest.fixture(scope='session')
def django_db_modify_db_settings(django_db_modify_db_settings_parallel_suffix, tmp_path_factory):
    # threads need a file-backed SQLite test database to see each other's commits
    from django.conf import settings

    db = settings.DATABASES['default']
    if db['ENGINE'] == 'django.db.backends.sqlite3':
        db.setdefault('TEST', {})['NAME'] = str(tmp_path_factory.mktemp('db') / 'test.sqlite3')


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    def _make(username: str, role: str, **extra) -> User:
        return User.objects.create_user(username=username, password='P@ssw0rd1', role=role, **extra)
    return _make


@pytest.fixture
def admin(make_user):
    return make_user('admin1', User.Role.ADMIN)


@pytest.fixture
def doctor(make_user):
    return make_user('doctor1', User.Role.DOCTOR)


@pytest.fixture
def other_doctor(make_user):
    return make_user('doctor2', User.Role.DOCTOR)


@pytest.fixture
def receptionist(make_user):
    return make_user('reception1', User.Role.RECEPTIONIST)


@pytest.fixture
def nurse(make_user):
    return make_user('nurse1', User.Role.NURSE)


@pytest.fixture
def pharmacist(make_user):
    return make_user('pharmacist1', User.Role.PHARMACIST)


@pytest.fixture
def patient_user(make_user):
    return make_user('patient1', User.Role.PATIENT)


@pytest.fixture
def other_patient_user(make_user):
    return make_user('patient2', User.Role.PATIENT)


@pytest.fixture
def patient(patient_user):
    return PatientProfile.objects.create(
        user=patient_user, patient_number='P-0001', first_name='Ada', last_name='Obi', sex='F',
        date_of_birth=date(1990, 3, 14),
    )


@pytest.fixture
def other_patient(other_patient_user):
    return PatientProfile.objects.create(
        user=other_patient_user, patient_number='P-0002', first_name='Kofi', last_name='Mensah', sex='M',
    )


@pytest.fixture
def ward(db):
    return Ward.objects.create(name='General Medicine', capacity=2)


@pytest.fixture
def bed(ward):
    return Bed.objects.create(ward=ward, number='1', daily_rate=Decimal('120.00'))


@pytest.fixture
def bed2(ward):
    return Bed.objects.create(ward=ward, number='2', daily_rate=Decimal('120.00'))


@pytest.fixture
def medication(db):
    return Medication.objects.create(
        name='Amoxicillin 500mg', dosage_form='capsule', unit_price=Decimal('2.50'), reorder_level=10
    )


@pytest.fixture
def make_batch():
    def _make(medication, batch_number: str, quantity: int, expiry: date) -> InventoryBatch:
        return InventoryBatch.objects.create(
            medication=medication, batch_number=batch_number, quantity_on_hand=quantity,
            expiry_date=expiry, cost_price=Decimal('1.00'),
        )
    return _make


@pytest.fixture
def record(patient, doctor):
    return MedicalRecord.objects.create(patient=patient, doctor=doctor, visit_date=timezone.now())


@pytest.fixture
def make_prescription(record):
    def _make(quantity: int = 7, status: str = Prescription.Status.PENDING, **extra) -> Prescription:
        values = dict(
            medical_record=record, patient=record.patient, medication_name='Amoxicillin 500mg',
            dosage='500mg', frequency='TID', duration=7, quantity=quantity, status=status,
        )
        values.update(extra)
        return Prescription.objects.create(**values)
    return _make


@pytest.fixture
def api():
    def _client(user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client
