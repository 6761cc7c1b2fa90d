from datetime import date

import pytest
from rest_framework.test import APIClient

from clinical.models import Appointment, Bed, InventoryBatch, Invoice, Prescription
from clinical.services.billing import build_line, create_invoice

pytestmark = pytest.mark.django_db


def slot(hour, minute=0):
    return f'2025-01-06T{hour:02d}:{minute:02d}:00Z'


def test_booking_conflict_and_validation(api, receptionist, patient, doctor):
    client = api(receptionist)
    body = {'patientId': patient.id, 'doctorId': doctor.id, 'start': slot(9), 'end': slot(9, 30)}

    r = client.post('/api/appointments', body, format='json')
    assert r.status_code == 201, r.content
    assert r.json()['data']['status'] == Appointment.Status.CONFIRMED

    r = client.post('/api/appointments', dict(body, start=slot(9, 15), end=slot(9, 45)), format='json')
    assert r.status_code == 409
    assert r.json()['error']['code'] == 'conflict'

    r = client.post('/api/appointments', dict(body, start=slot(11), end=slot(10)), format='json')
    assert r.status_code == 400
    assert r.json()['ok'] is False
    assert r.json()['error']['code'] == 'validation_error'


def test_status_change_returns_history(api, receptionist, doctor, patient):
    client = api(receptionist)
    r = client.post('/api/appointments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'start': slot(9), 'end': slot(9, 30),
    }, format='json')
    appt_id = r.json()['data']['id']

    r = client.post(f'/api/appointments/{appt_id}/status', {'status': 'CHECKED_IN'}, format='json')
    assert r.status_code == 200
    history = r.json()['data']['transitionHistory']
    assert [(h['from'], h['to']) for h in history] == [(None, 'CONFIRMED'), ('CONFIRMED', 'CHECKED_IN')]
    assert history[-1]['operator'] == receptionist.username

    r = client.post(f'/api/appointments/{appt_id}/status', {'status': 'COMPLETED'}, format='json')
    assert r.status_code == 409
    assert r.json()['error']['code'] == 'illegal_transition'


def test_patient_sees_only_own_appointments(api, receptionist, patient_user, patient, other_patient, doctor):
    staff = api(receptionist)
    for p, hour in ((patient, 9), (other_patient, 10)):
        staff.post('/api/appointments', {
            'patientId': p.id, 'doctorId': doctor.id, 'start': slot(hour), 'end': slot(hour, 30),
        }, format='json')

    r = api(patient_user).get('/api/appointments')
    assert r.status_code == 200
    assert [a['patientId'] for a in r.json()['data']] == [patient.id]


def test_unauthenticated_requests_are_rejected():
    r = APIClient().get('/api/appointments')
    assert r.status_code == 401


def test_jwt_login_then_bearer_access(doctor):
    client = APIClient()
    r = client.post('/api/auth/token', {'username': doctor.username, 'password': 'P@ssw0rd1'}, format='json')
    assert r.status_code == 200
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.json()['access']}")
    assert client.get('/api/appointments').status_code == 200


def test_roles_are_enforced(api, patient_user, nurse):
    r = api(patient_user).get('/api/inventory')
    assert r.status_code == 403
    assert r.json()['error']['code'] == 'authorization_error'
    assert api(nurse).post('/api/inventory/receive', {}, format='json').status_code == 403
    assert api(patient_user).get('/api/wards').status_code == 403


def test_admission_flow(api, nurse, patient, bed):
    client = api(nurse)
    r = client.post('/api/admissions', {'patientId': patient.id, 'bedId': bed.id, 'reason': 'sepsis'}, format='json')
    assert r.status_code == 201, r.content
    admission_id = r.json()['data']['id']

    r = client.get('/api/wards')
    assert r.json()['data'][0]['occupied'] == 1

    assert client.post(f'/api/admissions/{admission_id}/discharge').status_code == 200
    r = client.post(f'/api/beds/{bed.id}/status', {'status': Bed.Status.VACANT_CLEAN}, format='json')
    assert r.status_code == 200
    assert r.json()['data']['status'] == Bed.Status.VACANT_CLEAN


def test_receive_then_dispense_then_pay(api, pharmacist, receptionist, patient_user, medication, make_prescription):
    pharmacy = api(pharmacist)
    r = pharmacy.post('/api/inventory/receive', {
        'medicationId': medication.id, 'batchNumber': 'B1', 'quantity': 5,
        'expiryDate': '2025-06-01', 'costPrice': '1.00',
    }, format='json')
    assert r.status_code == 201, r.content
    pharmacy.post('/api/inventory/receive', {
        'medicationId': medication.id, 'batchNumber': 'B2', 'quantity': 10,
        'expiryDate': '2025-09-01', 'costPrice': '1.00',
    }, format='json')
    rx = make_prescription(quantity=7)

    assert [q['id'] for q in pharmacy.get('/api/pharmacy/queue').json()['data']] == [rx.id]

    r = pharmacy.post(f'/api/prescriptions/{rx.id}/dispense',
                      {'items': [{'medicationId': medication.id, 'quantity': 7}]}, format='json')
    assert r.status_code == 201, r.content
    body = r.json()
    assert [(d['batchNumber'], d['quantity']) for d in body['dispensings']] == [('B1', 5), ('B2', 2)]
    assert body['invoice']['total'] == '17.50'
    invoice_id = body['invoice']['id']

    r = pharmacy.get(f'/api/medications/{medication.id}/stock')
    assert r.json()['data']['totalStock'] == 8

    r = api(patient_user).post(f'/api/invoices/{invoice_id}/payments',
                               {'amount': '10.00', 'method': 'CARD'}, format='json')
    assert r.status_code == 201, r.content
    assert r.json()['invoice']['status'] == Invoice.Status.PARTIAL

    r = api(receptionist).post(f'/api/invoices/{invoice_id}/payments',
                               {'amount': '7.50', 'method': 'CASH'}, format='json')
    assert r.json()['invoice']['status'] == Invoice.Status.PAID

    r = api(receptionist).post(f'/api/invoices/{invoice_id}/payments',
                               {'amount': '1.00', 'method': 'CASH'}, format='json')
    assert r.status_code == 409

    r = api(patient_user).get(f'/api/invoices/{invoice_id}')
    assert [p['amount'] for p in r.json()['data']['payments']] == ['10.00', '7.50']


def test_short_dispense_is_a_conflict(api, pharmacist, medication, make_batch, make_prescription):
    make_batch(medication, 'B1', 3, date(2025, 6, 1))
    rx = make_prescription(quantity=7)

    r = api(pharmacist).post(f'/api/prescriptions/{rx.id}/dispense',
                             {'items': [{'medicationId': medication.id, 'quantity': 7}]}, format='json')
    assert r.status_code == 409
    assert r.json()['error']['code'] == 'insufficient_stock'
    rx.refresh_from_db()
    assert rx.status == Prescription.Status.PENDING
    assert InventoryBatch.objects.get().quantity_on_hand == 3


def test_invoice_is_private_to_its_patient(api, patient, other_patient_user):
    invoice = create_invoice(patient=patient, items=[build_line('Ward day', 1, '100.00')])
    r = api(other_patient_user).get(f'/api/invoices/{invoice.id}')
    assert r.status_code == 403
    r = api(other_patient_user).post(f'/api/invoices/{invoice.id}/payments',
                                     {'amount': '5.00', 'method': 'CASH'}, format='json')
    assert r.status_code == 403
    assert api(other_patient_user).get('/api/invoices/999999').status_code == 404


def test_consultation_endpoint(api, doctor, patient):
    r = api(doctor).post('/api/consultations', {
        'patientId': patient.id,
        'soap': {'subjective': 'Headache', 'assessment': 'Tension headache'},
        'prescriptions': [{'medicationName': 'Paracetamol', 'dosage': '1g', 'frequency': 'QID',
                           'duration': 3, 'quantity': 12}],
        'billingItems': [{'description': 'Dressing', 'amount': '5.00'}],
    }, format='json')
    assert r.status_code == 201, r.content
    body = r.json()
    assert body['record']['doctorId'] == doctor.id
    assert len(body['record']['prescriptionIds']) == 1
    assert body['invoice']['total'] == '55.00'


def test_admin_must_name_the_doctor(api, admin, patient):
    r = api(admin).post('/api/consultations', {'patientId': patient.id, 'soap': {}}, format='json')
    assert r.status_code == 400
    assert r.json()['error']['code'] == 'validation_error'


def test_healthz(client):
    r = client.get('/healthz')
    assert r.status_code == 200
    assert r.json() == {'ok': True, 'db': True}


def test_appointment_detail_respects_ownership(api, receptionist, patient_user, other_patient_user, patient,
                                               doctor, other_doctor):
    r = api(receptionist).post('/api/appointments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'start': slot(9), 'end': slot(9, 30),
    }, format='json')
    appt_id = r.json()['data']['id']

    for user in (patient_user, doctor, receptionist):
        r = api(user).get(f'/api/appointments/{appt_id}')
        assert r.status_code == 200, (user, r.content)
        assert [h['to'] for h in r.json()['data']['transitionHistory']] == ['CONFIRMED']

    for user in (other_patient_user, other_doctor):
        r = api(user).get(f'/api/appointments/{appt_id}')
        assert r.status_code == 403
        assert r.json()['error']['code'] == 'authorization_error'
    assert api(patient_user).get('/api/appointments/999999').status_code == 404


def test_ward_detail_endpoint(api, nurse, patient_user, patient, ward, bed, bed2):
    client = api(nurse)
    client.post('/api/admissions', {'patientId': patient.id, 'bedId': bed.id, 'reason': 'sepsis'}, format='json')

    r = client.get(f'/api/wards/{ward.id}')
    assert r.status_code == 200
    beds = r.json()['data']['beds']
    assert [(b['number'], b['patientName']) for b in beds] == [('1', str(patient)), ('2', None)]
    assert beds[0]['admission']['patientId'] == patient.id

    assert client.get('/api/wards/999999').status_code == 404
    assert api(patient_user).get(f'/api/wards/{ward.id}').status_code == 403


def test_patient_invoice_list(api, receptionist, patient_user, patient, other_patient):
    mine = create_invoice(patient=patient, items=[build_line('Ward day', 1, '100.00')])
    create_invoice(patient=other_patient, items=[build_line('X-ray', 1, '40.00')])

    r = api(patient_user).get('/api/invoices')
    assert r.status_code == 200
    assert [i['id'] for i in r.json()['data']] == [mine.id]

    r = api(receptionist).get('/api/invoices', {'patientId': other_patient.id})
    assert [i['patientId'] for i in r.json()['data']] == [other_patient.id]
    assert api(receptionist).get('/api/invoices', {'patientId': 'abc'}).status_code == 400


def test_payment_response_carries_updated_invoice(api, receptionist, patient):
    invoice = create_invoice(patient=patient, items=[build_line('Ward day', 1, '100.00')])
    r = api(receptionist).post(f'/api/invoices/{invoice.id}/payments',
                               {'amount': '60.00', 'method': 'CASH'}, format='json')
    assert r.status_code == 201, r.content
    body = r.json()['invoice']
    assert (body['amountPaid'], body['balance'], body['status']) == ('60.00', '40.00', Invoice.Status.PARTIAL)
