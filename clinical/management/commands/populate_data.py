"""
Management command to populate the database with demo data.
"""
from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from clinical.models import Bed, InventoryBatch, Medication, PatientProfile, User, Ward


WARDS = [
    {'name': 'General Medicine', 'capacity': 6, 'daily_rate': Decimal('120.00')},
    {'name': 'Surgical', 'capacity': 4, 'daily_rate': Decimal('180.00')},
    {'name': 'Paediatrics', 'capacity': 4, 'daily_rate': Decimal('100.00')},
]

MEDICATIONS = [
    # name, dosage form, unit price, reorder level, [(batch, quantity, days to expiry)]
    ('Amoxicillin 500mg', 'capsule', Decimal('2.50'), 50, [('AMX-001', 40, 90), ('AMX-002', 120, 300)]),
    ('Paracetamol 500mg', 'tablet', Decimal('0.20'), 200, [('PCM-001', 500, 400)]),
    ('Metformin 850mg', 'tablet', Decimal('0.35'), 100, [('MET-001', 60, 45)]),
    ('Ceftriaxone 1g', 'injection', Decimal('9.80'), 20, []),
]

PATIENTS = [
    ('patient1', 'Ada', 'Obi', 'F', date(1990, 3, 14)),
    ('patient2', 'Kofi', 'Mensah', 'M', date(1978, 11, 2)),
    ('patient3', 'Lina', 'Haddad', 'F', date(2016, 6, 21)),
]


class Command(BaseCommand):
    help = 'Populate database with demo wards, beds, medications and patients'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='123456', help='password set on demo patient accounts')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Creating demo data...')
        self.create_wards()
        self.create_medications()
        self.create_patients(options['password'])
        self.stdout.write(self.style.SUCCESS('Demo data ready.'))

    def create_wards(self):
        for data in WARDS:
            ward, _ = Ward.objects.get_or_create(name=data['name'], defaults={'capacity': data['capacity']})
            for n in range(1, data['capacity'] + 1):
                Bed.objects.get_or_create(ward=ward, number=str(n), defaults={'daily_rate': data['daily_rate']})
            self.stdout.write(f'ward: {ward.name} ({ward.beds.count()} beds)')

    def create_medications(self):
        today = date.today()
        for name, form, price, reorder, batches in MEDICATIONS:
            med, created = Medication.objects.get_or_create(
                name=name, defaults={'dosage_form': form, 'unit_price': price, 'reorder_level': reorder},
            )
            if created:
                for batch_number, quantity, days in batches:
                    InventoryBatch.objects.create(
                        medication=med, batch_number=batch_number, quantity_on_hand=quantity,
                        expiry_date=today + timedelta(days=days), cost_price=(price / 2).quantize(Decimal('0.01')),
                        supplier='Demo Supplies',
                    )
            self.stdout.write(f'medication: {med.name}')

    def create_patients(self, password):
        for i, (username, first, last, sex, dob) in enumerate(PATIENTS, start=1):
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={'role': User.Role.PATIENT, 'password': make_password(password)},
            )
            PatientProfile.objects.get_or_create(
                user=user,
                defaults={
                    'patient_number': f'P-{i:04d}', 'first_name': first, 'last_name': last,
                    'sex': sex, 'date_of_birth': dob,
                },
            )
            self.stdout.write(f'patient: {username}')
