"""
Database models for the clinical transaction engine.

These models capture the contended resources of the hospital (doctor
time, beds and medication batches), the clinical records that consume
them and the financial ledger derived from both.  Every lifecycle field
is a closed ``TextChoices`` enumeration; the legal moves between those
values live in :mod:`clinical.transitions` rather than on the models.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import F, Q


class User(AbstractUser):
    """Staff or patient account with a single role.

    The role is the actor context the services authorise against.  A
    patient account is linked to its clinical identity through
    :class:`PatientProfile`.
    """

    class Role(models.TextChoices):
        ADMIN = 'admin', 'Administrator'
        DOCTOR = 'doctor', 'Doctor'
        NURSE = 'nurse', 'Nurse'
        RECEPTIONIST = 'receptionist', 'Receptionist'
        PHARMACIST = 'pharmacist', 'Pharmacist'
        LAB_TECH = 'lab_tech', 'Lab technician'
        PATIENT = 'patient', 'Patient'

    role = models.CharField(max_length=16, choices=Role.choices, default=Role.PATIENT, db_index=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class PatientProfile(models.Model):
    """Clinical identity of a patient.

    ``user`` is optional: walk-in patients registered by reception have
    no login, self-service patients do and are matched through it for
    ownership checks.
    """
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_profile'
    )
    patient_number = models.CharField(max_length=32, unique=True)
    first_name = models.CharField(max_length=64)
    last_name = models.CharField(max_length=64, blank=True)
    sex = models.CharField(max_length=10, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name} ({self.patient_number})".strip()


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

class Appointment(models.Model):

    class Status(models.TextChoices):
        REQUESTED = 'REQUESTED', 'Requested'
        CONFIRMED = 'CONFIRMED', 'Confirmed'
        CHECKED_IN = 'CHECKED_IN', 'Checked in'
        IN_PROGRESS = 'IN_PROGRESS', 'In progress'
        COMPLETED = 'COMPLETED', 'Completed'
        CANCELLED = 'CANCELLED', 'Cancelled'
        NO_SHOW = 'NO_SHOW', 'No show'

    class Type(models.TextChoices):
        FIRST_VISIT = 'FIRST_VISIT', 'First visit'
        FOLLOW_UP = 'FOLLOW_UP', 'Follow up'
        CONSULTATION = 'CONSULTATION', 'Consultation'
        EMERGENCY = 'EMERGENCY', 'Emergency'
        TELEMEDICINE = 'TELEMEDICINE', 'Telemedicine'

    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_appointments')
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.CONSULTATION)
    reason = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.REQUESTED, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'start_time', 'end_time'], name='appt_doctor_window_idx'),
            models.Index(fields=['patient', 'start_time'], name='appt_patient_start_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(start_time__lt=F('end_time')), name='appointment_start_before_end'),
        ]

    def __str__(self) -> str:
        return f"Appt {self.id} d={self.doctor_id} {self.start_time:%F %H:%M}-{self.end_time:%H:%M} {self.status}"


class AppointmentTransition(models.Model):
    """Records a status transition for an appointment."""
    appointment = models.ForeignKey(Appointment, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=16, null=True, blank=True)
    to_status = models.CharField(max_length=16)
    operator = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointment_transitions'
    )
    timestamp = models.DateTimeField(auto_now_add=True)
    reason = models.CharField(max_length=255, blank=True)

    def __str__(self) -> str:
        return f"{self.appointment_id}: {self.from_status} → {self.to_status}"


# ---------------------------------------------------------------------------
# Inpatient
# ---------------------------------------------------------------------------

class Ward(models.Model):
    name = models.CharField(max_length=128, unique=True)
    capacity = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return self.name


class Bed(models.Model):

    class Status(models.TextChoices):
        VACANT_CLEAN = 'VACANT_CLEAN', 'Vacant (clean)'
        VACANT_DIRTY = 'VACANT_DIRTY', 'Vacant (needs cleaning)'
        OCCUPIED = 'OCCUPIED', 'Occupied'

    ward = models.ForeignKey(Ward, on_delete=models.CASCADE, related_name='beds')
    number = models.CharField(max_length=16)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.VACANT_CLEAN, db_index=True)
    daily_rate = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    class Meta:
        unique_together = [('ward', 'number')]

    def __str__(self) -> str:
        return f"{self.ward.name} #{self.number} ({self.status})"


class Admission(models.Model):

    class Status(models.TextChoices):
        ADMITTED = 'ADMITTED', 'Admitted'
        DISCHARGED = 'DISCHARGED', 'Discharged'

    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='admissions')
    bed = models.ForeignKey(Bed, on_delete=models.PROTECT, related_name='admissions')
    reason = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ADMITTED, db_index=True)
    admission_date = models.DateTimeField()
    discharge_date = models.DateTimeField(null=True, blank=True)
    estimated_discharge_date = models.DateField(null=True, blank=True)
    admitted_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='admissions_made')

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['bed'], condition=Q(status='ADMITTED'), name='one_active_admission_per_bed'
            ),
            models.UniqueConstraint(
                fields=['patient'], condition=Q(status='ADMITTED'), name='one_active_admission_per_patient'
            ),
        ]

    def __str__(self) -> str:
        return f"Admission {self.id} p={self.patient_id} bed={self.bed_id} {self.status}"


# ---------------------------------------------------------------------------
# Pharmacy inventory
# ---------------------------------------------------------------------------

class Medication(models.Model):
    name = models.CharField(max_length=128, unique=True)
    dosage_form = models.CharField(max_length=32, blank=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    reorder_level = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return self.name


class InventoryBatch(models.Model):
    """A received lot of a medication.

    Batches are never merged, even when two deliveries share a batch
    number; ``quantity_on_hand`` only ever decreases after receipt.
    """
    medication = models.ForeignKey(Medication, on_delete=models.CASCADE, related_name='batches')
    batch_number = models.CharField(max_length=64)
    quantity_on_hand = models.IntegerField()
    expiry_date = models.DateField()
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    supplier = models.CharField(max_length=128, blank=True)
    received_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['medication', 'expiry_date'], name='batch_fefo_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(quantity_on_hand__gte=0), name='batch_quantity_non_negative'),
        ]

    def __str__(self) -> str:
        return f"{self.medication_id}/{self.batch_number} qty={self.quantity_on_hand} exp={self.expiry_date}"


# ---------------------------------------------------------------------------
# Clinical records
# ---------------------------------------------------------------------------

class MedicalRecord(models.Model):
    """SOAP note of one visit."""
    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='medical_records')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='medical_records')
    appointment = models.OneToOneField(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_record'
    )
    visit_date = models.DateTimeField()
    subjective = models.TextField(blank=True)
    objective = models.TextField(blank=True)
    assessment = models.TextField(blank=True)
    plan = models.TextField(blank=True)

    def __str__(self) -> str:
        return f"Record {self.id} p={self.patient_id} {self.visit_date:%F}"


class Prescription(models.Model):

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        REFILL_REQUESTED = 'REFILL_REQUESTED', 'Refill requested'
        DISPENSED = 'DISPENSED', 'Dispensed'

    medical_record = models.ForeignKey(MedicalRecord, on_delete=models.CASCADE, related_name='prescriptions')
    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='prescriptions')
    medication_name = models.CharField(max_length=128)
    dosage = models.CharField(max_length=64)
    frequency = models.CharField(max_length=64)
    route = models.CharField(max_length=32, default='ORAL')
    duration = models.PositiveIntegerField(help_text="Days")
    quantity = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Rx {self.id} {self.medication_name} x{self.quantity} ({self.status})"


class LabOrder(models.Model):

    class Priority(models.TextChoices):
        ROUTINE = 'ROUTINE', 'Routine'
        URGENT = 'URGENT', 'Urgent'
        STAT = 'STAT', 'Stat'

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        IN_PROGRESS = 'IN_PROGRESS', 'In progress'
        COMPLETED = 'COMPLETED', 'Completed'

    medical_record = models.ForeignKey(MedicalRecord, on_delete=models.CASCADE, related_name='lab_orders')
    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='lab_orders')
    test_name = models.CharField(max_length=128)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.ROUTINE)
    clinical_indication = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    ordered_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Lab {self.id} {self.test_name} ({self.status})"


class Dispensing(models.Model):
    """Immutable record of one stock deduction against one batch."""
    prescription = models.ForeignKey(Prescription, on_delete=models.PROTECT, related_name='dispensings')
    medication = models.ForeignKey(Medication, on_delete=models.PROTECT, related_name='dispensings')
    batch = models.ForeignKey(InventoryBatch, on_delete=models.PROTECT, related_name='dispensings')
    batch_number = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField()
    dispensed_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='dispensings')
    dispensed_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Dispense rx={self.prescription_id} {self.batch_number} x{self.quantity}"


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------

class Invoice(models.Model):
    """Patient invoice.

    ``items`` holds ``{description, quantity, unitPrice}`` lines with
    decimal strings.  ``balance`` and ``status`` are never written by hand:
    they are recomputed from ``total`` and ``amount_paid`` by
    :func:`clinical.services.billing.derive_invoice_status`.
    """

    class Status(models.TextChoices):
        ISSUED = 'ISSUED', 'Issued'
        PARTIAL = 'PARTIAL', 'Partially paid'
        PAID = 'PAID', 'Paid'

    invoice_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(PatientProfile, on_delete=models.PROTECT, related_name='invoices')
    medical_record = models.ForeignKey(
        MedicalRecord, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices'
    )
    items = models.JSONField(default=list)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    balance = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ISSUED, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['patient', 'created_at'], name='invoice_patient_created_idx'),
        ]

    @property
    def overpaid_amount(self) -> Decimal:
        return max(self.amount_paid - self.total, Decimal('0.00'))

    def __str__(self) -> str:
        return f"{self.invoice_number} total={self.total} paid={self.amount_paid} ({self.status})"


class Payment(models.Model):

    class Method(models.TextChoices):
        CASH = 'CASH', 'Cash'
        CARD = 'CARD', 'Card'
        MOBILE_MONEY = 'MOBILE_MONEY', 'Mobile money'
        BANK_TRANSFER = 'BANK_TRANSFER', 'Bank transfer'
        INSURANCE = 'INSURANCE', 'Insurance'

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        COMPLETED = 'COMPLETED', 'Completed'
        FAILED = 'FAILED', 'Failed'

    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=Method.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    transaction_reference = models.CharField(max_length=64, unique=True)
    processed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments_processed')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='payment_amount_positive'),
        ]

    def __str__(self) -> str:
        return f"Payment {self.transaction_reference} {self.amount} ({self.status})"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.BigIntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]
