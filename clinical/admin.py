"""
Django admin registrations for the clinical models.

Reference data (wards, beds, medications, batches) and clinical records
are editable here.  Ledger rows (dispensings, payments, appointment
transitions and audit events) are shown read-only: they are written by
the services inside their transactions and must not be edited by hand.
Status fields of beds, appointments and invoices are read-only for the
same reason.
"""

from django.contrib import admin

from .models import (
    Admission,
    Appointment,
    AppointmentTransition,
    AuditEvent,
    Bed,
    Dispensing,
    InventoryBatch,
    Invoice,
    LabOrder,
    MedicalRecord,
    Medication,
    PatientProfile,
    Payment,
    Prescription,
    User,
    Ward,
)


class LedgerAdmin(admin.ModelAdmin):
    """Read-only view of rows that only the services may write."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(PatientProfile)
class PatientProfileAdmin(admin.ModelAdmin):
    list_display = ('patient_number', 'first_name', 'last_name', 'sex', 'date_of_birth', 'user')
    search_fields = ('patient_number', 'first_name', 'last_name', 'phone')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'start_time', 'end_time', 'type', 'status')
    list_filter = ('status', 'type')
    search_fields = ('id', 'patient__patient_number', 'doctor__username')
    readonly_fields = ('status',)


@admin.register(AppointmentTransition)
class AppointmentTransitionAdmin(LedgerAdmin):
    list_display = ('appointment', 'from_status', 'to_status', 'operator', 'timestamp')
    list_filter = ('to_status',)
    search_fields = ('appointment__id', 'operator__username')


@admin.register(Ward)
class WardAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'capacity')
    search_fields = ('name',)


@admin.register(Bed)
class BedAdmin(admin.ModelAdmin):
    list_display = ('id', 'ward', 'number', 'status', 'daily_rate')
    list_filter = ('status', 'ward')
    readonly_fields = ('status',)


@admin.register(Admission)
class AdmissionAdmin(LedgerAdmin):
    list_display = ('id', 'patient', 'bed', 'status', 'admission_date', 'discharge_date')
    list_filter = ('status',)
    search_fields = ('patient__patient_number',)


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'dosage_form', 'unit_price', 'reorder_level')
    search_fields = ('name',)


@admin.register(InventoryBatch)
class InventoryBatchAdmin(admin.ModelAdmin):
    list_display = ('id', 'medication', 'batch_number', 'quantity_on_hand', 'expiry_date', 'supplier')
    list_filter = ('medication',)
    search_fields = ('batch_number', 'medication__name')
    readonly_fields = ('quantity_on_hand',)


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'visit_date')
    search_fields = ('patient__patient_number', 'doctor__username')


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'medication_name', 'quantity', 'status', 'created_at')
    list_filter = ('status',)
    readonly_fields = ('status',)


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'test_name', 'priority', 'status', 'ordered_at')
    list_filter = ('status', 'priority')


@admin.register(Dispensing)
class DispensingAdmin(LedgerAdmin):
    list_display = ('id', 'prescription', 'medication', 'batch_number', 'quantity', 'dispensed_by', 'dispensed_at')


@admin.register(Invoice)
class InvoiceAdmin(LedgerAdmin):
    list_display = ('invoice_number', 'patient', 'total', 'amount_paid', 'balance', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('invoice_number', 'patient__patient_number')


@admin.register(Payment)
class PaymentAdmin(LedgerAdmin):
    list_display = ('transaction_reference', 'invoice', 'amount', 'method', 'status', 'created_at')
    list_filter = ('method', 'status')
    search_fields = ('transaction_reference', 'invoice__invoice_number')


@admin.register(AuditEvent)
class AuditEventAdmin(LedgerAdmin):
    list_display = ('id', 'action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
