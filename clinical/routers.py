"""
URL mappings for the clinical API.

Trailing slashes are omitted, matching the rest of the API.
Token obtain/refresh are served by simplejwt.
"""
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import beds, consultations, health, inventory, pharmacy, scheduling


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/token', TokenObtainPairView.as_view()),
    path('api/auth/refresh', TokenRefreshView.as_view()),
    # Scheduling
    path('api/appointments', scheduling.appointments),
    path('api/appointments/<int:pk>', scheduling.appointment_detail),
    path('api/appointments/<int:pk>/status', scheduling.appointment_status),
    path('api/appointments/<int:pk>/reschedule', scheduling.appointment_reschedule),
    # Inpatient
    path('api/wards', beds.wards),
    path('api/wards/<int:pk>', beds.ward_detail_view),
    path('api/admissions', beds.admissions),
    path('api/admissions/<int:pk>/discharge', beds.admission_discharge),
    path('api/beds/<int:pk>/status', beds.bed_status),
    # Inventory
    path('api/inventory', inventory.inventory),
    path('api/inventory/receive', inventory.inventory_receive),
    path('api/inventory/low-stock', inventory.inventory_low_stock),
    path('api/medications/<int:pk>/stock', inventory.medication_stock),
    # Pharmacy and billing
    path('api/pharmacy/queue', pharmacy.pharmacy_queue),
    path('api/prescriptions/<int:pk>/dispense', pharmacy.prescription_dispense),
    path('api/prescriptions/<int:pk>/refill', pharmacy.prescription_refill),
    path('api/invoices', pharmacy.invoices),
    path('api/invoices/<int:pk>', pharmacy.invoice_detail),
    path('api/invoices/<int:pk>/payments', pharmacy.invoice_payments),
    # Consultations
    path('api/consultations', consultations.consultations),
]
