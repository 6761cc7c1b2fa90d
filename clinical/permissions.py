"""
Custom permission classes for role based access control.

Each endpoint admits the roles that run the corresponding desk in the
hospital; finer rules (patient ownership, a doctor acting for another
doctor) are enforced by the services themselves.
"""
from rest_framework.permissions import BasePermission

ADMIN = "admin"
DOCTOR = "doctor"
NURSE = "nurse"
RECEPTIONIST = "receptionist"
PHARMACIST = "pharmacist"
LAB_TECH = "lab_tech"
PATIENT = "patient"


def _role_in(request, roles) -> bool:
    user = getattr(request, "user", None)
    return bool(user and user.is_authenticated and getattr(user, "role", None) in roles)


class RolePermission(BasePermission):
    """Allow access to users whose role is in ``roles``."""
    roles: frozenset = frozenset()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role_in(request, self.roles)


class CanSchedule(RolePermission):
    """Front desk, clinicians and patients booking for themselves."""
    roles = frozenset({ADMIN, DOCTOR, NURSE, RECEPTIONIST, PATIENT})


class CanRequestRefill(RolePermission):
    """Patients for their own prescriptions, doctors on their behalf."""
    roles = frozenset({DOCTOR, PATIENT})


class IsClinician(RolePermission):
    roles = frozenset({ADMIN, DOCTOR})


class IsWardStaff(RolePermission):
    """Admission, discharge and housekeeping of beds."""
    roles = frozenset({ADMIN, DOCTOR, NURSE, RECEPTIONIST})


class IsPharmacyRole(RolePermission):
    roles = frozenset({ADMIN, PHARMACIST})


class IsBillingRole(RolePermission):
    """Cashiers and patients paying their own invoices."""
    roles = frozenset({ADMIN, RECEPTIONIST, PATIENT})


class IsStaffRole(RolePermission):
    roles = frozenset({ADMIN, DOCTOR, NURSE, RECEPTIONIST, PHARMACIST, LAB_TECH})
