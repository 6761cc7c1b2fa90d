"""Clinical transaction engine.

This package contains models, services, serializers, views and route
registrations for scheduling, inpatient beds, pharmacy inventory,
dispensing, billing and consultations.
"""
