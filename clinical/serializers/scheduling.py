import bleach
from rest_framework import serializers

from clinical.models import Appointment


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1)
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    type = serializers.ChoiceField(choices=Appointment.Type.choices, required=False, default=Appointment.Type.CONSULTATION)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')

    def validate_reason(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class AppointmentStatusSerializer(serializers.Serializer):
    # free-form so an unknown value reaches the service and is reported there
    status = serializers.CharField(max_length=16)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class AppointmentRescheduleSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()


class AppointmentListQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
