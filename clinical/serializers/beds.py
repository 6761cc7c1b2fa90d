from rest_framework import serializers


class AdmissionCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    bedId = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(max_length=255)
    estimatedDischargeDate = serializers.DateField(required=False, allow_null=True)


class BedStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=16)
