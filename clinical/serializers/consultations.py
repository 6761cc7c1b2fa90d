from rest_framework import serializers

from clinical.models import LabOrder


class SoapSerializer(serializers.Serializer):
    subjective = serializers.CharField(required=False, allow_blank=True, default='')
    objective = serializers.CharField(required=False, allow_blank=True, default='')
    assessment = serializers.CharField(required=False, allow_blank=True, default='')
    plan = serializers.CharField(required=False, allow_blank=True, default='')


class PrescriptionItemSerializer(serializers.Serializer):
    medicationName = serializers.CharField(max_length=128)
    dosage = serializers.CharField(max_length=64)
    frequency = serializers.CharField(max_length=64)
    route = serializers.CharField(max_length=32, required=False, default='ORAL')
    duration = serializers.IntegerField(min_value=0)
    quantity = serializers.IntegerField(min_value=1)


class LabOrderItemSerializer(serializers.Serializer):
    testName = serializers.CharField(max_length=128)
    priority = serializers.ChoiceField(choices=LabOrder.Priority.choices, required=False, default=LabOrder.Priority.ROUTINE)
    clinicalIndication = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class BillingItemSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=128)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)


class ConsultationSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    appointmentId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    soap = SoapSerializer()
    prescriptions = PrescriptionItemSerializer(many=True, required=False, default=list)
    labOrders = LabOrderItemSerializer(many=True, required=False, default=list)
    billingItems = BillingItemSerializer(many=True, required=False, default=list)
