from rest_framework import serializers

from clinical.models import Payment


class DispenseItemSerializer(serializers.Serializer):
    medicationId = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class DispenseSerializer(serializers.Serializer):
    items = DispenseItemSerializer(many=True, allow_empty=False)


class PaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=Payment.Method.choices)
    reference = serializers.CharField(max_length=64, required=False, allow_blank=True)
