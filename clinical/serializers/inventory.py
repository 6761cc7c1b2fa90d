from rest_framework import serializers


class StockReceiveSerializer(serializers.Serializer):
    medicationId = serializers.IntegerField(min_value=1)
    batchNumber = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    expiryDate = serializers.DateField()
    costPrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    supplier = serializers.CharField(max_length=128, required=False, allow_blank=True, default='')
