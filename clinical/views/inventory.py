"""
Pharmacy inventory endpoints.

Stock only leaves inventory through a dispense; there is
no endpoint that allocates stock on its own.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsPharmacyRole, IsStaffRole
from ..serializers.inventory import StockReceiveSerializer
from ..services.inventory import format_batch, inventory_status, low_stock_alerts, receive_stock, total_stock


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def inventory(request):
    return Response({'ok': True, 'data': inventory_status()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def inventory_receive(request):
    s = StockReceiveSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    batch = receive_stock(
        request.user,
        medication_id=s.validated_data['medicationId'],
        batch_number=s.validated_data['batchNumber'],
        quantity=s.validated_data['quantity'],
        expiry_date=s.validated_data['expiryDate'],
        cost_price=s.validated_data['costPrice'],
        supplier=s.validated_data['supplier'],
    )
    return Response({'ok': True, 'data': format_batch(batch)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def inventory_low_stock(request):
    return Response({'ok': True, 'data': low_stock_alerts()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medication_stock(request, pk: int):
    return Response({'ok': True, 'data': {'medicationId': pk, 'totalStock': total_stock(pk)}})
