"""
Dispensing, refill and invoice/payment endpoints.

A dispense answers with the created invoice and the batch-level
dispensing lines so the pharmacist can label what was handed out.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..exceptions import AuthorizationError, NotFoundError, ValidationError
from ..models import Invoice, User
from ..permissions import CanRequestRefill, IsBillingRole, IsPharmacyRole
from ..serializers.billing import DispenseSerializer, PaymentSerializer
from ..services.billing import apply_payment, format_invoice, format_payment, invoices_for
from ..services.dispensing import (
    dispense,
    format_dispensing,
    format_prescription,
    pending_prescriptions,
    request_refill,
)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def pharmacy_queue(request):
    return Response({'ok': True, 'data': [format_prescription(rx) for rx in pending_prescriptions()[:200]]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def prescription_dispense(request, pk: int):
    s = DispenseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    items = [{'medication_id': i['medicationId'], 'quantity': i['quantity']} for i in s.validated_data['items']]
    result = dispense(request.user, pk, items)
    return Response({
        'ok': True,
        'invoice': format_invoice(result.invoice),
        'dispensings': [format_dispensing(d) for d in result.dispensings],
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanRequestRefill])
def prescription_refill(request, pk: int):
    rx = request_refill(request.user, pk)
    return Response({'ok': True, 'data': format_prescription(rx)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoices(request):
    """Patients get their own invoices; billing staff may filter by ?patientId=."""
    patient_id = request.query_params.get('patientId')
    if patient_id is not None and not patient_id.isdigit():
        raise ValidationError('patientId must be an integer')
    qs = invoices_for(request.user, patient_id=int(patient_id) if patient_id else None)
    return Response({'ok': True, 'data': [format_invoice(i) for i in qs[:200]]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_detail(request, pk: int):
    invoice = Invoice.objects.select_related('patient').filter(id=pk).first()
    if invoice is None:
        raise NotFoundError(f'invoice {pk} not found')
    user: User = request.user  # type: ignore[assignment]
    if user.role == User.Role.PATIENT and invoice.patient.user_id != user.id:
        raise AuthorizationError('not allowed to view this invoice')
    return Response({'ok': True, 'data': format_invoice(invoice, with_payments=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_payments(request, pk: int):
    s = PaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    payment = apply_payment(
        request.user, pk, s.validated_data['amount'], s.validated_data['method'],
        reference=s.validated_data.get('reference') or None,
    )
    # the row apply_payment updated under its lock, not a fresh (possibly replica) read
    invoice = payment.invoice
    return Response({'ok': True, 'payment': format_payment(payment), 'invoice': format_invoice(invoice)},
                    status=status.HTTP_201_CREATED)
