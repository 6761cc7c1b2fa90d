from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..exceptions import ValidationError
from ..models import User
from ..permissions import IsClinician
from ..serializers.consultations import ConsultationSerializer
from ..services.billing import format_invoice
from ..services.consultations import format_record, save_consultation


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinician])
def consultations(request):
    """Save a consultation; a doctor records under their own name unless an admin names one."""
    s = ConsultationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = s.validated_data
    user: User = request.user  # type: ignore[assignment]
    doctor_id = user.id if user.role == User.Role.DOCTOR else data.get('doctorId')
    if doctor_id is None:
        raise ValidationError('doctorId is required')
    result = save_consultation(
        user,
        patient_id=data['patientId'],
        doctor_id=doctor_id,
        soap=data['soap'],
        prescriptions=data['prescriptions'],
        lab_orders=data['labOrders'],
        billing_items=data['billingItems'],
        appointment_id=data.get('appointmentId'),
    )
    return Response({
        'ok': True,
        'record': format_record(result.record),
        'invoice': format_invoice(result.invoice),
    }, status=status.HTTP_201_CREATED)
