"""
Appointment endpoints.

Booking, status changes and rescheduling all go through
:mod:`clinical.services.scheduling`; these views only parse the request
and shape the response.  Errors raised by the service are rendered by
the project-wide exception handler.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment
from ..permissions import CanSchedule
from ..serializers.scheduling import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentRescheduleSerializer,
    AppointmentStatusSerializer,
)
from ..services.scheduling import (
    appointment_visible_to,
    appointments_for,
    reschedule_appointment,
    schedule_appointment,
    update_appointment_status,
)


def format_appointment(appt: Appointment, *, with_history: bool = False) -> dict:
    data = {
        'id': appt.id,
        'patientId': appt.patient_id,
        'doctorId': appt.doctor_id,
        'start': appt.start_time.isoformat(),
        'end': appt.end_time.isoformat(),
        'type': appt.type,
        'reason': appt.reason,
        'status': appt.status,
    }
    if with_history:
        data['transitionHistory'] = [
            {
                'from': t.from_status,
                'to': t.to_status,
                'operator': t.operator.username if t.operator else '',
                'timestamp': t.timestamp.isoformat(),
                'reason': t.reason,
            }
            for t in appt.transitions.select_related('operator').order_by('timestamp', 'id')
        ]
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, CanSchedule])
def appointments(request):
    """List visible appointments (GET) or book a new one (POST)."""
    if request.method == 'GET':
        q = AppointmentListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = appointments_for(
            request.user,
            doctor_id=q.validated_data.get('doctorId'),
            patient_id=q.validated_data.get('patientId'),
        )
        return Response({'ok': True, 'data': [format_appointment(a) for a in qs[:200]]})

    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = schedule_appointment(
        request.user,
        patient_id=s.validated_data['patientId'],
        doctor_id=s.validated_data['doctorId'],
        start=s.validated_data['start'],
        end=s.validated_data['end'],
        type=s.validated_data['type'],
        reason=s.validated_data['reason'],
    )
    return Response({'ok': True, 'data': format_appointment(appt)}, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanSchedule])
def appointment_status(request, pk: int):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = update_appointment_status(request.user, pk, s.validated_data['status'], reason=s.validated_data['reason'])
    return Response({'ok': True, 'data': format_appointment(appt, with_history=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanSchedule])
def appointment_reschedule(request, pk: int):
    s = AppointmentRescheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = reschedule_appointment(request.user, pk, s.validated_data['start'], s.validated_data['end'])
    return Response({'ok': True, 'data': format_appointment(appt)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanSchedule])
def appointment_detail(request, pk: int):
    appt = appointment_visible_to(request.user, pk)
    return Response({'ok': True, 'data': format_appointment(appt, with_history=True)})
