"""Ward, bed and admission endpoints."""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsStaffRole, IsWardStaff
from ..serializers.beds import AdmissionCreateSerializer, BedStatusSerializer
from ..services.beds import (
    admit_patient,
    discharge_patient,
    format_admission,
    set_bed_status,
    ward_detail,
    ward_occupancy,
)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def wards(request):
    return Response({'ok': True, 'data': ward_occupancy()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsWardStaff])
def admissions(request):
    s = AdmissionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    admission = admit_patient(
        request.user,
        patient_id=s.validated_data['patientId'],
        bed_id=s.validated_data['bedId'],
        reason=s.validated_data['reason'],
        estimated_discharge_date=s.validated_data.get('estimatedDischargeDate'),
    )
    return Response({'ok': True, 'data': format_admission(admission)}, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsWardStaff])
def admission_discharge(request, pk: int):
    admission = discharge_patient(request.user, pk)
    return Response({'ok': True, 'data': format_admission(admission)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsWardStaff])
def bed_status(request, pk: int):
    s = BedStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    bed = set_bed_status(request.user, pk, s.validated_data['status'])
    return Response({'ok': True, 'data': {'id': bed.id, 'wardId': bed.ward_id, 'number': bed.number, 'status': bed.status}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def ward_detail_view(request, pk: int):
    return Response({'ok': True, 'data': ward_detail(pk)})
