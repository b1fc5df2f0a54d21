"""
Cheque custody & handover API

Every endpoint requires a JWT bearer token; writes are role-gated. Services
answer with result dicts; failures are mapped to HTTP status by error kind.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle

from accounts.models import StaffUser
from accounts.permissions import role_required
from cheques import results
from cheques.cheque_service import ChequeService
from cheques.context import RequestContext
from cheques.models import Cheque
from cheques.otp_service import OtpService
from cheques.override_service import HandoverOverrideService
from cheques.serializers import (
    AuditLogSerializer, ChequeCreateSerializer, ChequeSerializer, CustodyLogSerializer,
    ForwardSerializer, GenerateOtpSerializer, HandoverOverrideSerializer, HandoverRecordSerializer,
    ListChequesQuerySerializer, OverrideHandoverSerializer, PageQuerySerializer, ReasonSerializer,
    RejectOverrideSerializer, VerifyOtpSerializer,
)

logger = logging.getLogger(__name__)

Role = StaffUser.Role

CanCreate = role_required(Role.DIRECTOR, Role.ACCOUNTS, Role.ADMIN)
AccountsOnly = role_required(Role.ACCOUNTS, Role.ADMIN)
ReceptionOnly = role_required(Role.RECEPTION, Role.ADMIN)
ApproversOnly = role_required(Role.HOD, Role.ADMIN)

STATUS_BY_KIND = {
    results.VALIDATION: status.HTTP_400_BAD_REQUEST,
    results.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    results.CONFLICT: status.HTTP_409_CONFLICT,
    results.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    results.LOCKED: status.HTTP_423_LOCKED,
    results.DELIVERY_FAILED: status.HTTP_502_BAD_GATEWAY,
}


class OtpThrottle(UserRateThrottle):
    rate = '10/min'


def _context(request):
    return getattr(request, 'request_context', None) or RequestContext.from_request(request)


def _failure(result):
    code = STATUS_BY_KIND.get(result.get('error_kind'), status.HTTP_400_BAD_REQUEST)
    return Response(result, status=code)


def _cheque_detail(result):
    data = ChequeSerializer(result['cheque']).data
    data['custody_logs'] = CustodyLogSerializer(result['custody_logs'], many=True).data
    handover = result['handover']
    data['handover'] = HandoverRecordSerializer(handover).data if handover else None
    return data


def _handover_response(result, message):
    return Response({
        'success': True,
        'message': message,
        'data': {
            'cheque': ChequeSerializer(result['cheque']).data,
            'handover': HandoverRecordSerializer(result['handover']).data,
        },
    })


# ==================== Cheques ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def cheques(request):
    if request.method == 'POST':
        return _create_cheque(request)
    return _list_cheques(request)


def _create_cheque(request):
    if not CanCreate().has_permission(request, None):
        return Response({'error': 'Insufficient permissions'}, status=status.HTTP_403_FORBIDDEN)

    serializer = ChequeCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = ChequeService().create_cheque(
        initiator_id=request.user.id, context=_context(request), **serializer.validated_data,
    )
    if not result['success']:
        return _failure(result)
    return Response(
        {'success': True, 'message': 'Cheque created successfully', 'data': ChequeSerializer(result['cheque']).data},
        status=status.HTTP_201_CREATED,
    )


def _list_cheques(request):
    query = ListChequesQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    role = None if request.user.is_superuser else request.user.role
    result = ChequeService().list_cheques(role=role, user_id=request.user.id, **query.validated_data)
    if not result['success']:
        return _failure(result)
    return Response({
        'success': True,
        'data': {
            'cheques': ChequeSerializer(result['cheques'], many=True).data,
            'total': result['total'],
            'limit': result['limit'],
            'offset': result['offset'],
        },
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cheque_detail(request, cheque_id):
    result = ChequeService().get_cheque_by_id(cheque_id)
    if not result['success']:
        return _failure(result)
    return Response({'success': True, 'data': _cheque_detail(result)})


@api_view(['POST'])
@permission_classes([AccountsOnly])
def mark_ready(request, cheque_id):
    result = ChequeService().mark_ready_for_dispatch(cheque_id, request.user.id, context=_context(request))
    if not result['success']:
        return _failure(result)
    return Response({
        'success': True,
        'message': 'Cheque marked as ready for dispatch',
        'data': ChequeSerializer(result['cheque']).data,
    })


@api_view(['POST'])
@permission_classes([AccountsOnly])
def forward_to_reception(request, cheque_id):
    serializer = ForwardSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = ChequeService().forward_to_reception(
        cheque_id, request.user.id, notes=serializer.validated_data['notes'], context=_context(request),
    )
    if not result['success']:
        return _failure(result)
    return Response({
        'success': True,
        'message': 'Cheque forwarded to reception',
        'data': ChequeSerializer(result['cheque']).data,
    })


@api_view(['POST'])
@permission_classes([CanCreate])
def cancel_cheque(request, cheque_id):
    serializer = ReasonSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = ChequeService().cancel_cheque(
        cheque_id, request.user.id, serializer.validated_data['reason'], context=_context(request),
    )
    if not result['success']:
        return _failure(result)
    return Response({
        'success': True,
        'message': 'Cheque cancelled successfully',
        'data': ChequeSerializer(result['cheque']).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_trail(request, cheque_id):
    result = ChequeService().get_audit_trail(cheque_id)
    if not result['success']:
        return _failure(result)
    return Response({'success': True, 'data': AuditLogSerializer(result['entries'], many=True).data})


# ==================== OTP Handover ====================

@api_view(['POST'])
@permission_classes([ReceptionOnly])
@throttle_classes([OtpThrottle])
def generate_otp(request, cheque_id):
    """
    Issue a handover code and deliver it to the recipient over the chosen
    channel. The code itself is only echoed back when OTP_EXPOSE_CODE is on.
    """
    serializer = GenerateOtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = OtpService().generate_otp(
        cheque_id,
        serializer.validated_data['channel'],
        serializer.validated_data['destination'],
        context=_context(request),
    )
    if not result['success']:
        return _failure(result)

    data = {'otp_id': result['otp_id'], 'expires_at': result['expires_at'], 'delivered': result['delivered']}
    if 'code' in result:
        data['code'] = result['code']
    return Response({'success': True, 'message': 'OTP sent successfully', 'data': data})


@api_view(['POST'])
@permission_classes([ReceptionOnly])
@throttle_classes([OtpThrottle])
def verify_otp(request, cheque_id):
    """Verify the recipient's code and, on success, complete the handover."""
    serializer = VerifyOtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    evidence = dict(serializer.validated_data)
    code = evidence.pop('otp')
    context = _context(request)

    cheque_service = ChequeService()
    found = cheque_service.get_cheque_by_id(cheque_id)
    if not found['success']:
        return _failure(found)
    if found['cheque'].status != Cheque.Status.WITH_RECEPTION:
        return _failure(results.fail(
            results.CONFLICT if found['cheque'].is_terminal else results.VALIDATION,
            f'Invalid status transition. Current status: {found["cheque"].status}',
        ))

    verified = OtpService().verify_otp(cheque_id, code, request.user.id, context=context)
    if not verified['success']:
        return _failure(verified)

    result = cheque_service.complete_handover(cheque_id, request.user.id, context=context, **evidence)
    if not result['success']:
        return _failure(result)
    return _handover_response(result, 'Handover completed successfully')


# ==================== Overrides ====================

@api_view(['POST'])
@permission_classes([ReceptionOnly])
def request_override(request, cheque_id):
    serializer = ReasonSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = HandoverOverrideService().create_override_request(
        cheque_id, request.user.id, serializer.validated_data['reason'], context=_context(request),
    )
    if not result['success']:
        return _failure(result)
    return Response(
        {
            'success': True,
            'message': 'Override request created successfully',
            'data': HandoverOverrideSerializer(result['override']).data,
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
@permission_classes([ReceptionOnly])
def complete_override_handover(request, cheque_id):
    """Complete a handover authorised by an approved override instead of an OTP."""
    serializer = OverrideHandoverSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    evidence = dict(serializer.validated_data)
    override_id = evidence.pop('override_id')

    result = ChequeService().complete_handover(
        cheque_id,
        request.user.id,
        is_override=True,
        override_id=override_id,
        context=_context(request),
        **evidence,
    )
    if not result['success']:
        return _failure(result)
    return _handover_response(result, 'Handover completed via override')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cheque_overrides(request, cheque_id):
    result = HandoverOverrideService().get_overrides_by_cheque(cheque_id)
    return Response({'success': True, 'data': HandoverOverrideSerializer(result['overrides'], many=True).data})


@api_view(['GET'])
@permission_classes([ApproversOnly])
def pending_overrides(request):
    query = PageQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    result = HandoverOverrideService().get_pending_overrides(**query.validated_data)
    return Response({
        'success': True,
        'data': {
            'overrides': HandoverOverrideSerializer(result['overrides'], many=True).data,
            'total': result['total'],
            'limit': result['limit'],
            'offset': result['offset'],
        },
    })


@api_view(['POST'])
@permission_classes([ApproversOnly])
def approve_override(request, override_id):
    service = HandoverOverrideService()
    found = service.get_override_by_id(override_id)
    if not found['success']:
        return _failure(found)
    if found['override'].requested_by_id == request.user.id:
        logger.warning(f'User {request.user.id} tried to approve their own override {override_id}')
        return Response(
            {'success': False, 'error': 'Approver must be different from requester'},
            status=status.HTTP_403_FORBIDDEN,
        )

    result = service.approve_override(override_id, request.user.id, context=_context(request))
    if not result['success']:
        return _failure(result)
    return Response({
        'success': True,
        'message': 'Override approved successfully',
        'data': HandoverOverrideSerializer(result['override']).data,
    })


@api_view(['POST'])
@permission_classes([ApproversOnly])
def reject_override(request, override_id):
    serializer = RejectOverrideSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = HandoverOverrideService().reject_override(
        override_id, request.user.id, serializer.validated_data['rejected_reason'], context=_context(request),
    )
    if not result['success']:
        return _failure(result)
    return Response({
        'success': True,
        'message': 'Override rejected',
        'data': HandoverOverrideSerializer(result['override']).data,
    })
