"""
Shared fixtures for the cheque desk tests: staff users per role, cheques at
each lifecycle stage, a controllable clock, a recording channel sender and
JWT-authenticated API clients.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.authentication import generate_access_token
from accounts.models import StaffUser
from cheques.cheque_service import ChequeService
from cheques.models import Cheque
from cheques.otp_service import OtpService


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or timezone.now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSender:
    """Stands in for channels.dispatch; records every message handed over."""

    def __init__(self, success=True, error=''):
        self.success = success
        self.error = error
        self.sent = []

    def __call__(self, channel, destination, message):
        self.sent.append((channel, destination, message))
        return self.success, self.error


@pytest.fixture
def make_user(db):
    counter = {'n': 0}

    def _make(role=StaffUser.Role.DIRECTOR, **extra):
        counter['n'] += 1
        email = extra.pop('email', f'{role}{counter["n"]}@example.com')
        return StaffUser.objects.create_user(email, 'pass12345', role=role, name=f'{role} {counter["n"]}', **extra)

    return _make


@pytest.fixture
def director(make_user):
    return make_user(StaffUser.Role.DIRECTOR)


@pytest.fixture
def accounts_user(make_user):
    return make_user(StaffUser.Role.ACCOUNTS)


@pytest.fixture
def reception_user(make_user):
    return make_user(StaffUser.Role.RECEPTION)


@pytest.fixture
def hod(make_user):
    return make_user(StaffUser.Role.HOD)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def otp_service(clock, sender):
    return OtpService(sender=sender, clock=clock)


@pytest.fixture
def cheque_service():
    return ChequeService()


@pytest.fixture
def make_cheque(director, cheque_service):
    counter = {'n': 0}

    def _make(status=Cheque.Status.SIGNED, initiator=None, **fields):
        counter['n'] += 1
        data = {
            'cheque_no': f'CHQ-{100 + counter["n"]}',
            'amount': Decimal('50000.00'),
            'bank': 'Ecobank',
            'branch': 'Ridge',
            'payer_name': 'Acme Holdings',
            'payee_name': 'Kofi Supplies Ltd',
            'due_date': timezone.now() + timedelta(days=30),
        }
        data.update(fields)
        result = cheque_service.create_cheque(initiator_id=(initiator or director).id, **data)
        assert result['success'], result
        cheque = result['cheque']
        # Push through the real transitions so custody and audit rows exist
        if status in (Cheque.Status.READY_FOR_DISPATCH, Cheque.Status.WITH_RECEPTION):
            cheque_service.mark_ready_for_dispatch(cheque.pk, director.id)
        if status == Cheque.Status.WITH_RECEPTION:
            cheque_service.forward_to_reception(cheque.pk, director.id)
        if status in (Cheque.Status.ISSUED, Cheque.Status.CANCELLED):
            Cheque.objects.filter(pk=cheque.pk).update(status=status)
        cheque.refresh_from_db()
        return cheque

    return _make


@pytest.fixture
def cheque_at_reception(make_cheque):
    return make_cheque(status=Cheque.Status.WITH_RECEPTION)


@pytest.fixture
def handover_evidence():
    return {
        'recipient_name': 'Ama Mensah',
        'id_type': 'Ghana Card',
        'id_number': 'GHA-000111222-3',
        'recipient_photo_path': 'handovers/photo.jpg',
        'signature_path': 'handovers/signature.png',
    }


@pytest.fixture
def api_client_for():
    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {generate_access_token(user)}')
        return client

    return _client
