from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from apps.doctors.models import Doctor
from apps.patients.models import Patient
from apps.payments.models import PaymentMethod
from apps.visits.events import visit_updated


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(
        username='reception', password='secret', is_staff=True
    )


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def cash(db):
    method, _ = PaymentMethod.objects.get_or_create(code='CASH', defaults={'name': 'Cash'})
    return method


@pytest.fixture
def doctor(db):
    return Doctor.objects.create(
        name='Rahman',
        specialization='Ophthalmology',
        consultation_fee=Decimal('500.00'),
        follow_up_fee=Decimal('300.00'),
    )


@pytest.fixture
def make_patient(db):
    counter = {'n': 0}

    def _make(**kwargs):
        counter['n'] += 1
        kwargs.setdefault('name', f"Patient {counter['n']}")
        kwargs.setdefault('phone', f"0170000{counter['n']:04d}")
        return Patient.objects.create(**kwargs)

    return _make


@pytest.fixture
def patient(make_patient):
    return make_patient(name='Karim Uddin')


@pytest.fixture
def make_visit(make_patient, doctor, cash):
    """Register a visit for a fresh patient through the visit services"""
    from apps.visits.services import register_visit

    def _make(patient=None, **kwargs):
        patient = patient or make_patient()
        kwargs.setdefault('doctor_id', doctor.pk)
        visit, _ = register_visit(patient.pk, **kwargs)
        return visit

    return _make


@pytest.fixture
def events():
    """VisitUpdated payloads delivered while the test runs"""
    received = []

    def receiver(sender, payload, **kwargs):
        received.append(payload)

    visit_updated.connect(receiver, weak=False)
    yield received
    visit_updated.disconnect(receiver)
