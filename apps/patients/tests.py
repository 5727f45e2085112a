import pytest

from apps.doctors.models import Doctor
from apps.ledger.services import ledger_balance
from apps.patients.models import Patient
from apps.payments.services import PaymentLedger
from apps.visits.models import Visit


pytestmark = pytest.mark.django_db


class TestIdentifiers:

    def test_patient_ids_are_sequential_per_day(self, make_patient):
        first = make_patient()
        second = make_patient()

        assert first.patient_id.startswith('P-')
        assert first.patient_id.endswith('-0001')
        assert second.patient_id.endswith('-0002')

    def test_doctor_ids(self, db):
        assert Doctor.objects.create(name='A').doctor_id == 'DOC-001'
        assert Doctor.objects.create(name='B').doctor_id == 'DOC-002'

    def test_doctor_ids_not_reused_after_delete(self, db):
        Doctor.objects.create(name='A')
        Doctor.objects.create(name='B').delete()

        assert Doctor.objects.create(name='C').doctor_id == 'DOC-003'

    def test_patient_ids_not_reused_after_delete(self, make_patient):
        make_patient().delete()
        assert make_patient().patient_id.endswith('-0002')


class TestActiveVisit:

    def test_active_visit(self, make_visit, patient):
        assert patient.active_visit is None
        visit = make_visit(patient=patient)
        assert patient.active_visit == visit


class TestPatientApi:

    def test_create_and_list(self, api_client, user):
        response = api_client.post('/api/patients/', {
            'name': 'Nasrin Akter',
            'phone': '01711111111',
            'gender': 'F',
        }, format='json')

        assert response.status_code == 201
        assert response.data['patient_id'].startswith('P-')
        assert Patient.objects.get().created_by == user

        response = api_client.get('/api/patients/', {'search': 'Nasrin'})
        assert response.data['count'] == 1
        assert response.data['results'][0]['has_active_visit'] is False

    def test_delete_reverses_payments(self, api_client, make_visit, patient):
        visit = make_visit(patient=patient)
        payment = PaymentLedger().record_payment(visit.pk, '250')

        response = api_client.delete(f'/api/patients/{patient.pk}/')

        assert response.status_code == 200
        assert len(response.data['reversal_vouchers']) == 1
        assert not Visit.objects.exists()
        assert ledger_balance(source_reference_id=payment.pk) == 0

    def test_delete_unknown_patient(self, api_client):
        response = api_client.delete('/api/patients/999/')
        assert response.status_code == 404
        assert response.data['code'] == 'not_found'
