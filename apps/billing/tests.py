from decimal import Decimal

import pytest
from django.test import override_settings

from core.constants import DiscountType
from apps.billing.costs import compute_costs, doctor_fee_for, estimate_for


class TestComputeCosts:

    def test_no_discount(self):
        costs = compute_costs('500', DiscountType.NONE, 0)
        assert costs.total_amount == Decimal('500.00')
        assert costs.discount_amount == Decimal('0.00')
        assert costs.final_amount == Decimal('500.00')

    def test_percentage_over_hundred_is_clamped(self):
        costs = compute_costs('1000', DiscountType.PERCENTAGE, 120)
        assert costs.discount_amount == Decimal('1000.00')
        assert costs.final_amount == Decimal('0.00')

    def test_amount_over_total_is_clamped(self):
        costs = compute_costs('800', DiscountType.AMOUNT, 1000)
        assert costs.discount_amount == Decimal('800.00')
        assert costs.final_amount == Decimal('0.00')

    def test_invalid_discount_type_means_no_discount(self):
        costs = compute_costs('800', 'coupon', 100)
        assert costs.final_amount == Decimal('800.00')

    def test_registration_fee_is_added(self):
        costs = compute_costs('500', DiscountType.PERCENTAGE, 10, registration_fee='100')
        assert costs.total_amount == Decimal('600.00')
        assert costs.discount_amount == Decimal('60.00')
        assert costs.final_amount == Decimal('540.00')

    @override_settings(CLINIC_BILLING={'REGISTRATION_FEE': '50.00'})
    def test_registration_fee_comes_from_settings(self):
        costs = compute_costs('500', DiscountType.NONE, 0)
        assert costs.registration_fee == Decimal('50.00')
        assert costs.final_amount == Decimal('550.00')

    def test_as_dict(self):
        assert compute_costs('200', DiscountType.NONE, 0).as_dict() == {
            'registration_fee': Decimal('0.00'),
            'doctor_fee': Decimal('200.00'),
            'total_amount': Decimal('200.00'),
            'discount_amount': Decimal('0.00'),
            'final_amount': Decimal('200.00'),
        }


@pytest.mark.django_db
class TestDoctorFee:

    def test_no_doctor_costs_nothing(self):
        assert doctor_fee_for(None) == Decimal('0.00')
        assert estimate_for(None, DiscountType.NONE, 0).final_amount == Decimal('0.00')

    def test_follow_up_fee_applies_to_follow_up_visits(self, doctor):
        assert doctor_fee_for(doctor) == Decimal('500.00')
        assert doctor_fee_for(doctor, is_followup=True) == Decimal('300.00')

    def test_consultation_fee_when_no_follow_up_fee(self, doctor):
        doctor.follow_up_fee = None
        assert doctor_fee_for(doctor, is_followup=True) == Decimal('500.00')


@pytest.mark.django_db
class TestEstimateApi:

    def test_estimate(self, api_client, doctor):
        response = api_client.post('/api/billing/estimate/', {
            'doctor_id': doctor.pk,
            'discount_type': 'percentage',
            'discount_value': '10',
        }, format='json')

        assert response.status_code == 200
        assert response.data == {
            'registration_fee': '0.00',
            'doctor_fee': '500.00',
            'total_amount': '500.00',
            'discount_amount': '50.00',
            'final_amount': '450.00',
        }

    def test_estimate_matches_registered_visit(self, api_client, doctor, make_visit):
        response = api_client.post('/api/billing/estimate/', {
            'doctor_id': doctor.pk,
            'discount_type': 'amount',
            'discount_value': '120',
        }, format='json')
        visit = make_visit(discount_type='amount', discount_value='120')

        assert response.data['final_amount'] == f'{visit.final_amount:.2f}'
        assert response.data['discount_amount'] == f'{visit.discount_amount:.2f}'

    def test_estimate_rejects_negative_discount(self, api_client, doctor):
        response = api_client.post('/api/billing/estimate/', {
            'doctor_id': doctor.pk,
            'discount_type': 'amount',
            'discount_value': '-5',
        }, format='json')
        assert response.status_code == 400

    def test_requires_authentication(self, db):
        from rest_framework.test import APIClient
        response = APIClient().post('/api/billing/estimate/', {}, format='json')
        assert response.status_code in (401, 403)
