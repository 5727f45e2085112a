from datetime import date
from decimal import Decimal

import pytest
from django.db import OperationalError
from django.test import override_settings

from core.constants import OverallStatus, PaymentStatus, VoucherType
from core.exceptions import (
    ConcurrentModification, IdempotencyConflict, InvalidAmount, InvariantViolation,
    NotFound
)
from apps.ledger.models import AccountVoucher
from apps.ledger.services import ledger_balance
from apps.payments.models import Payment, PaymentMethod
from apps.payments.services import PaymentLedger, resolve_payment_method
from apps.visits import services
from apps.visits.models import Visit, VisitQuerySet


pytestmark = pytest.mark.django_db


class TestRecordPayment:

    def test_partial_then_paid(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()

        ledger.record_payment(visit.pk, '200')
        visit.refresh_from_db()
        assert visit.payment_status == PaymentStatus.PARTIAL
        assert visit.total_paid == Decimal('200.00')
        assert visit.total_due == Decimal('300.00')

        ledger.record_payment(visit.pk, '300')
        visit.refresh_from_db()
        assert visit.payment_status == PaymentStatus.PAID
        assert visit.total_due == Decimal('0.00')
        assert visit.payment_completed_at is not None
        assert visit.overall_status == OverallStatus.VISION_TEST

    def test_posts_credit_income_voucher(self, make_visit, patient):
        visit = make_visit(patient=patient)
        payment = PaymentLedger().record_payment(visit.pk, '150', payment_date=date(2024, 5, 2))

        voucher = AccountVoucher.objects.get(source_reference_id=payment.pk)
        assert voucher.voucher_type == VoucherType.CREDIT
        assert voucher.amount == Decimal('150.00')
        assert voucher.source_account == 'hospital'
        assert voucher.source_transaction_type == 'income'
        assert voucher.source_voucher_no == payment.payment_number
        assert voucher.date == date(2024, 5, 2)
        assert voucher.narration == (
            f'Hospital Income - OPD Income: Visit payment from Patient: '
            f'Karim Uddin (ID: {patient.patient_id})'
        )

    def test_voucher_follows_visit_service_line(self, make_visit):
        visit = make_visit(service_line='optics')
        payment = PaymentLedger().record_payment(visit.pk, '100')

        voucher = AccountVoucher.objects.get(source_reference_id=payment.pk)
        assert voucher.source_account == 'optics'
        assert voucher.narration.startswith('Optics Income - OPD Income:')

    @pytest.mark.parametrize('amount', ['0', '-10'])
    def test_rejects_non_positive_amount(self, make_visit, amount):
        visit = make_visit()
        with pytest.raises(InvalidAmount):
            PaymentLedger().record_payment(visit.pk, amount)

        visit.refresh_from_db()
        assert visit.total_paid == Decimal('0.00')
        assert not Payment.objects.exists()
        assert not AccountVoucher.objects.exists()

    def test_unknown_visit(self, db):
        with pytest.raises(NotFound):
            PaymentLedger().record_payment(999, '10')

    def test_overpayment_is_accepted_by_default(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '600')

        visit.refresh_from_db()
        assert visit.total_paid == Decimal('600.00')
        assert visit.total_due == Decimal('0.00')
        assert visit.payment_status == PaymentStatus.PAID

    def test_overpayment_can_be_rejected(self, make_visit, settings):
        visit = make_visit()
        settings.CLINIC_BILLING = {'ALLOW_OVERPAYMENT': False}

        with pytest.raises(InvalidAmount):
            PaymentLedger().record_payment(visit.pk, '600')
        PaymentLedger().record_payment(visit.pk, '500')

        visit.refresh_from_db()
        assert visit.payment_status == PaymentStatus.PAID

    def test_failed_voucher_rolls_back_payment(self, make_visit):
        visit = make_visit()

        class BrokenPoster:
            def credit(self, **kwargs):
                raise InvariantViolation('ledger unavailable')

        with pytest.raises(InvariantViolation):
            PaymentLedger(poster=BrokenPoster()).record_payment(visit.pk, '100')

        visit.refresh_from_db()
        assert visit.total_paid == Decimal('0.00')
        assert not Payment.objects.exists()

    def test_payment_method_defaults_to_cash(self, make_visit):
        visit = make_visit()
        payment = PaymentLedger().record_payment(visit.pk, '100')
        assert payment.payment_method_id == 'CASH'
        assert payment.method_display == 'Cash'

    def test_payment_number_format(self, make_visit):
        visit = make_visit()
        first = PaymentLedger().record_payment(visit.pk, '100')
        second = PaymentLedger().record_payment(visit.pk, '100')

        assert first.payment_number.startswith('PAY-')
        assert first.payment_number.endswith('-00001')
        assert second.payment_number.endswith('-00002')


class TestPaymentEvents:

    def test_event_after_commit(self, make_visit, events, django_capture_on_commit_callbacks):
        visit = make_visit()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            PaymentLedger().record_payment(visit.pk, '500')

        assert len(callbacks) == 1
        assert len(events) == 1
        assert events[0]['type'] == 'updated'
        assert events[0]['visit']['payment_status'] == 'paid'
        assert events[0]['visit']['patient']['id'] == visit.patient_id

    def test_no_event_when_rolled_back(self, make_visit, events, django_capture_on_commit_callbacks):
        visit = make_visit()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(InvalidAmount):
                PaymentLedger().record_payment(visit.pk, '0')

        assert callbacks == []
        assert events == []


class TestIdempotency:

    def test_same_key_returns_original_payment(self, make_visit, django_capture_on_commit_callbacks):
        visit = make_visit()
        ledger = PaymentLedger()
        first = ledger.record_payment(visit.pk, '200', idempotency_key='req-1')

        with django_capture_on_commit_callbacks() as callbacks:
            again = ledger.record_payment(visit.pk, '200', idempotency_key='req-1')

        assert again.pk == first.pk
        assert callbacks == []
        assert Payment.objects.count() == 1
        assert AccountVoucher.objects.count() == 1
        visit.refresh_from_db()
        assert visit.total_paid == Decimal('200.00')

    def test_same_key_with_other_amount_conflicts(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()
        ledger.record_payment(visit.pk, '200', idempotency_key='req-1')

        with pytest.raises(IdempotencyConflict):
            ledger.record_payment(visit.pk, '250', idempotency_key='req-1')

    def test_same_key_on_other_visit_conflicts(self, make_visit):
        ledger = PaymentLedger()
        ledger.record_payment(make_visit().pk, '200', idempotency_key='req-1')

        with pytest.raises(IdempotencyConflict):
            ledger.record_payment(make_visit().pk, '200', idempotency_key='req-1')

    def test_key_taken_by_concurrent_request_conflicts(self, make_visit, monkeypatch):
        ledger = PaymentLedger()
        ledger.record_payment(make_visit().pk, '200', idempotency_key='req-1')
        other = make_visit()
        monkeypatch.setattr(PaymentLedger, 'replay', lambda self, *args, **kwargs: None)

        with pytest.raises(IdempotencyConflict):
            ledger.record_payment(other.pk, '200', idempotency_key='req-1')

        other.refresh_from_db()
        assert other.total_paid == Decimal('0.00')
        assert Payment.objects.count() == 1


class TestSettleAndReverse:

    def test_settle_due_pays_exact_remainder(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()
        ledger.record_payment(visit.pk, '120')

        visit = Visit.objects.get(pk=visit.pk)
        payment = ledger.settle_due(visit)

        assert payment.amount == Decimal('380.00')
        assert visit.total_due == Decimal('0.00')
        assert visit.payment_status == PaymentStatus.PAID

    def test_settle_due_without_due_is_noop(self, make_visit):
        visit = make_visit(discount_type='percentage', discount_value=100)
        assert PaymentLedger().settle_due(visit) is None
        assert not Payment.objects.exists()

    def test_reverse_leaves_zero_balance_per_reference(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()
        payments = [
            ledger.record_payment(visit.pk, '200'),
            ledger.record_payment(visit.pk, '300'),
        ]

        reversals = ledger.reverse_visit_payments(Visit.objects.get(pk=visit.pk))

        assert [voucher.voucher_type for voucher in reversals] == [VoucherType.DEBIT] * 2
        assert not Payment.objects.exists()
        for payment in payments:
            assert ledger_balance(source_reference_id=payment.pk) == Decimal('0.00')
        assert 'OPD Income Reversal' in reversals[0].narration

    def test_payments_are_append_only(self, make_visit):
        visit = make_visit()
        payment = PaymentLedger().record_payment(visit.pk, '100')
        payment.amount = Decimal('1.00')

        with pytest.raises(InvariantViolation):
            payment.save()

    def test_visit_balance(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()
        ledger.record_payment(visit.pk, '100')

        balance = ledger.visit_balance(Visit.objects.get(pk=visit.pk))
        assert balance['total_paid'] == Decimal('100.00')
        assert balance['total_due'] == Decimal('400.00')
        assert balance['payment_status'] == PaymentStatus.PARTIAL


class TestPaymentMethods:

    def test_resolve_creates_known_method(self, db):
        method = resolve_payment_method('card')
        assert method.code == 'CARD'
        assert method.name == 'Credit/Debit Card'

    def test_resolve_accepts_instance(self, cash):
        assert resolve_payment_method(cash) is cash


class TestPaymentApi:

    def test_record_through_visit_route(self, api_client, make_visit, cash):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/payments/', {
            'amount': '200.00',
            'payment_method': 'CASH',
            'notes': 'first installment',
        }, format='json')

        assert response.status_code == 201
        assert response.data['payment']['amount'] == '200.00'
        assert response.data['visit']['total_due'] == '300.00'
        assert response.data['visit']['payment_status'] == 'partial'

    def test_record_through_payments_route(self, api_client, make_visit, user):
        visit = make_visit()
        response = api_client.post('/api/payments/', {
            'visit': visit.pk,
            'amount': '500.00',
        }, format='json')

        assert response.status_code == 201
        payment = Payment.objects.get()
        assert payment.received_by == user
        assert response.data['payment_number'] == payment.payment_number

    def test_invalid_amount_error_body(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/payments/', {'amount': '0'}, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'invalid_amount'

    def test_unknown_visit_error_body(self, api_client, db):
        response = api_client.post('/api/payments/', {'visit': 999, 'amount': '10'}, format='json')
        assert response.status_code == 404
        assert response.data['code'] == 'not_found'

    def test_payments_cannot_be_edited(self, api_client, make_visit):
        payment = PaymentLedger().record_payment(make_visit().pk, '100')
        response = api_client.patch(f'/api/payments/{payment.pk}/', {'amount': '1'}, format='json')
        assert response.status_code == 405

    def test_payment_methods_listing(self, api_client, cash):
        PaymentMethod.objects.create(code='CARD', name='Card', is_active=False)
        response = api_client.get('/api/payment-methods/active/')
        assert [method['code'] for method in response.data] == ['CASH']

    def test_locked_visit_returns_conflict(self, api_client, make_visit, monkeypatch):
        visit = make_visit()

        class LockedRows:
            def get(self, **kwargs):
                raise OperationalError('could not obtain lock on row in relation "patient_visits"')

        monkeypatch.setattr(VisitQuerySet, 'select_for_update', lambda self, **kwargs: LockedRows())
        response = api_client.post(f'/api/visits/{visit.pk}/payments/', {'amount': '100'}, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'concurrent_modification'
        assert not Payment.objects.exists()


class TestVisitLocking:

    def test_lock_error_becomes_concurrent_modification(self, make_visit, monkeypatch, settings):
        visit = make_visit()
        settings.CLINIC_BILLING = {'LOCK_NOWAIT': True}
        requested = {}

        class LockedRows:
            def get(self, **kwargs):
                raise OperationalError('could not obtain lock on row in relation "patient_visits"')

        def select_for_update(self, nowait=False, **kwargs):
            requested['nowait'] = nowait
            return LockedRows()

        monkeypatch.setattr(VisitQuerySet, 'select_for_update', select_for_update)

        with pytest.raises(ConcurrentModification):
            PaymentLedger().record_payment(visit.pk, '100')

        assert requested['nowait'] is True
        assert not Payment.objects.exists()
        assert not AccountVoucher.objects.exists()

    def test_waits_for_lock_by_default(self, make_visit, monkeypatch):
        visit = make_visit()
        requested = {}
        original = VisitQuerySet.select_for_update

        def select_for_update(self, nowait=False, **kwargs):
            requested['nowait'] = nowait
            return original(self, nowait=nowait, **kwargs)

        monkeypatch.setattr(VisitQuerySet, 'select_for_update', select_for_update)
        PaymentLedger().record_payment(visit.pk, '100')

        assert requested['nowait'] is False


class TestNumbering:

    def test_numbers_are_not_reused_after_delete(self, make_visit):
        ledger = PaymentLedger()
        first_visit = make_visit()
        first = ledger.record_payment(first_visit.pk, '100')
        services.delete_visit(first_visit.pk)

        second_visit = make_visit()
        second = ledger.record_payment(second_visit.pk, '50')

        assert second.payment_number != first.payment_number
        assert second_visit.visit_id != first_visit.visit_id
        vouchers = AccountVoucher.objects.filter(source_voucher_no=second.payment_number)
        assert [(v.voucher_type, v.amount) for v in vouchers] == [
            (VoucherType.CREDIT, Decimal('50.00'))
        ]

    def test_payment_total(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()
        ledger.record_payment(visit.pk, '100')
        ledger.record_payment(visit.pk, '25.50')

        assert visit.payments.total() == Decimal('125.50')
        assert Payment.objects.none().total() == Decimal('0.00')
