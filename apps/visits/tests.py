from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, OperationalError
from django.utils import timezone

from core.constants import (
    CompletionType, DateWindow, OverallStatus, PaymentStatus, StepStatus, VoucherType
)
from core.exceptions import (
    ActiveVisitExists, IdempotencyConflict, InvalidAmount, InvalidCompletionType,
    InvariantViolation, MissingEvidence, NotFound, VisitAlreadyCompleted
)
from apps.doctors.models import Doctor
from apps.ledger.models import AccountVoucher
from apps.ledger.services import ledger_balance
from apps.patients.models import Patient
from apps.payments.models import Payment
from apps.payments.services import PaymentLedger
from apps.prescriptions.models import Prescription, VisionTest
from apps.visits import services
from apps.visits.bulk import bulk_complete_visits, selectable_visit_ids
from apps.visits.models import Visit, VisitQuerySet
from apps.visits.status import (
    VisitStatusMachine, derive_overall_status, derive_payment_status
)


# ===========================================
# STATUS DERIVATION
# ===========================================
class TestDerivations:

    @pytest.mark.parametrize('total_paid, final_amount, expected', [
        ('0', '500', PaymentStatus.PENDING),
        ('200', '500', PaymentStatus.PARTIAL),
        ('500', '500', PaymentStatus.PAID),
        ('600', '500', PaymentStatus.PAID),
        ('0', '0', PaymentStatus.PENDING),
    ])
    def test_payment_status(self, total_paid, final_amount, expected):
        assert derive_payment_status(total_paid, final_amount) == expected

    def test_overall_completed_needs_everything(self):
        assert derive_overall_status(
            PaymentStatus.PAID, '500', StepStatus.COMPLETED, StepStatus.COMPLETED
        ) == OverallStatus.COMPLETED
        assert derive_overall_status(
            PaymentStatus.PARTIAL, '500', StepStatus.COMPLETED, StepStatus.COMPLETED
        ) != OverallStatus.COMPLETED

    def test_free_visit_counts_as_paid(self):
        assert derive_overall_status(
            PaymentStatus.PENDING, '0', StepStatus.PENDING, StepStatus.PENDING
        ) == OverallStatus.VISION_TEST

    def test_waived_payment_counts_as_paid(self):
        assert derive_overall_status(
            PaymentStatus.PENDING, '500', StepStatus.COMPLETED, StepStatus.COMPLETED,
            payment_waived=True
        ) == OverallStatus.COMPLETED

    def test_prescription_stage_after_vision_test(self):
        assert derive_overall_status(
            PaymentStatus.PAID, '500', StepStatus.COMPLETED, StepStatus.PENDING
        ) == OverallStatus.PRESCRIPTION

    def test_unpaid_visit_is_pending(self):
        assert derive_overall_status(
            PaymentStatus.PARTIAL, '500', StepStatus.PENDING, StepStatus.PENDING
        ) == OverallStatus.PENDING


# ===========================================
# REGISTRATION
# ===========================================
@pytest.mark.django_db
class TestRegisterVisit:

    def test_scenario_a_no_discount(self, make_visit):
        visit = make_visit()
        assert visit.visit_id.startswith('PV-')
        assert visit.total_amount == Decimal('500.00')
        assert visit.discount_amount == Decimal('0.00')
        assert visit.final_amount == Decimal('500.00')
        assert visit.total_due == Decimal('500.00')
        assert visit.payment_status == PaymentStatus.PENDING
        assert visit.overall_status == OverallStatus.PENDING

    def test_scenario_b_percentage_clamped(self, make_visit, doctor):
        doctor.consultation_fee = Decimal('1000.00')
        doctor.save()
        visit = make_visit(discount_type='percentage', discount_value=120)

        assert visit.discount_amount == Decimal('1000.00')
        assert visit.final_amount == Decimal('0.00')
        assert visit.overall_status == OverallStatus.VISION_TEST

    def test_scenario_c_amount_clamped(self, make_visit, doctor):
        doctor.consultation_fee = Decimal('800.00')
        doctor.save()
        visit = make_visit(discount_type='amount', discount_value=1000)

        assert visit.discount_amount == Decimal('800.00')
        assert visit.final_amount == Decimal('0.00')

    def test_follow_up_fee(self, make_visit):
        visit = make_visit(is_followup=True)
        assert visit.doctor_fee == Decimal('300.00')

    def test_without_doctor(self, make_visit):
        visit = make_visit(doctor_id=None)
        assert visit.selected_doctor is None
        assert visit.final_amount == Decimal('0.00')

    def test_initial_payment(self, patient, doctor, cash):
        visit, payment = services.register_visit(
            patient.pk, doctor_id=doctor.pk, initial_payment_amount='200'
        )

        assert payment.amount == Decimal('200.00')
        assert visit.total_paid == Decimal('200.00')
        assert visit.total_due == Decimal('300.00')
        assert visit.payment_status == PaymentStatus.PARTIAL
        assert AccountVoucher.objects.get().source_reference_id == payment.pk

    def test_full_initial_payment_moves_to_vision_test(self, patient, doctor):
        visit, _ = services.register_visit(
            patient.pk, doctor_id=doctor.pk, initial_payment_amount='500'
        )
        assert visit.payment_status == PaymentStatus.PAID
        assert visit.overall_status == OverallStatus.VISION_TEST

    def test_one_active_visit_per_patient(self, make_visit, patient):
        make_visit(patient=patient)
        with pytest.raises(ActiveVisitExists):
            make_visit(patient=patient)
        assert Visit.objects.filter(patient=patient).count() == 1

    def test_completed_visit_allows_a_new_one(self, make_visit, patient):
        visit = make_visit(patient=patient)
        services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE)

        assert make_visit(patient=patient).pk != visit.pk

    def test_unknown_patient_and_doctor(self, patient, db):
        with pytest.raises(NotFound):
            services.register_visit(999)
        with pytest.raises(NotFound):
            services.register_visit(patient.pk, doctor_id=999)

    def test_emits_one_event(self, patient, doctor, events, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            services.register_visit(patient.pk, doctor_id=doctor.pk, initial_payment_amount='100')

        assert len(events) == 1
        assert events[0]['doctor_id'] == doctor.pk
        assert events[0]['channel'] == 'visits'
        assert events[0]['visit']['doctor']['id'] == doctor.pk

    def test_retried_registration_returns_first_visit(self, patient, doctor):
        visit, payment = services.register_visit(
            patient.pk, doctor_id=doctor.pk, initial_payment_amount='200',
            idempotency_key='reg-1'
        )
        again, again_payment = services.register_visit(
            patient.pk, doctor_id=doctor.pk, initial_payment_amount='200',
            idempotency_key='reg-1'
        )

        assert again.pk == visit.pk
        assert again_payment.pk == payment.pk
        assert Visit.objects.count() == 1
        assert AccountVoucher.objects.count() == 1

    def test_registration_key_used_elsewhere_conflicts(self, make_visit, make_patient, doctor):
        PaymentLedger().record_payment(make_visit().pk, '200', idempotency_key='req-1')
        newcomer = make_patient()

        with pytest.raises(IdempotencyConflict):
            services.register_visit(
                newcomer.pk, doctor_id=doctor.pk, initial_payment_amount='200',
                idempotency_key='req-1'
            )

        assert not Visit.objects.filter(patient=newcomer).exists()
        assert Payment.objects.count() == 1


# ===========================================
# STATUS MACHINE
# ===========================================
@pytest.mark.django_db
class TestClinicalSteps:

    def test_mark_vision_test_requires_evidence(self, make_visit):
        visit = make_visit()
        with pytest.raises(MissingEvidence):
            services.mark_vision_test_complete(visit.pk)

        visit.refresh_from_db()
        assert visit.vision_test_status == StepStatus.PENDING

    def test_mark_vision_test_is_idempotent(self, make_visit, django_capture_on_commit_callbacks):
        visit = make_visit()
        first = services.mark_vision_test_complete(visit.pk, force=True)
        completed_at = first.vision_test_completed_at

        with django_capture_on_commit_callbacks() as callbacks:
            second = services.mark_vision_test_complete(visit.pk, force=True)

        assert callbacks == []
        assert second.vision_test_status == StepStatus.COMPLETED
        assert second.vision_test_completed_at == completed_at
        assert second.overall_status == first.overall_status

    def test_record_vision_test_completes_step(self, make_visit, user):
        visit = make_visit()
        vision_test = services.record_vision_test(visit.pk, notes='6/6 both eyes', user=user)

        visit.refresh_from_db()
        assert vision_test.visit_id == visit.pk
        assert vision_test.performed_by == user
        assert visit.vision_test_status == StepStatus.COMPLETED
        assert visit.overall_status == OverallStatus.PRESCRIPTION

    def test_full_flow_completes_visit(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '500')
        services.record_vision_test(visit.pk)
        prescription = services.record_prescription(visit.pk, notes='-1.25 OD')

        visit.refresh_from_db()
        assert prescription.doctor_id == visit.selected_doctor_id
        assert visit.prescription_status == StepStatus.COMPLETED
        assert visit.overall_status == OverallStatus.COMPLETED

    def test_unpaid_visit_is_not_completed_by_clinical_steps(self, make_visit):
        visit = make_visit()
        services.record_vision_test(visit.pk)
        services.record_prescription(visit.pk)

        visit.refresh_from_db()
        assert visit.overall_status != OverallStatus.COMPLETED

        PaymentLedger().record_payment(visit.pk, '500')
        visit.refresh_from_db()
        assert visit.overall_status == OverallStatus.COMPLETED

    def test_invariant_check_catches_drift(self, make_visit):
        visit = make_visit()
        visit.total_due = Decimal('1.00')

        with pytest.raises(InvariantViolation):
            VisitStatusMachine(visit).check_invariants()


@pytest.mark.django_db
class TestCompleteVisit:

    def test_scenario_e_simple_complete_without_evidence(self, make_visit):
        visit = services.complete_visit(make_visit().pk, CompletionType.SIMPLE_COMPLETE)

        assert visit.vision_test_status == StepStatus.COMPLETED
        assert visit.prescription_status == StepStatus.COMPLETED
        assert visit.overall_status == OverallStatus.COMPLETED
        assert visit.payment_waived is True
        assert visit.payment_status == PaymentStatus.PENDING
        assert visit.visit_notes == 'Visit completed manually - simple consultation'

    def test_simple_complete_on_paid_visit_does_not_waive(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '500')

        visit = services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE, notes='walk-in')
        assert visit.payment_waived is False
        assert visit.visit_notes == 'Simple Visit Completion: walk-in'

    def test_vision_only_with_skip_prescription(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '500')
        VisionTest.objects.create(visit=visit, patient=visit.patient)

        visit = services.complete_visit(
            visit.pk, CompletionType.VISION_ONLY, notes='no glasses needed',
            skip_prescription=True
        )
        assert visit.overall_status == OverallStatus.COMPLETED
        assert visit.visit_notes == 'Manual Vision Test Completion: no glasses needed'

    def test_vision_only_requires_vision_test(self, make_visit):
        visit = make_visit()
        with pytest.raises(MissingEvidence):
            services.complete_visit(visit.pk, CompletionType.VISION_ONLY)

        visit.refresh_from_db()
        assert visit.visit_notes == ''

    def test_prescription_only_skipping_vision_test(self, make_visit):
        visit = make_visit()
        Prescription.objects.create(visit=visit, patient=visit.patient)

        visit = services.complete_visit(
            visit.pk, CompletionType.PRESCRIPTION_ONLY, skip_vision_test=True
        )
        assert visit.vision_test_status == StepStatus.COMPLETED
        assert visit.prescription_status == StepStatus.COMPLETED
        assert visit.visit_notes == 'Prescription completed manually by receptionist'

    def test_both_with_evidence(self, make_visit):
        visit = make_visit(discount_type='percentage', discount_value=100)
        VisionTest.objects.create(visit=visit, patient=visit.patient)
        Prescription.objects.create(visit=visit, patient=visit.patient)

        visit = services.complete_visit(visit.pk, CompletionType.BOTH)
        assert visit.overall_status == OverallStatus.COMPLETED
        assert visit.visit_notes == 'Vision test and prescription completed manually by receptionist'

    def test_notes_are_appended(self, make_visit):
        visit = make_visit()
        Visit.objects.filter(pk=visit.pk).update(visit_notes='Referred by Dr. Alam')

        visit = services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE, notes='done')
        assert visit.visit_notes == 'Referred by Dr. Alam\nSimple Visit Completion: done'

    def test_unknown_completion_type(self, make_visit):
        with pytest.raises(InvalidCompletionType):
            services.complete_visit(make_visit().pk, 'reopen')

    def test_completed_visit_cannot_be_completed_again(self, make_visit):
        visit = make_visit()
        services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE)

        with pytest.raises(VisitAlreadyCompleted):
            services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE)

    def test_unknown_visit(self, db):
        with pytest.raises(NotFound):
            services.complete_visit(999, CompletionType.BOTH)


# ===========================================
# UPDATE
# ===========================================
@pytest.mark.django_db
class TestUpdateVisit:

    def test_discount_change_keeps_payments(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '150')

        visit = services.update_visit(visit.pk, discount_type='amount', discount_value='100')

        assert visit.discount_amount == Decimal('100.00')
        assert visit.final_amount == Decimal('400.00')
        assert visit.total_paid == Decimal('150.00')
        assert visit.total_due == Decimal('250.00')
        assert visit.payment_status == PaymentStatus.PARTIAL
        assert Payment.objects.count() == 1
        assert AccountVoucher.objects.count() == 1

    def test_follow_up_uses_follow_up_fee(self, make_visit):
        visit = services.update_visit(make_visit().pk, is_followup=True)

        assert visit.is_followup is True
        assert visit.doctor_fee == Decimal('300.00')
        assert visit.final_amount == Decimal('300.00')

    def test_new_doctor_reopens_payment(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '500')
        surgeon = Doctor.objects.create(name='Hossain', consultation_fee=Decimal('800.00'))

        visit = services.update_visit(visit.pk, doctor_id=surgeon.pk, chief_complaint='Cataract review')

        assert visit.selected_doctor == surgeon
        assert visit.chief_complaint == 'Cataract review'
        assert visit.total_due == Decimal('300.00')
        assert visit.payment_status == PaymentStatus.PARTIAL
        assert visit.overall_status == OverallStatus.PENDING

    def test_removing_discount_clears_value(self, make_visit):
        visit = make_visit(discount_type='percentage', discount_value=10)

        visit = services.update_visit(visit.pk, discount_type='none')

        assert visit.discount_value == Decimal('0.00')
        assert visit.final_amount == Decimal('500.00')

    def test_completed_visit_cannot_change(self, make_visit):
        visit = make_visit()
        services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE)

        with pytest.raises(VisitAlreadyCompleted):
            services.update_visit(visit.pk, discount_type='amount', discount_value='50')

    def test_charges_below_paid_rejected_without_overpayment(self, make_visit, settings):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '500')
        settings.CLINIC_BILLING = {'ALLOW_OVERPAYMENT': False}

        with pytest.raises(InvalidAmount):
            services.update_visit(visit.pk, discount_type='amount', discount_value='100')

        visit.refresh_from_db()
        assert visit.final_amount == Decimal('500.00')

    def test_emits_one_event(self, make_visit, events, django_capture_on_commit_callbacks):
        visit = make_visit()
        with django_capture_on_commit_callbacks(execute=True):
            services.update_visit(visit.pk, is_followup=True)

        assert len(events) == 1
        assert events[0]['visit']['final_amount'] == '300.00'

    def test_unknown_visit(self, db):
        with pytest.raises(NotFound):
            services.update_visit(999, is_followup=True)


# ===========================================
# DELETION
# ===========================================
@pytest.mark.django_db
class TestDeleteVisit:

    def test_reversal_leaves_zero_balance(self, make_visit):
        visit = make_visit()
        ledger = PaymentLedger()
        payments = [ledger.record_payment(visit.pk, '200'), ledger.record_payment(visit.pk, '300')]
        services.record_vision_test(visit.pk)

        reversals = services.delete_visit(visit.pk)

        assert len(reversals) == 2
        assert all(voucher.voucher_type == VoucherType.DEBIT for voucher in reversals)
        assert not Visit.objects.filter(pk=visit.pk).exists()
        assert not Payment.objects.exists()
        assert not VisionTest.objects.exists()
        assert AccountVoucher.objects.count() == 4
        for payment in payments:
            assert ledger_balance(source_reference_id=payment.pk) == Decimal('0.00')

    def test_event_describes_deleted_visit(self, make_visit, events, django_capture_on_commit_callbacks):
        visit = make_visit()
        with django_capture_on_commit_callbacks(execute=True):
            services.delete_visit(visit.pk)

        assert len(events) == 1
        assert events[0]['type'] == 'deleted'
        assert events[0]['visit']['visit_id'] == visit.visit_id

    def test_failed_reversal_keeps_visit(self, make_visit, monkeypatch,
                                         events, django_capture_on_commit_callbacks):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '200')

        def broken(self, visit, created_by=None):
            raise InvariantViolation('cannot reverse')

        monkeypatch.setattr(PaymentLedger, 'reverse_visit_payments', broken)
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(InvariantViolation):
                services.delete_visit(visit.pk)

        assert Visit.objects.filter(pk=visit.pk).exists()
        assert Payment.objects.count() == 1
        assert events == []

    def test_delete_patient_reverses_every_visit(self, make_visit, patient):
        first = make_visit(patient=patient)
        PaymentLedger().record_payment(first.pk, '500')
        services.complete_visit(first.pk, CompletionType.SIMPLE_COMPLETE)
        second = make_visit(patient=patient)
        PaymentLedger().record_payment(second.pk, '100')

        reversals = services.delete_patient(patient.pk)

        assert len(reversals) == 2
        assert not Patient.objects.filter(pk=patient.pk).exists()
        assert not Visit.objects.exists()
        assert ledger_balance() == Decimal('0.00')


# ===========================================
# BULK COMPLETION
# ===========================================
@pytest.mark.django_db
class TestBulkCompletion:

    def test_scenario_f_completed_visit_is_skipped(self, make_visit):
        done = make_visit()
        services.complete_visit(done.pk, CompletionType.SIMPLE_COMPLETE)
        pending = make_visit()

        report = bulk_complete_visits([done.pk, pending.pk], CompletionType.SIMPLE_COMPLETE)

        assert report.skipped == [done.pk]
        assert report.succeeded == [done.pk, pending.pk]
        assert report.failed == []
        pending.refresh_from_db()
        assert pending.overall_status == OverallStatus.COMPLETED
        assert pending.visit_notes == 'Bulk completion: Bulk completion by receptionist'

    def test_failures_do_not_abort_batch(self, make_visit):
        visit = make_visit()
        report = bulk_complete_visits([999, visit.pk], CompletionType.SIMPLE_COMPLETE, bulk_notes='eod')

        assert report.succeeded == [visit.pk]
        assert report.failed == [{'id': 999, 'reason': 'Visit 999 does not exist', 'code': 'not_found'}]
        visit.refresh_from_db()
        assert visit.visit_notes == 'Bulk completion: eod'

    def test_settle_due_records_payment(self, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '150')

        report = bulk_complete_visits([visit.pk], CompletionType.BOTH, settle_due=True)

        assert report.succeeded == [visit.pk]
        visit.refresh_from_db()
        assert visit.total_paid == Decimal('500.00')
        assert visit.payment_status == PaymentStatus.PAID
        assert visit.payment_waived is False
        assert visit.overall_status == OverallStatus.COMPLETED
        settlement = Payment.objects.order_by('-pk').first()
        assert settlement.amount == Decimal('350.00')
        assert AccountVoucher.objects.filter(source_reference_id=settlement.pk).exists()

    def test_one_event_per_completed_visit(self, make_visit, events, django_capture_on_commit_callbacks):
        visits = [make_visit(), make_visit()]
        with django_capture_on_commit_callbacks(execute=True):
            bulk_complete_visits([v.pk for v in visits], CompletionType.SIMPLE_COMPLETE)

        assert sorted(event['visit']['id'] for event in events) == sorted(v.pk for v in visits)

    def test_unknown_completion_type(self, make_visit):
        with pytest.raises(InvalidCompletionType):
            bulk_complete_visits([make_visit().pk], 'archive')

    def test_integrity_error_reported_as_conflict(self, make_visit, monkeypatch):
        first, second = make_visit(), make_visit()
        original = VisitStatusMachine.complete

        def colliding(self, *args, **kwargs):
            if self.visit.pk == first.pk:
                raise IntegrityError('UNIQUE constraint failed: account_vouchers.voucher_no')
            return original(self, *args, **kwargs)

        monkeypatch.setattr(VisitStatusMachine, 'complete', colliding)
        report = bulk_complete_visits([first.pk, second.pk], CompletionType.SIMPLE_COMPLETE)

        assert report.succeeded == [second.pk]
        assert [failure['code'] for failure in report.failed] == ['concurrent_modification']
        first.refresh_from_db()
        assert first.overall_status != OverallStatus.COMPLETED

    def test_locked_visit_is_reported(self, make_visit, monkeypatch):
        visit = make_visit()

        class LockedRows:
            def get(self, **kwargs):
                raise OperationalError('could not obtain lock')

        monkeypatch.setattr(VisitQuerySet, 'select_for_update', lambda self, **kwargs: LockedRows())
        report = bulk_complete_visits([visit.pk], CompletionType.SIMPLE_COMPLETE)

        assert report.succeeded == []
        assert report.failed[0]['code'] == 'concurrent_modification'

    def test_selectable_visit_ids(self, make_visit):
        done = make_visit()
        services.complete_visit(done.pk, CompletionType.SIMPLE_COMPLETE)
        pending = make_visit()

        assert selectable_visit_ids([done.pk, pending.pk, 999]) == [pending.pk]


# ===========================================
# PENDING VISITS
# ===========================================
@pytest.mark.django_db
class TestPendingVisits:

    def test_filters_and_statistics(self, make_visit):
        paid = make_visit()
        PaymentLedger().record_payment(paid.pk, '500')
        unpaid = make_visit()
        done = make_visit()
        services.complete_visit(done.pk, CompletionType.SIMPLE_COMPLETE)

        assert list(services.pending_visits()) == [paid, unpaid]
        assert list(services.pending_visits(overall_status=OverallStatus.VISION_TEST)) == [paid]
        assert list(services.pending_visits(payment_status=PaymentStatus.PENDING)) == [unpaid]
        assert services.visit_statistics() == {
            'total_pending': 2,
            'ready_for_vision_test': 1,
            'ready_for_prescription': 0,
            'payment_pending': 1,
        }

    def test_date_windows(self, make_visit):
        today_visit = make_visit()
        old_visit = make_visit()
        Visit.objects.filter(pk=old_visit.pk).update(created_at=timezone.now() - timedelta(days=1))

        assert list(services.pending_visits(date_filter=DateWindow.TODAY)) == [today_visit]
        assert list(services.pending_visits(date_filter=DateWindow.YESTERDAY)) == [old_visit]

    def test_week_ranges(self):
        wednesday = date(2024, 5, 15)
        assert services.date_window_range(DateWindow.THIS_WEEK, wednesday) == (
            date(2024, 5, 13), date(2024, 5, 19)
        )
        assert services.date_window_range(DateWindow.LAST_WEEK, wednesday) == (
            date(2024, 5, 6), date(2024, 5, 12)
        )


# ===========================================
# API
# ===========================================
@pytest.mark.django_db
class TestVisitApi:

    def test_register(self, api_client, patient, doctor, cash):
        response = api_client.post('/api/visits/', {
            'patient_id': patient.pk,
            'doctor_id': doctor.pk,
            'discount_type': 'amount',
            'discount_value': '100',
            'initial_payment_amount': '150',
            'payment_method': 'CASH',
            'chief_complaint': 'Blurred vision',
        }, format='json')

        assert response.status_code == 201
        assert response.data['visit']['final_amount'] == '400.00'
        assert response.data['visit']['total_due'] == '250.00'
        assert response.data['payment']['amount'] == '150.00'

    def test_register_twice_conflicts(self, api_client, patient, doctor):
        payload = {'patient_id': patient.pk, 'doctor_id': doctor.pk}
        api_client.post('/api/visits/', payload, format='json')
        response = api_client.post('/api/visits/', payload, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'active_visit_exists'

    def test_update_recomputes_charges(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.patch(f'/api/visits/{visit.pk}/', {
            'discount_type': 'percentage',
            'discount_value': '10',
            'final_amount': '1',
        }, format='json')

        assert response.status_code == 200
        assert response.data['visit']['discount_amount'] == '50.00'
        assert response.data['visit']['final_amount'] == '450.00'

    def test_update_completed_visit_conflicts(self, api_client, make_visit):
        visit = make_visit()
        services.complete_visit(visit.pk, CompletionType.SIMPLE_COMPLETE)
        response = api_client.patch(f'/api/visits/{visit.pk}/', {'is_followup': True}, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'visit_already_completed'

    def test_charges_cannot_be_replaced(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.put(f'/api/visits/{visit.pk}/', {'final_amount': '1'}, format='json')
        assert response.status_code == 405

    def test_register_reused_key_conflicts(self, api_client, make_visit, make_patient, doctor):
        PaymentLedger().record_payment(make_visit().pk, '150', idempotency_key='req-9')
        response = api_client.post('/api/visits/', {
            'patient_id': make_patient().pk,
            'doctor_id': doctor.pk,
            'initial_payment_amount': '150',
            'idempotency_key': 'req-9',
        }, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'idempotency_conflict'

    def test_complete(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/complete/', {
            'completion_type': 'simple_complete',
            'notes': 'Checked by doctor',
        }, format='json')

        assert response.status_code == 200
        assert response.data['visit']['overall_status'] == 'completed'

    def test_complete_missing_evidence(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/complete/', {
            'completion_type': 'both',
        }, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'missing_evidence'

    def test_complete_rejects_unknown_type(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/complete/', {
            'completion_type': 'reopen',
        }, format='json')
        assert response.status_code == 400

    def test_mark_steps(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/mark_vision_test/', {'force': True}, format='json')
        assert response.data['visit']['vision_test_status'] == 'completed'

        response = api_client.post(f'/api/visits/{visit.pk}/mark_prescription/', {}, format='json')
        assert response.status_code == 409

    def test_record_clinical_records(self, api_client, make_visit):
        visit = make_visit()
        response = api_client.post(f'/api/visits/{visit.pk}/vision-tests/', {'notes': 'IOP normal'}, format='json')
        assert response.status_code == 201
        assert response.data['visit']['vision_test_status'] == 'completed'

        response = api_client.post(f'/api/visits/{visit.pk}/prescriptions/', {}, format='json')
        assert response.status_code == 201
        assert response.data['visit']['prescription_status'] == 'completed'

    def test_bulk_complete(self, api_client, make_visit):
        visits = [make_visit(), make_visit()]
        response = api_client.post('/api/visits/bulk-complete/', {
            'visit_ids': [v.pk for v in visits] + [999],
            'completion_type': 'simple_complete',
        }, format='json')

        assert response.status_code == 200
        assert response.data['succeeded'] == [v.pk for v in visits]
        assert response.data['failed'][0]['id'] == 999
        assert response.data['message'] == '2 visits completed successfully'

    def test_pending(self, api_client, make_visit):
        make_visit()
        response = api_client.get('/api/visits/pending/', {'date_filter': 'today'})

        assert response.status_code == 200
        assert response.data['count'] == 1
        assert response.data['statistics']['total_pending'] == 1

    def test_pending_rejects_unknown_window(self, api_client, db):
        response = api_client.get('/api/visits/pending/', {'date_filter': 'last_year'})
        assert response.status_code == 400

    def test_list_filters(self, api_client, make_visit):
        make_visit()
        done = make_visit()
        services.complete_visit(done.pk, CompletionType.SIMPLE_COMPLETE)

        response = api_client.get('/api/visits/', {'overall_status': 'completed'})
        assert [row['id'] for row in response.data['results']] == [done.pk]

    def test_delete_requires_staff(self, api_client, make_visit, user):
        visit = make_visit()
        user.is_staff = False
        user.save()

        response = api_client.delete(f'/api/visits/{visit.pk}/')
        assert response.status_code == 403

    def test_delete(self, api_client, make_visit):
        visit = make_visit()
        PaymentLedger().record_payment(visit.pk, '100')

        response = api_client.delete(f'/api/visits/{visit.pk}/')
        assert response.status_code == 200
        assert len(response.data['reversal_vouchers']) == 1
        assert not Visit.objects.filter(pk=visit.pk).exists()
