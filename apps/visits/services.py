# apps/visits/services.py
#
# Visit lifecycle operations. Every mutation runs in one transaction with the
# visit row locked, and publishes a single VisitUpdated event after commit.

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from core.constants import DateWindow, DiscountType
from core.conf import billing_setting
from core.exceptions import (
    ActiveVisitExists, InvalidAmount, NotFound, VisitAlreadyCompleted
)
from core.money import ZERO, to_money
from apps.billing.costs import estimate_for, normalize_discount_type
from apps.doctors.models import Doctor
from apps.patients.models import Patient
from apps.prescriptions.models import Prescription, VisionTest

from .events import DELETED, publish_visit_updated
from .models import Visit
from .status import VisitStatusMachine

logger = logging.getLogger(__name__)


def _actor(user):
    if user is not None and getattr(user, 'is_authenticated', False):
        return user
    return None


def _ledger():
    from apps.payments.services import PaymentLedger
    return PaymentLedger()


def get_visit(visit_id):
    try:
        return Visit.objects.select_related('patient', 'selected_doctor').get(pk=visit_id)
    except Visit.DoesNotExist:
        raise NotFound(f"Visit {visit_id} does not exist")


def _get_doctor(doctor_id):
    if not doctor_id:
        return None
    try:
        return Doctor.objects.get(pk=doctor_id)
    except Doctor.DoesNotExist:
        raise NotFound(f"Doctor {doctor_id} does not exist")


def register_visit(patient_id, doctor_id=None, discount_type=DiscountType.NONE,
                   discount_value=ZERO, initial_payment_amount=ZERO,
                   payment_method=None, chief_complaint='', is_followup=False,
                   service_line=None, user=None, idempotency_key=None):
    """
    Create a visit for a patient with costs from the shared calculator.

    Returns (visit, payment). payment is None when no initial amount is paid.
    A retry carrying the idempotency_key of an earlier registration returns
    that visit and payment unchanged.
    """
    user = _actor(user)
    initial_payment_amount = to_money(initial_payment_amount)

    with transaction.atomic():
        try:
            patient = Patient.objects.select_for_update().get(pk=patient_id)
        except Patient.DoesNotExist:
            raise NotFound(f"Patient {patient_id} does not exist")

        ledger = _ledger()
        if idempotency_key and initial_payment_amount > ZERO:
            existing = ledger.replay(idempotency_key, initial_payment_amount, patient=patient)
            if existing is not None:
                return existing.visit, existing

        active_visit = patient.visits.active().first()
        if active_visit is not None:
            raise ActiveVisitExists(
                f"Patient {patient.patient_id} already has an active visit "
                f"({active_visit.visit_id}). Please complete the current visit first."
            )

        doctor = _get_doctor(doctor_id)
        discount_type = normalize_discount_type(discount_type)
        discount_value = to_money(discount_value) if discount_type != DiscountType.NONE else ZERO

        visit = Visit(
            patient=patient,
            selected_doctor=doctor,
            is_followup=is_followup,
            chief_complaint=chief_complaint or '',
            discount_type=discount_type,
            discount_value=discount_value,
            created_by=user,
            updated_by=user,
        )
        if service_line:
            visit.service_line = service_line
        visit.apply_costs(estimate_for(doctor, discount_type, discount_value, is_followup))
        visit.total_due = visit.final_amount

        machine = VisitStatusMachine(visit)
        machine.refresh()
        machine.check_invariants()
        visit.save()

        payment = None
        if initial_payment_amount > ZERO:
            payment = ledger.apply_payment(
                visit, initial_payment_amount,
                method=payment_method,
                notes='Initial payment at registration',
                received_by=user,
                idempotency_key=idempotency_key,
            )

        publish_visit_updated(visit)

    logger.info(
        f"Visit {visit.visit_id} registered for patient {patient.patient_id}: "
        f"final {visit.final_amount}, paid {visit.total_paid}"
    )
    return visit, payment


def update_visit(visit_id, doctor_id=None, is_followup=None, discount_type=None,
                 discount_value=None, chief_complaint=None, user=None):
    """
    Change the doctor, follow-up flag, discount or complaint of an open visit.

    Arguments left as None keep their current value. Charges are recomputed
    with the shared calculator and totals are refreshed from the visit's
    payments. Payments themselves are never edited.
    """
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        if visit.is_completed:
            raise VisitAlreadyCompleted(
                f"Visit {visit.visit_id} is completed and can no longer be changed"
            )

        if doctor_id is not None:
            visit.selected_doctor = _get_doctor(doctor_id)
        if is_followup is not None:
            visit.is_followup = is_followup
        if discount_type is not None:
            visit.discount_type = normalize_discount_type(discount_type)
        if discount_value is not None:
            visit.discount_value = to_money(discount_value)
        if visit.discount_type == DiscountType.NONE:
            visit.discount_value = ZERO
        if chief_complaint is not None:
            visit.chief_complaint = chief_complaint

        visit.apply_costs(estimate_for(
            visit.selected_doctor, visit.discount_type, visit.discount_value, visit.is_followup
        ))
        if not billing_setting('ALLOW_OVERPAYMENT') and visit.final_amount < visit.total_paid:
            raise InvalidAmount(
                f"New charges ({visit.final_amount}) are below the amount already paid "
                f"({visit.total_paid}) for visit {visit.visit_id}"
            )

        visit.updated_by = _actor(user)
        _ledger().refresh_totals(visit)
        publish_visit_updated(visit)

    logger.info(
        f"Visit {visit.visit_id} updated: final {visit.final_amount}, "
        f"paid {visit.total_paid}, due {visit.total_due}"
    )
    return visit


def mark_vision_test_complete(visit_id, force=False, user=None):
    """Complete the vision test step. A no-op when it already is"""
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        changed = VisitStatusMachine(visit).mark_vision_test_complete(force=force)
        if changed:
            visit.updated_by = _actor(user)
            visit.save()
            publish_visit_updated(visit)

    if changed:
        logger.info(f"Vision test completed for visit {visit.visit_id}")
    return visit


def mark_prescription_complete(visit_id, force=False, user=None):
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        changed = VisitStatusMachine(visit).mark_prescription_complete(force=force)
        if changed:
            visit.updated_by = _actor(user)
            visit.save()
            publish_visit_updated(visit)

    if changed:
        logger.info(f"Prescription completed for visit {visit.visit_id}")
    return visit


def record_vision_test(visit_id, notes='', user=None):
    """Store a vision test for the visit and complete the vision test step"""
    user = _actor(user)
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        vision_test = VisionTest.objects.create(
            visit=visit,
            patient_id=visit.patient_id,
            performed_by=user,
            notes=notes or '',
        )
        VisitStatusMachine(visit).mark_vision_test_complete()
        visit.updated_by = user
        visit.save()
        publish_visit_updated(visit)

    logger.info(f"Vision test #{vision_test.pk} recorded for visit {visit.visit_id}")
    return vision_test


def record_prescription(visit_id, notes='', user=None):
    """Store a prescription for the visit and complete the prescription step"""
    user = _actor(user)
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        prescription = Prescription.objects.create(
            visit=visit,
            patient_id=visit.patient_id,
            doctor_id=visit.selected_doctor_id,
            prescribed_by=user,
            notes=notes or '',
        )
        VisitStatusMachine(visit).mark_prescription_complete()
        visit.updated_by = user
        visit.save()
        publish_visit_updated(visit)

    logger.info(f"Prescription #{prescription.pk} recorded for visit {visit.visit_id}")
    return prescription


def complete_visit(visit_id, completion_type, notes=None, skip_vision_test=False,
                   skip_prescription=False, user=None):
    """Manually complete a visit (vision_only, prescription_only, both, simple_complete)"""
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        machine = VisitStatusMachine(visit)
        machine.complete(
            completion_type,
            notes=notes,
            skip_vision_test=skip_vision_test,
            skip_prescription=skip_prescription,
        )
        machine.check_invariants()
        visit.updated_by = _actor(user)
        visit.save()
        publish_visit_updated(visit)

    logger.info(
        f"Visit {visit.visit_id} completed manually ({completion_type}), "
        f"status {visit.overall_status}"
    )
    return visit


def delete_visit(visit_id, user=None):
    """
    Delete a visit after reversing its payments.

    Returns the reversal vouchers. The VisitUpdated event describes the
    visit as it was before deletion.
    """
    with transaction.atomic():
        visit = Visit.objects.lock(visit_id)
        visit_label = visit.visit_id
        publish_visit_updated(visit, event_type=DELETED)

        reversals = _ledger().reverse_visit_payments(visit, created_by=_actor(user))
        visit.delete()

    logger.info(f"Visit {visit_label} deleted, {len(reversals)} payment(s) reversed")
    return reversals


def delete_patient(patient_id, user=None):
    """Delete a patient and every visit, reversing all their payments"""
    reversals = []
    with transaction.atomic():
        try:
            patient = Patient.objects.select_for_update().get(pk=patient_id)
        except Patient.DoesNotExist:
            raise NotFound(f"Patient {patient_id} does not exist")

        for visit_pk in list(patient.visits.values_list('pk', flat=True)):
            reversals.extend(delete_visit(visit_pk, user=user))

        patient_label = patient.patient_id
        patient.delete()

    logger.info(f"Patient {patient_label} deleted with {len(reversals)} payment reversal(s)")
    return reversals


def date_window_range(window, today=None):
    """(start, end) dates, both inclusive, for a DateWindow"""
    today = today or timezone.localdate()
    week_start = today - timedelta(days=today.weekday())

    if window == DateWindow.TODAY:
        return today, today
    if window == DateWindow.YESTERDAY:
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if window == DateWindow.THIS_WEEK:
        return week_start, week_start + timedelta(days=6)
    if window == DateWindow.LAST_WEEK:
        last_week_start = week_start - timedelta(days=7)
        return last_week_start, last_week_start + timedelta(days=6)
    raise ValueError(f"Unknown date window: {window}")


def pending_visits(overall_status=None, payment_status=None, date_filter=None):
    """Visits that are not completed yet, oldest first"""
    visits = Visit.objects.active().select_related('patient', 'selected_doctor')

    if overall_status:
        visits = visits.filter(overall_status=overall_status)
    if payment_status:
        visits = visits.filter(payment_status=payment_status)
    if date_filter:
        start, end = date_window_range(date_filter)
        visits = visits.filter(created_at__date__gte=start, created_at__date__lte=end)

    return visits.order_by('created_at')


def visit_statistics():
    active = Visit.objects.active()
    return {
        'total_pending': active.count(),
        'ready_for_vision_test': active.ready_for_vision_test().count(),
        'ready_for_prescription': active.ready_for_prescription().count(),
        'payment_pending': active.payment_pending().count(),
    }
