# apps/visits/status.py
"""
Visit status machine.

payment_status and overall_status are never assigned directly: they are
derived from money and from the two clinical step statuses every time the
machine refreshes a visit. The machine only mutates the in-memory instance;
callers save it inside their transaction.
"""

import logging

from django.utils import timezone

from core.constants import (
    CompletionType, OverallStatus, PaymentStatus, StepStatus
)
from core.exceptions import (
    InvalidCompletionType, InvariantViolation, MissingEvidence,
    VisitAlreadyCompleted
)
from core.money import ZERO, to_money

logger = logging.getLogger(__name__)


COMPLETION_NOTES = {
    CompletionType.VISION_ONLY: (
        'Manual Vision Test Completion: ',
        'Vision test completed manually by receptionist',
    ),
    CompletionType.PRESCRIPTION_ONLY: (
        'Manual Prescription Completion: ',
        'Prescription completed manually by receptionist',
    ),
    CompletionType.BOTH: (
        'Manual Complete Visit: ',
        'Vision test and prescription completed manually by receptionist',
    ),
    CompletionType.SIMPLE_COMPLETE: (
        'Simple Visit Completion: ',
        'Visit completed manually - simple consultation',
    ),
}


def derive_payment_status(total_paid, final_amount):
    total_paid = to_money(total_paid)
    final_amount = to_money(final_amount)
    total_due = max(ZERO, final_amount - total_paid)

    if total_due == ZERO and total_paid > ZERO:
        return PaymentStatus.PAID
    if ZERO < total_paid < final_amount:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def is_payment_cleared(payment_status, final_amount, payment_waived=False):
    """Nothing is left to collect, or collection was explicitly skipped"""
    return (
        payment_status == PaymentStatus.PAID
        or to_money(final_amount) == ZERO
        or payment_waived
    )


def derive_overall_status(payment_status, final_amount, vision_test_status,
                          prescription_status, payment_waived=False):
    payment_cleared = is_payment_cleared(payment_status, final_amount, payment_waived)
    vision_done = vision_test_status == StepStatus.COMPLETED
    prescription_done = prescription_status == StepStatus.COMPLETED

    if payment_cleared and vision_done and prescription_done:
        return OverallStatus.COMPLETED
    if vision_done and not prescription_done:
        return OverallStatus.PRESCRIPTION
    if payment_cleared and not vision_done:
        return OverallStatus.VISION_TEST
    return OverallStatus.PENDING


class VisitStatusMachine:
    """Transitions for a single visit"""

    def __init__(self, visit, now=None):
        self.visit = visit
        self.now = now or timezone.now()

    def refresh(self):
        visit = self.visit
        visit.payment_status = derive_payment_status(visit.total_paid, visit.final_amount)
        if visit.payment_status == PaymentStatus.PAID and not visit.payment_completed_at:
            visit.payment_completed_at = self.now

        visit.overall_status = derive_overall_status(
            payment_status=visit.payment_status,
            final_amount=visit.final_amount,
            vision_test_status=visit.vision_test_status,
            prescription_status=visit.prescription_status,
            payment_waived=visit.payment_waived,
        )
        return visit

    def mark_vision_test_complete(self, force=False):
        """
        Complete the vision test step. Returns False when it already was.

        Without force a VisionTest record must exist for the visit.
        """
        visit = self.visit
        if visit.vision_test_status == StepStatus.COMPLETED:
            return False
        if not force and not visit.has_vision_test:
            raise MissingEvidence(f"Visit {visit.visit_id} has no vision test recorded")

        visit.vision_test_status = StepStatus.COMPLETED
        visit.vision_test_completed_at = self.now
        self.refresh()
        return True

    def mark_prescription_complete(self, force=False):
        visit = self.visit
        if visit.prescription_status == StepStatus.COMPLETED:
            return False
        if not force and not visit.has_prescription:
            raise MissingEvidence(f"Visit {visit.visit_id} has no prescription recorded")

        visit.prescription_status = StepStatus.COMPLETED
        visit.prescription_completed_at = self.now
        self.refresh()
        return True

    def complete(self, completion_type, notes=None, skip_vision_test=False,
                 skip_prescription=False, note_text=None):
        """
        Apply a manual completion to the visit.

        note_text, when given, is appended as is instead of the prefixed
        completion note.
        """
        visit = self.visit
        if completion_type not in CompletionType.values:
            raise InvalidCompletionType(f"Unknown completion type: {completion_type}")
        if visit.is_completed:
            raise VisitAlreadyCompleted(f"Visit {visit.visit_id} is already completed")

        if completion_type == CompletionType.VISION_ONLY:
            self.mark_vision_test_complete(force=skip_vision_test)
            if skip_prescription:
                self.mark_prescription_complete(force=True)
        elif completion_type == CompletionType.PRESCRIPTION_ONLY:
            self.mark_prescription_complete(force=skip_prescription)
            if skip_vision_test:
                self.mark_vision_test_complete(force=True)
        elif completion_type == CompletionType.BOTH:
            self.mark_vision_test_complete(force=skip_vision_test)
            self.mark_prescription_complete(force=skip_prescription)
        else:
            # Administrative closure: evidence and payment are not required
            self.mark_vision_test_complete(force=True)
            self.mark_prescription_complete(force=True)
            if not is_payment_cleared(visit.payment_status, visit.final_amount):
                visit.payment_waived = True

        if note_text is None:
            prefix, default_note = COMPLETION_NOTES[completion_type]
            note_text = f'{prefix}{notes}' if notes else default_note
        self.append_note(note_text)
        self.refresh()
        return visit

    def append_note(self, text):
        visit = self.visit
        visit.visit_notes = f'{visit.visit_notes}\n{text}' if visit.visit_notes else text

    def check_invariants(self, allow_overpayment=True):
        """Raise InvariantViolation when derived money fields disagree"""
        visit = self.visit
        problems = []

        if visit.total_amount != visit.registration_fee + visit.doctor_fee:
            problems.append('total_amount != registration_fee + doctor_fee')
        if not ZERO <= visit.discount_amount <= visit.total_amount:
            problems.append('discount_amount outside [0, total_amount]')
        if visit.final_amount != max(ZERO, visit.total_amount - visit.discount_amount):
            problems.append('final_amount != total_amount - discount_amount')
        if visit.total_paid < ZERO:
            problems.append('total_paid is negative')

        raw_due = visit.final_amount - visit.total_paid
        if raw_due < ZERO and not allow_overpayment:
            problems.append('total_paid exceeds final_amount')
        if visit.total_due != max(ZERO, raw_due):
            problems.append('total_due != final_amount - total_paid')
        if visit.payment_status != derive_payment_status(visit.total_paid, visit.final_amount):
            problems.append('payment_status does not match payments')

        if problems:
            message = f"Visit {visit.visit_id}: {'; '.join(problems)}"
            logger.error(f"Invariant violation - {message}")
            raise InvariantViolation(message)
