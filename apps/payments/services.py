# apps/payments/services.py

import logging

from django.db import IntegrityError, transaction

from core.conf import billing_setting
from core.constants import TransactionType
from core.exceptions import ConcurrentModification, IdempotencyConflict, InvalidAmount
from core.money import ZERO, to_money
from apps.ledger.services import VoucherPoster, generate_narration
from apps.visits.events import publish_visit_updated
from apps.visits.models import Visit
from apps.visits.status import VisitStatusMachine

from .models import Payment, PaymentMethod

logger = logging.getLogger(__name__)

INCOME_CATEGORY = 'OPD Income'
REVERSAL_CATEGORY = 'OPD Income Reversal'


def resolve_payment_method(method=None):
    """PaymentMethod for a code (or instance), the configured default when empty"""
    if isinstance(method, PaymentMethod):
        return method

    code = (method or billing_setting('DEFAULT_PAYMENT_METHOD')).upper()
    payment_method, _ = PaymentMethod.objects.get_or_create(
        code=code,
        defaults={'name': PaymentMethod.default_name(code)}
    )
    return payment_method


class PaymentLedger:
    """
    Records money against visits and keeps each visit's totals, statuses and
    income vouchers in step with its payments.
    """

    def __init__(self, poster=None):
        self.poster = poster or VoucherPoster()

    def record_payment(self, visit_id, amount, method=None, payment_date=None,
                       notes='', received_by=None, idempotency_key=None):
        """Record one payment in its own transaction and publish the visit"""
        with transaction.atomic():
            visit = Visit.objects.lock(visit_id)

            if idempotency_key:
                existing = self.replay(idempotency_key, amount, visit=visit)
                if existing is not None:
                    return existing

            payment = self.apply_payment(
                visit, amount,
                method=method,
                payment_date=payment_date,
                notes=notes,
                received_by=received_by,
                idempotency_key=idempotency_key,
            )
            publish_visit_updated(visit)

        return payment

    def apply_payment(self, visit, amount, method=None, payment_date=None,
                      notes='', received_by=None, idempotency_key=None):
        """
        Insert a payment for a visit the caller has already locked.

        Posts the income voucher and refreshes the visit. Does not publish;
        the caller owns the transaction and the event.
        """
        try:
            amount = to_money(amount)
        except ValueError:
            raise InvalidAmount(f"Invalid payment amount: {amount}")

        if amount <= ZERO:
            raise InvalidAmount(f"Payment amount must be greater than zero, got {amount}")
        if not billing_setting('ALLOW_OVERPAYMENT') and amount > visit.total_due:
            raise InvalidAmount(
                f"Payment of {amount} exceeds the amount due ({visit.total_due}) "
                f"for visit {visit.visit_id}"
            )

        payment_kwargs = {
            'visit': visit,
            'patient': visit.patient,
            'amount': amount,
            'payment_method': resolve_payment_method(method),
            'notes': notes or '',
            'received_by': received_by,
            'idempotency_key': idempotency_key or None,
        }
        if payment_date:
            payment_kwargs['payment_date'] = payment_date
        try:
            payment = Payment.objects.create(**payment_kwargs)
        except IntegrityError as e:
            if idempotency_key:
                raise IdempotencyConflict(
                    f"Idempotency key {idempotency_key} was already used by another request"
                )
            raise ConcurrentModification(f"Payment numbering collided with another request: {e}")

        patient = visit.patient
        self.poster.credit(
            amount=payment.amount,
            narration=generate_narration(
                visit.service_line,
                TransactionType.INCOME,
                INCOME_CATEGORY,
                f"Visit payment from Patient: {patient.name} (ID: {patient.patient_id})"
            ),
            source_account=visit.service_line,
            source_transaction_type=TransactionType.INCOME,
            source_voucher_no=payment.payment_number,
            source_reference_id=payment.pk,
            date=payment.payment_date,
            created_by=received_by,
        )

        self.refresh_totals(visit)
        logger.info(
            f"Payment {payment.payment_number} of {payment.amount} recorded for visit "
            f"{visit.visit_id} ({visit.payment_status}, due {visit.total_due})"
        )
        return payment

    def settle_due(self, visit, method=None, notes='', received_by=None):
        """Pay whatever is due on a locked visit. Returns None when nothing is due"""
        if visit.total_due <= ZERO:
            return None
        return self.apply_payment(
            visit, visit.total_due,
            method=method,
            notes=notes,
            received_by=received_by,
        )

    def refresh_totals(self, visit):
        """Recompute paid/due and statuses from the visit's payments and save"""
        visit.total_paid = to_money(visit.payments.total())
        visit.total_due = max(ZERO, visit.final_amount - visit.total_paid)

        machine = VisitStatusMachine(visit)
        machine.refresh()
        machine.check_invariants(allow_overpayment=billing_setting('ALLOW_OVERPAYMENT'))
        visit.save()
        return visit

    def reverse_visit_payments(self, visit, created_by=None):
        """
        Offset every payment of a locked visit with a Debit voucher and
        remove the payments. Returns the reversal vouchers.
        """
        patient = visit.patient
        reversals = []
        payments = list(visit.payments.select_related('patient').order_by('pk'))

        for payment in payments:
            reversals.append(self.poster.debit(
                amount=payment.amount,
                narration=generate_narration(
                    visit.service_line,
                    TransactionType.INCOME,
                    REVERSAL_CATEGORY,
                    f"Reversal of visit payment {payment.payment_number} for Patient: "
                    f"{patient.name} (ID: {patient.patient_id})"
                ),
                source_account=visit.service_line,
                source_transaction_type=TransactionType.INCOME,
                source_voucher_no=payment.payment_number,
                source_reference_id=payment.pk,
                created_by=created_by,
            ))

        if payments:
            Payment.objects.filter(pk__in=[payment.pk for payment in payments]).delete()
            logger.info(
                f"Reversed {len(payments)} payment(s) for visit {visit.visit_id}: "
                f"{', '.join(payment.payment_number for payment in payments)}"
            )
        return reversals

    def visit_balance(self, visit):
        total_paid = to_money(visit.payments.total())
        return {
            'final_amount': visit.final_amount,
            'total_paid': total_paid,
            'total_due': max(ZERO, visit.final_amount - total_paid),
            'payment_status': visit.payment_status,
        }

    def replay(self, idempotency_key, amount, visit=None, patient=None):
        """
        The payment already recorded under idempotency_key, None for a new key.

        Raises IdempotencyConflict when the key belongs to a payment for a
        different visit, patient or amount.
        """
        existing = Payment.objects.filter(
            idempotency_key=idempotency_key
        ).select_related('visit').first()
        if existing is None:
            return None

        try:
            amount = to_money(amount)
        except ValueError:
            raise InvalidAmount(f"Invalid payment amount: {amount}")

        mismatch = (
            existing.amount != amount
            or (visit is not None and existing.visit_id != visit.pk)
            or (patient is not None and existing.patient_id != patient.pk)
        )
        if mismatch:
            raise IdempotencyConflict(
                f"Idempotency key {idempotency_key} was already used for payment "
                f"{existing.payment_number}"
            )
        logger.info(f"Replayed payment {existing.payment_number} for key {idempotency_key}")
        return existing

