# apps/ledger/services.py

import logging

from django.db import IntegrityError
from django.utils import timezone

from core.constants import SourceAccount, TransactionType, VoucherType
from core.exceptions import ConcurrentModification, InvalidAmount
from core.money import to_money, ZERO

from .models import AccountVoucher, NumberSequence

logger = logging.getLogger(__name__)

VOUCHER_SEQUENCE = 'voucher'


ACCOUNT_DISPLAY_NAMES = {
    SourceAccount.HOSPITAL: 'Hospital',
    SourceAccount.MEDICINE: 'Medicine',
    SourceAccount.OPTICS: 'Optics',
}

TRANSACTION_DISPLAY_NAMES = {
    TransactionType.INCOME: 'Income',
    TransactionType.EXPENSE: 'Expense',
    TransactionType.FUND_IN: 'Fund In',
    TransactionType.FUND_OUT: 'Fund Out',
}


def _capitalize(value):
    # Only the first letter changes, like PHP's ucfirst
    return value[:1].upper() + value[1:]


def account_display_name(source_account):
    return ACCOUNT_DISPLAY_NAMES.get(source_account, _capitalize(source_account))


def transaction_display_name(transaction_type):
    return TRANSACTION_DISPLAY_NAMES.get(
        transaction_type, _capitalize(transaction_type.replace('_', ' '))
    )


def generate_narration(source_account, transaction_type, category, description):
    """
    Narration text for a voucher, e.g.
    "Hospital Income - OPD Income: Visit payment from Patient: ..."
    """
    return (
        f"{account_display_name(source_account)} "
        f"{transaction_display_name(transaction_type)} - {category}: {description}"
    )


class VoucherPoster:
    """
    Writes single vouchers to the main account ledger.

    The poster formats and inserts one row per call. Callers moving money
    between two tracked accounts post both legs themselves.
    """

    def post(
        self,
        voucher_type,
        amount,
        narration,
        source_account,
        source_transaction_type,
        source_voucher_no=None,
        source_reference_id=None,
        date=None,
        created_by=None,
    ):
        amount = to_money(amount)
        if amount <= ZERO:
            raise InvalidAmount(f"Voucher amount must be positive, got {amount}")
        if voucher_type not in VoucherType.values:
            raise ValueError(f"Unknown voucher type: {voucher_type}")

        try:
            voucher = AccountVoucher.objects.create(
                voucher_no=self._next_voucher_no(),
                voucher_type=voucher_type,
                date=date or timezone.localdate(),
                narration=narration,
                amount=amount,
                source_account=source_account,
                source_transaction_type=source_transaction_type,
                source_voucher_no=source_voucher_no,
                source_reference_id=source_reference_id,
                created_by=created_by,
            )
        except IntegrityError as e:
            raise ConcurrentModification(f"Voucher numbering collided with another request: {e}")

        logger.info(
            f"{voucher.voucher_type} voucher {voucher.voucher_no} posted: "
            f"{voucher.amount} on {source_account}/{source_transaction_type} "
            f"(ref {source_reference_id})"
        )
        return voucher

    def debit(self, amount, narration, source_account, source_transaction_type, **kwargs):
        return self.post(VoucherType.DEBIT, amount, narration, source_account, source_transaction_type, **kwargs)

    def credit(self, amount, narration, source_account, source_transaction_type, **kwargs):
        return self.post(VoucherType.CREDIT, amount, narration, source_account, source_transaction_type, **kwargs)

    @staticmethod
    def _next_voucher_no():
        """Sequential voucher number, zero padded"""
        return f"{NumberSequence.next_value(VOUCHER_SEQUENCE):05d}"


def ledger_balance(source_reference_id=None, source_account=None):
    """Net balance (credits - debits), optionally narrowed to one reference or account"""
    vouchers = AccountVoucher.objects.all()
    if source_reference_id is not None:
        vouchers = vouchers.for_reference(source_reference_id)
    if source_account:
        vouchers = vouchers.filter(source_account=source_account)
    return vouchers.totals()['net_change']


def daily_totals(date):
    vouchers = AccountVoucher.objects.filter(date=date)
    totals = vouchers.totals()
    totals['voucher_count'] = vouchers.count()
    return totals


def account_summary(start_date=None, end_date=None):
    """Totals per source account for an optional date range"""
    vouchers = AccountVoucher.objects.all()
    if start_date:
        vouchers = vouchers.filter(date__gte=start_date)
    if end_date:
        vouchers = vouchers.filter(date__lte=end_date)

    summary = {}
    for account in SourceAccount:
        summary[account.value] = vouchers.filter(source_account=account).totals()
    summary['total'] = vouchers.totals()
    return summary
