# apps/ledger/models.py

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models import Sum, Q
from django.utils import timezone

from core.constants import SourceAccount, TransactionType, VoucherType
from core.mixins.immutable import AppendOnlyMixin


class AccountVoucherQuerySet(models.QuerySet):

    def for_reference(self, source_reference_id):
        return self.filter(source_reference_id=source_reference_id)

    def totals(self):
        """Credit and debit totals with the net (credit - debit) balance"""
        result = self.aggregate(
            credit_total=Sum('amount', filter=Q(voucher_type=VoucherType.CREDIT)),
            debit_total=Sum('amount', filter=Q(voucher_type=VoucherType.DEBIT)),
        )
        credit_total = result['credit_total'] or Decimal('0.00')
        debit_total = result['debit_total'] or Decimal('0.00')
        return {
            'credit_total': credit_total,
            'debit_total': debit_total,
            'net_change': credit_total - debit_total,
        }


class AccountVoucher(AppendOnlyMixin, models.Model):
    """
    Single-sided entry in the main account ledger.

    Vouchers are never edited or deleted; a reversal is a new voucher of the
    opposite type pointing at the same source reference.
    """

    allow_delete = False

    voucher_no = models.CharField(max_length=20, unique=True)
    voucher_type = models.CharField(max_length=10, choices=VoucherType.choices)
    date = models.DateField(default=timezone.localdate)
    narration = models.TextField()
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    # Where the money came from
    source_account = models.CharField(max_length=20, choices=SourceAccount.choices)
    source_transaction_type = models.CharField(max_length=30, choices=TransactionType.choices)
    source_voucher_no = models.CharField(max_length=50, null=True, blank=True)
    source_reference_id = models.PositiveBigIntegerField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='account_vouchers'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = AccountVoucherQuerySet.as_manager()

    class Meta:
        db_table = 'account_vouchers'
        ordering = ['-date', '-id']
        indexes = [
            models.Index(fields=['voucher_no']),
            models.Index(fields=['source_account', 'source_transaction_type']),
            models.Index(fields=['source_reference_id']),
            models.Index(fields=['date', 'voucher_type']),
        ]

    def __str__(self):
        return f"{self.voucher_type} {self.voucher_no}: {self.amount}"


class NumberSequence(models.Model):
    """
    Last number handed out for a document series (vouchers, payments, visits).

    Values only ever go up. Deleting the row that carried a number does not
    make that number available again.
    """

    name = models.CharField(max_length=50, primary_key=True)
    last_value = models.PositiveBigIntegerField(default=0)

    class Meta:
        db_table = 'number_sequences'

    def __str__(self):
        return f"{self.name}: {self.last_value}"

    @classmethod
    def next_value(cls, name):
        """
        Increment the series and return the new value.

        The series row stays locked until the caller's transaction ends, so
        concurrent transactions numbering the same series queue up instead of
        reading the same last value.
        """
        with transaction.atomic():
            cls.objects.get_or_create(name=name)
            sequence = cls.objects.select_for_update().get(name=name)
            sequence.last_value += 1
            sequence.save(update_fields=['last_value'])
        return sequence.last_value
