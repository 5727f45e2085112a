# apps/payments/models.py
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from core.mixins.immutable import AppendOnlyMixin
from apps.ledger.models import NumberSequence


class PaymentMethod(models.Model):
    """System-wide payment methods configuration"""
    CASH = 'CASH'
    CARD = 'CARD'
    MOBILE_BANKING = 'MOBILE_BANKING'
    BANK_TRANSFER = 'BANK_TRANSFER'

    METHOD_CHOICES = [
        (CASH, 'Cash'),
        (CARD, 'Credit/Debit Card'),
        (MOBILE_BANKING, 'Mobile Banking'),
        (BANK_TRANSFER, 'Bank Transfer'),
    ]

    code = models.CharField(max_length=20, primary_key=True)
    name = models.CharField(max_length=50)
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "Payment Method"
        verbose_name_plural = "Payment Methods"
        ordering = ['sort_order', 'name']

    def __str__(self):
        return self.name

    @classmethod
    def default_name(cls, code):
        return dict(cls.METHOD_CHOICES).get(code, code.replace('_', ' ').title())


class PaymentQuerySet(models.QuerySet):

    def total(self):
        return self.aggregate(total=models.Sum('amount'))['total'] or Decimal('0.00')


class Payment(AppendOnlyMixin, models.Model):
    """
    Money received against a visit.

    Payments are never edited. A visit's payments are only removed together
    with the visit, after their vouchers have been reversed.
    """

    payment_number = models.CharField(
        max_length=20, unique=True,
        help_text="Auto-generated payment number: PAY-YYYYMMDD-XXXXX"
    )
    visit = models.ForeignKey(
        'visits.Visit', on_delete=models.PROTECT,
        related_name='payments'
    )
    patient = models.ForeignKey(
        'patients.Patient', on_delete=models.PROTECT,
        related_name='payments'
    )

    # Amount and method
    amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    payment_method = models.ForeignKey(
        PaymentMethod, on_delete=models.PROTECT,
        related_name='payments'
    )
    method_display = models.CharField(
        max_length=50,
        help_text="Snapshot of payment method name at time of payment"
    )

    payment_date = models.DateField(default=timezone.localdate)
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='received_payments'
    )
    idempotency_key = models.CharField(
        max_length=64, null=True, blank=True, unique=True,
        help_text="Client supplied key, a retried request returns the original payment"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = PaymentQuerySet.as_manager()

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ['-payment_date', '-created_at']
        indexes = [
            models.Index(fields=['payment_number']),
            models.Index(fields=['visit', 'payment_date']),
            models.Index(fields=['patient', 'payment_date']),
        ]

    def __str__(self):
        return f"{self.payment_number} - {self.patient} - {self.amount}"

    def save(self, *args, **kwargs):
        if not self.payment_number:
            self.payment_number = self.generate_payment_number()
        if not self.method_display and self.payment_method_id:
            self.method_display = self.payment_method.name
        super().save(*args, **kwargs)

    def generate_payment_number(self):
        """Generate unique payment number: PAY-YYYYMMDD-XXXXX"""
        date_str = timezone.now().strftime('%Y%m%d')
        new_num = NumberSequence.next_value(f'payment-{date_str}')
        return f"PAY-{date_str}-{new_num:05d}"
