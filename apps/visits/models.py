# apps/visits/models.py

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models, OperationalError
from django.utils import timezone

from core.conf import billing_setting
from core.constants import (
    DiscountType, PaymentStatus, StepStatus, OverallStatus, SourceAccount
)
from core.exceptions import NotFound, ConcurrentModification
from core.mixins.audit_fields import AuditFieldsMixin
from apps.ledger.models import NumberSequence


def _default_service_line():
    return billing_setting('DEFAULT_SOURCE_ACCOUNT')


def _money_field(**kwargs):
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        **kwargs
    )


class VisitQuerySet(models.QuerySet):

    def active(self):
        return self.exclude(overall_status=OverallStatus.COMPLETED)

    def ready_for_vision_test(self):
        return self.filter(
            vision_test_status=StepStatus.PENDING,
            overall_status=OverallStatus.VISION_TEST
        )

    def ready_for_prescription(self):
        return self.filter(
            vision_test_status=StepStatus.COMPLETED,
            prescription_status=StepStatus.PENDING,
            overall_status=OverallStatus.PRESCRIPTION
        )

    def payment_pending(self):
        return self.exclude(payment_status=PaymentStatus.PAID)

    def lock(self, pk):
        """
        Fetch a visit with a row lock for the rest of the transaction.

        Must be called inside transaction.atomic().
        """
        try:
            return self.select_for_update(
                nowait=billing_setting('LOCK_NOWAIT')
            ).get(pk=pk)
        except self.model.DoesNotExist:
            raise NotFound(f"Visit {pk} does not exist")
        except OperationalError as e:
            raise ConcurrentModification(f"Visit {pk} is locked by another request: {e}")


class Visit(AuditFieldsMixin, models.Model):
    """One billable, clinically tracked episode for a patient"""

    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='visits'
    )
    selected_doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.PROTECT,
        related_name='visits',
        null=True,
        blank=True
    )

    # Visit info
    visit_id = models.CharField(max_length=50, unique=True, blank=True)
    is_followup = models.BooleanField(default=False)
    service_line = models.CharField(
        max_length=20,
        choices=SourceAccount.choices,
        default=_default_service_line,
        help_text="Account that receives this visit's payments"
    )
    chief_complaint = models.TextField(blank=True)
    visit_notes = models.TextField(blank=True)

    # Charges
    registration_fee = _money_field()
    doctor_fee = _money_field()
    total_amount = _money_field()
    discount_type = models.CharField(
        max_length=20,
        choices=DiscountType.choices,
        default=DiscountType.NONE
    )
    discount_value = _money_field()
    discount_amount = _money_field()
    final_amount = _money_field()

    # Payments (derived from Payment rows)
    total_paid = _money_field()
    total_due = _money_field()

    # Status
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    vision_test_status = models.CharField(
        max_length=20,
        choices=StepStatus.choices,
        default=StepStatus.PENDING
    )
    prescription_status = models.CharField(
        max_length=20,
        choices=StepStatus.choices,
        default=StepStatus.PENDING
    )
    overall_status = models.CharField(
        max_length=20,
        choices=OverallStatus.choices,
        default=OverallStatus.PENDING
    )
    payment_waived = models.BooleanField(
        default=False,
        help_text="Payment step skipped by an administrative completion"
    )

    # Timing
    payment_completed_at = models.DateTimeField(null=True, blank=True)
    vision_test_completed_at = models.DateTimeField(null=True, blank=True)
    prescription_completed_at = models.DateTimeField(null=True, blank=True)

    objects = VisitQuerySet.as_manager()

    class Meta:
        db_table = 'patient_visits'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['visit_id']),
            models.Index(fields=['patient', 'overall_status']),
            models.Index(fields=['overall_status', 'created_at']),
            models.Index(fields=['payment_status']),
        ]

    def __str__(self):
        return f"Visit {self.visit_id}: {self.patient} ({self.get_overall_status_display()})"

    def save(self, *args, **kwargs):
        if not self.visit_id:
            self.visit_id = self._generate_visit_id()
        super().save(*args, **kwargs)

    def _generate_visit_id(self):
        """Generate PV-YYYYMMDD-XXXX format ID"""
        date_str = timezone.now().strftime('%Y%m%d')
        new_num = NumberSequence.next_value(f'visit-{date_str}')

        return f'PV-{date_str}-{new_num:04d}'

    def apply_costs(self, breakdown):
        """Copy a CostBreakdown onto the visit's charge fields"""
        self.registration_fee = breakdown.registration_fee
        self.doctor_fee = breakdown.doctor_fee
        self.total_amount = breakdown.total_amount
        self.discount_amount = breakdown.discount_amount
        self.final_amount = breakdown.final_amount

    @property
    def is_completed(self):
        return self.overall_status == OverallStatus.COMPLETED

    @property
    def has_vision_test(self):
        return self.vision_tests.exists()

    @property
    def has_prescription(self):
        return self.prescriptions.exists()
