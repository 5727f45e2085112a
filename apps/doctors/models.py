#apps/doctors/models.py

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from core.mixins.audit_fields import AuditFieldsMixin
from apps.ledger.models import NumberSequence


class Doctor(AuditFieldsMixin, models.Model):
    """Doctor a visit can be booked with"""

    doctor_id = models.CharField(max_length=50, unique=True, blank=True)
    name = models.CharField(max_length=150)
    specialization = models.CharField(max_length=100, blank=True)

    # Fees
    consultation_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    follow_up_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Fee for follow-up visits, consultation fee is used when empty"
    )

    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'doctors'
        ordering = ['doctor_id']
        indexes = [
            models.Index(fields=['doctor_id']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return f"Dr. {self.name}"

    def save(self, *args, **kwargs):
        if not self.doctor_id:
            self.doctor_id = self._generate_doctor_id()
        super().save(*args, **kwargs)

    def _generate_doctor_id(self):
        """Generate DOC-XXX format ID"""
        return f'DOC-{NumberSequence.next_value("doctor"):03d}'

    def fee_for(self, is_followup=False):
        if is_followup and self.follow_up_fee is not None:
            return self.follow_up_fee
        return self.consultation_fee
