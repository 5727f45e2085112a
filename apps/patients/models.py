# apps/patients/models.py
from django.db import models
from django.utils import timezone

from core.constants import Gender
from core.mixins.audit_fields import AuditFieldsMixin
from apps.ledger.models import NumberSequence


class Patient(AuditFieldsMixin, models.Model):
    """Patient registered at the front desk"""

    patient_id = models.CharField(max_length=50, unique=True, blank=True)
    name = models.CharField(max_length=150)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    gender = models.CharField(max_length=1, choices=Gender.choices, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    address = models.TextField(blank=True)

    class Meta:
        db_table = 'patients'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient_id']),
            models.Index(fields=['phone']),
        ]

    def __str__(self):
        return f"{self.name} ({self.patient_id})"

    def save(self, *args, **kwargs):
        if not self.patient_id:
            self.patient_id = self._generate_patient_id()
        super().save(*args, **kwargs)

    def _generate_patient_id(self):
        """Generate P-YYYYMMDD-XXXX format ID"""
        date_str = timezone.now().strftime('%Y%m%d')
        new_num = NumberSequence.next_value(f'patient-{date_str}')

        return f'P-{date_str}-{new_num:04d}'

    @property
    def active_visit(self):
        """The visit that is not completed yet, if any"""
        return self.visits.active().first()
