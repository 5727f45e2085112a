# apps/prescriptions/models.py
#
# Clinical records attached to a visit. Only their existence matters to
# billing; the clinical detail lives in the notes field.

from django.conf import settings
from django.db import models


class VisionTest(models.Model):
    """Vision test performed for a patient, optionally as part of a visit"""

    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='vision_tests'
    )
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.CASCADE,
        related_name='vision_tests'
    )
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='vision_tests'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'vision_tests'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['visit']),
            models.Index(fields=['patient', 'created_at']),
        ]

    def __str__(self):
        return f"Vision test #{self.pk} for {self.patient}"


class Prescription(models.Model):
    """Prescription written for a patient, optionally as part of a visit"""

    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='prescriptions'
    )
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.CASCADE,
        related_name='prescriptions'
    )
    doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions'
    )
    prescribed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'prescriptions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['visit']),
            models.Index(fields=['patient', 'created_at']),
        ]

    def __str__(self):
        return f"Prescription #{self.pk} for {self.patient}"
