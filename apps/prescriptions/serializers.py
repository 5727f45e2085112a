from rest_framework import serializers

from .models import VisionTest, Prescription


class VisionTestSerializer(serializers.ModelSerializer):
    class Meta:
        model = VisionTest
        fields = ['id', 'visit', 'patient', 'performed_by', 'notes', 'created_at']
        read_only_fields = fields


class PrescriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Prescription
        fields = ['id', 'visit', 'patient', 'doctor', 'prescribed_by', 'notes', 'created_at']
        read_only_fields = fields


class ClinicalRecordCreateSerializer(serializers.Serializer):
    """Input for recording a vision test or prescription against a visit"""
    notes = serializers.CharField(required=False, allow_blank=True, default='')
