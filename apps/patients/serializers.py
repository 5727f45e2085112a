from rest_framework import serializers

from .models import Patient


class MinimalPatientSerializer(serializers.ModelSerializer):
    """Minimal patient serializer"""

    class Meta:
        model = Patient
        fields = ['id', 'patient_id', 'name', 'phone']


class PatientSerializer(serializers.ModelSerializer):
    """Serializer for Patient"""

    visit_count = serializers.IntegerField(source='visits.count', read_only=True)
    has_active_visit = serializers.SerializerMethodField()

    class Meta:
        model = Patient
        fields = [
            'id', 'patient_id', 'name', 'phone', 'email', 'gender',
            'date_of_birth', 'address', 'visit_count', 'has_active_visit',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['patient_id', 'created_at', 'updated_at']

    def get_has_active_visit(self, obj):
        return obj.active_visit is not None
