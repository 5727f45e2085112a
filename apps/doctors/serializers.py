from rest_framework import serializers

from .models import Doctor


class MinimalDoctorSerializer(serializers.ModelSerializer):
    """Minimal doctor serializer"""

    class Meta:
        model = Doctor
        fields = ['id', 'doctor_id', 'name', 'specialization', 'consultation_fee', 'follow_up_fee']
