from rest_framework import serializers

from apps.doctors.models import Doctor
from core.constants import DiscountType


class CostEstimateRequestSerializer(serializers.Serializer):
    """Input for a pre-registration cost preview"""

    doctor_id = serializers.PrimaryKeyRelatedField(
        queryset=Doctor.objects.filter(is_active=True),
        source='doctor',
        required=False,
        allow_null=True,
        default=None
    )
    discount_type = serializers.ChoiceField(
        choices=DiscountType.choices,
        required=False,
        allow_null=True,
        default=DiscountType.NONE
    )
    discount_value = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, default=0
    )
    is_followup = serializers.BooleanField(required=False, default=False)


class CostBreakdownSerializer(serializers.Serializer):
    registration_fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    doctor_fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    final_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
