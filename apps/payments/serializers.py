from rest_framework import serializers

from apps.patients.serializers import MinimalPatientSerializer

from .models import Payment, PaymentMethod


# ===========================================
# PAYMENT METHOD SERIALIZERS
# ===========================================
class PaymentMethodSerializer(serializers.ModelSerializer):
    """Serializer for PaymentMethod"""

    class Meta:
        model = PaymentMethod
        fields = ['code', 'name', 'is_active', 'sort_order']


# ===========================================
# PAYMENT SERIALIZERS
# ===========================================
class PaymentSerializer(serializers.ModelSerializer):
    """Read serializer for Payment. Payments are never updated"""

    patient = MinimalPatientSerializer(read_only=True)
    visit_id = serializers.CharField(source='visit.visit_id', read_only=True)
    received_by_name = serializers.CharField(source='received_by.get_username', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            'id', 'payment_number', 'visit', 'visit_id', 'patient', 'amount',
            'payment_method', 'method_display', 'payment_date', 'notes',
            'received_by', 'received_by_name', 'idempotency_key', 'created_at'
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    """Input for recording a payment against a known visit"""

    # Non-positive amounts are rejected by the ledger as InvalidAmount
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.PrimaryKeyRelatedField(
        queryset=PaymentMethod.objects.filter(is_active=True),
        required=False,
        allow_null=True,
        default=None
    )
    payment_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    idempotency_key = serializers.CharField(
        max_length=64, required=False, allow_null=True, default=None
    )


class PaymentRecordSerializer(PaymentCreateSerializer):
    """Input for POST /payments/, the visit is part of the body"""

    visit = serializers.IntegerField(min_value=1)
