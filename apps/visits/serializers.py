# apps/visits/serializers.py
from rest_framework import serializers

from apps.doctors.models import Doctor
from apps.doctors.serializers import MinimalDoctorSerializer
from apps.patients.models import Patient
from apps.patients.serializers import MinimalPatientSerializer
from apps.payments.models import PaymentMethod
from core.constants import CompletionType, DiscountType, SourceAccount

from .models import Visit


VISIT_FIELDS = [
    'id', 'visit_id', 'patient', 'doctor', 'is_followup', 'service_line',
    'chief_complaint', 'visit_notes',
    'registration_fee', 'doctor_fee', 'total_amount', 'discount_type',
    'discount_value', 'discount_amount', 'final_amount', 'total_paid',
    'total_due', 'payment_status', 'vision_test_status',
    'prescription_status', 'overall_status', 'payment_waived',
    'payment_completed_at', 'vision_test_completed_at',
    'prescription_completed_at', 'created_at', 'updated_at'
]


class VisitSerializer(serializers.ModelSerializer):
    """Main serializer for Visit model. Every field is derived server side"""

    patient = MinimalPatientSerializer(read_only=True)
    doctor = MinimalDoctorSerializer(source='selected_doctor', read_only=True)

    class Meta:
        model = Visit
        fields = VISIT_FIELDS
        read_only_fields = VISIT_FIELDS


class VisitEventSerializer(VisitSerializer):
    """Visit as carried by VisitUpdated events"""

    payment_count = serializers.SerializerMethodField()

    class Meta(VisitSerializer.Meta):
        fields = VISIT_FIELDS + ['payment_count']
        read_only_fields = fields

    def get_payment_count(self, obj):
        if obj.pk is None:
            return 0
        return obj.payments.count()


class VisitRegistrationSerializer(serializers.Serializer):
    """Input for registering a visit"""

    patient_id = serializers.PrimaryKeyRelatedField(
        queryset=Patient.objects.all(),
        source='patient'
    )
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
        default=DiscountType.NONE
    )
    discount_value = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, default=0
    )
    initial_payment_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, default=0
    )
    payment_method = serializers.PrimaryKeyRelatedField(
        queryset=PaymentMethod.objects.filter(is_active=True),
        required=False,
        allow_null=True,
        default=None
    )
    chief_complaint = serializers.CharField(required=False, allow_blank=True, default='')
    is_followup = serializers.BooleanField(required=False, default=False)
    service_line = serializers.ChoiceField(
        choices=SourceAccount.choices,
        required=False,
        allow_null=True,
        default=None
    )
    idempotency_key = serializers.CharField(
        max_length=64, required=False, allow_null=True, default=None
    )


class VisitCompletionSerializer(serializers.Serializer):
    completion_type = serializers.ChoiceField(choices=CompletionType.choices)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    skip_vision_test = serializers.BooleanField(required=False, default=False)
    skip_prescription = serializers.BooleanField(required=False, default=False)


class StepCompletionSerializer(serializers.Serializer):
    """Mark a clinical step complete. force skips the clinical record check"""
    force = serializers.BooleanField(required=False, default=False)


class BulkCompletionSerializer(serializers.Serializer):
    visit_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=False
    )
    completion_type = serializers.ChoiceField(choices=CompletionType.choices)
    bulk_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    settle_due = serializers.BooleanField(required=False, default=False)
    payment_method = serializers.PrimaryKeyRelatedField(
        queryset=PaymentMethod.objects.filter(is_active=True),
        required=False,
        allow_null=True,
        default=None
    )


class VisitStatisticsSerializer(serializers.Serializer):
    total_pending = serializers.IntegerField()
    ready_for_vision_test = serializers.IntegerField()
    ready_for_prescription = serializers.IntegerField()
    payment_pending = serializers.IntegerField()


class VisitUpdateSerializer(serializers.Serializer):
    """Editable visit details. Charges are recomputed from these"""

    doctor_id = serializers.PrimaryKeyRelatedField(
        queryset=Doctor.objects.filter(is_active=True),
        source='doctor',
        required=False
    )
    is_followup = serializers.BooleanField(required=False)
    discount_type = serializers.ChoiceField(choices=DiscountType.choices, required=False)
    discount_value = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False
    )
    chief_complaint = serializers.CharField(required=False, allow_blank=True)
