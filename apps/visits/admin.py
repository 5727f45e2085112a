# apps/visits/admin.py
from django.contrib import admin

from .models import Visit


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    """Visits are changed through the visit services only"""

    list_display = (
        'visit_id', 'patient', 'selected_doctor', 'final_amount', 'total_paid',
        'total_due', 'payment_status', 'overall_status', 'created_at'
    )
    list_filter = ('overall_status', 'payment_status', 'service_line', 'created_at')
    search_fields = ('visit_id', 'patient__name', 'patient__patient_id')
    raw_id_fields = ('patient', 'selected_doctor')

    fieldsets = (
        ('Basic Info', {
            'fields': ('visit_id', 'patient', 'selected_doctor', 'is_followup',
                       'service_line', 'chief_complaint', 'visit_notes')
        }),
        ('Charges', {
            'fields': ('registration_fee', 'doctor_fee', 'total_amount',
                       'discount_type', 'discount_value', 'discount_amount',
                       'final_amount', 'total_paid', 'total_due')
        }),
        ('Status', {
            'fields': ('payment_status', 'vision_test_status', 'prescription_status',
                       'overall_status', 'payment_waived')
        }),
        ('Timing', {
            'fields': ('payment_completed_at', 'vision_test_completed_at',
                       'prescription_completed_at'),
            'classes': ('collapse',)
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
