# payments/admin.py
from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from .models import PaymentMethod, Payment


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'is_active', 'sort_order')
    list_filter = ('is_active',)
    list_editable = ('is_active', 'sort_order')
    search_fields = ('name', 'code')
    ordering = ('sort_order', 'name')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Payments are recorded through the payment ledger, admin is read only"""

    list_display = ('payment_number', 'patient_link', 'visit_link',
                    'amount', 'method_display', 'payment_date', 'received_by')
    list_filter = ('payment_method', 'payment_date')
    search_fields = ('payment_number', 'patient__name', 'patient__patient_id',
                     'visit__visit_id')
    date_hierarchy = 'payment_date'

    fieldsets = (
        ('Payment Information', {
            'fields': ('payment_number', 'visit', 'patient',
                       'amount', 'payment_method', 'method_display')
        }),
        ('Audit Information', {
            'fields': ('payment_date', 'notes', 'received_by',
                       'idempotency_key', 'created_at')
        }),
    )

    def patient_link(self, obj):
        url = reverse('admin:patients_patient_change', args=[obj.patient.id])
        return format_html('<a href="{}">{}</a>', url, obj.patient)
    patient_link.short_description = 'Patient'
    patient_link.admin_order_field = 'patient'

    def visit_link(self, obj):
        url = reverse('admin:visits_visit_change', args=[obj.visit.id])
        return format_html('<a href="{}">{}</a>', url, obj.visit.visit_id)
    visit_link.short_description = 'Visit'
    visit_link.admin_order_field = 'visit'

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
