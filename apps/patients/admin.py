from django.contrib import admin

from .models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('patient_id', 'name', 'phone', 'gender', 'created_at')
    list_filter = ('gender',)
    search_fields = ('patient_id', 'name', 'phone', 'email')
    readonly_fields = ('patient_id', 'created_at', 'updated_at')

    def has_delete_permission(self, request, obj=None):
        # Deletion goes through the API so payments are reversed in the ledger
        return False
