from django.contrib import admin

from .models import Doctor


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('doctor_id', 'name', 'specialization', 'consultation_fee', 'follow_up_fee', 'is_active')
    list_filter = ('is_active', 'specialization')
    search_fields = ('doctor_id', 'name')
    readonly_fields = ('doctor_id',)
