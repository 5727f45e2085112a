from django.contrib import admin

from .models import VisionTest, Prescription


@admin.register(VisionTest)
class VisionTestAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'visit', 'performed_by', 'created_at')
    search_fields = ('patient__name', 'patient__patient_id', 'visit__visit_id')
    raw_id_fields = ('visit', 'patient', 'performed_by')


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'visit', 'doctor', 'created_at')
    search_fields = ('patient__name', 'patient__patient_id', 'visit__visit_id')
    raw_id_fields = ('visit', 'patient', 'doctor', 'prescribed_by')
