# apps/patients/views.py
from rest_framework import viewsets, filters, status
from rest_framework.response import Response

from core.exceptions import BillingError
from core.permissions import IsAuthenticatedAndActive, IsStaffMember
from apps.visits.services import delete_patient

from .models import Patient
from .serializers import PatientSerializer


class PatientViewSet(viewsets.ModelViewSet):
    """ViewSet for Patient model"""

    queryset = Patient.objects.all()
    serializer_class = PatientSerializer
    permission_classes = [IsAuthenticatedAndActive]
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['patient_id', 'name', 'phone']
    ordering = ['-created_at']

    def get_permissions(self):
        if self.action == 'destroy':
            return [IsAuthenticatedAndActive(), IsStaffMember()]
        return super().get_permissions()

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user, updated_by=self.request.user)

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)

    def destroy(self, request, *args, **kwargs):
        """Delete patient with all visits, reversing their payments"""
        try:
            reversals = delete_patient(kwargs['pk'], user=request.user)
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'message': 'Patient deleted and all transactions reversed successfully',
            'reversal_vouchers': [voucher.voucher_no for voucher in reversals],
        }, status=status.HTTP_200_OK)
