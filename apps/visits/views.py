# apps/visits/views.py
from django_filters import rest_framework as django_filters
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from core.constants import DateWindow, OverallStatus, PaymentStatus
from core.exceptions import BillingError
from core.permissions import IsAuthenticatedAndActive, IsStaffMember
from apps.payments.serializers import PaymentCreateSerializer, PaymentSerializer
from apps.payments.services import PaymentLedger
from apps.prescriptions.serializers import (
    ClinicalRecordCreateSerializer, PrescriptionSerializer, VisionTestSerializer
)

from . import services
from .bulk import bulk_complete_visits
from .models import Visit
from .serializers import (
    BulkCompletionSerializer, StepCompletionSerializer, VisitCompletionSerializer,
    VisitRegistrationSerializer, VisitSerializer, VisitStatisticsSerializer,
    VisitUpdateSerializer
)


# ===========================================
# PAGINATION CLASSES
# ===========================================
class StandardPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


# ===========================================
# FILTER SETS
# ===========================================
class VisitFilter(django_filters.FilterSet):
    """Filter for visits"""

    date_filter = django_filters.ChoiceFilter(
        choices=DateWindow.choices, method='filter_date_window'
    )
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Visit
        fields = [
            'overall_status', 'payment_status', 'vision_test_status',
            'prescription_status', 'patient', 'selected_doctor', 'service_line'
        ]

    def filter_date_window(self, queryset, name, value):
        start, end = services.date_window_range(value)
        return queryset.filter(created_at__date__gte=start, created_at__date__lte=end)


# ===========================================
# VISIT VIEWSET
# ===========================================
class VisitViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.DestroyModelMixin,
                   viewsets.GenericViewSet):
    """
    Visits and their lifecycle.

    Charges and statuses are never written through this API directly; every
    change goes through the visit services so it is locked, recomputed and
    published as one unit.
    """

    queryset = Visit.objects.select_related('patient', 'selected_doctor').all()
    serializer_class = VisitSerializer
    pagination_class = StandardPagination
    permission_classes = [IsAuthenticatedAndActive]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = VisitFilter
    search_fields = ['visit_id', 'patient__name', 'patient__patient_id', 'patient__phone']
    ordering_fields = ['created_at', 'final_amount', 'total_due']
    ordering = ['-created_at']

    def get_permissions(self):
        """Set permissions based on action"""
        if self.action == 'destroy':
            return [IsAuthenticatedAndActive(), IsStaffMember()]
        return super().get_permissions()

    def create(self, request, *args, **kwargs):
        """Register a visit, with an optional initial payment"""
        serializer = VisitRegistrationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        doctor = data.get('doctor')
        try:
            visit, payment = services.register_visit(
                patient_id=data['patient'].pk,
                doctor_id=doctor.pk if doctor else None,
                discount_type=data['discount_type'],
                discount_value=data['discount_value'],
                initial_payment_amount=data['initial_payment_amount'],
                payment_method=data.get('payment_method'),
                chief_complaint=data['chief_complaint'],
                is_followup=data['is_followup'],
                service_line=data.get('service_line'),
                user=request.user,
                idempotency_key=data.get('idempotency_key'),
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'message': 'Visit registered successfully',
            'visit': VisitSerializer(visit).data,
            'payment': PaymentSerializer(payment).data if payment else None,
        }, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        """Change doctor, follow-up flag, discount or complaint and recompute charges"""
        serializer = VisitUpdateSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        doctor = data.get('doctor')
        try:
            visit = services.update_visit(
                kwargs['pk'],
                doctor_id=doctor.pk if doctor else None,
                is_followup=data.get('is_followup'),
                discount_type=data.get('discount_type'),
                discount_value=data.get('discount_value'),
                chief_complaint=data.get('chief_complaint'),
                user=request.user,
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'message': 'Visit updated successfully',
            'visit': VisitSerializer(visit).data,
        })

    def destroy(self, request, *args, **kwargs):
        """Delete visit, reversing its payments"""
        try:
            reversals = services.delete_visit(kwargs['pk'], user=request.user)
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'message': 'Visit deleted and payments reversed successfully',
            'reversal_vouchers': [voucher.voucher_no for voucher in reversals],
        }, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'])
    def payments(self, request, pk=None):
        """Record a payment against the visit"""
        serializer = PaymentCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            payment = PaymentLedger().record_payment(
                pk,
                data['amount'],
                method=data.get('payment_method'),
                payment_date=data.get('payment_date'),
                notes=data.get('notes', ''),
                received_by=request.user,
                idempotency_key=data.get('idempotency_key'),
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        visit = services.get_visit(pk)
        return Response({
            'message': 'Payment recorded successfully',
            'payment': PaymentSerializer(payment).data,
            'visit': VisitSerializer(visit).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        """Manually complete the visit"""
        serializer = VisitCompletionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            visit = services.complete_visit(
                pk,
                data['completion_type'],
                notes=data.get('notes'),
                skip_vision_test=data['skip_vision_test'],
                skip_prescription=data['skip_prescription'],
                user=request.user,
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'message': 'Visit completed successfully',
            'visit': VisitSerializer(visit).data,
        })

    @action(detail=True, methods=['post'])
    def mark_vision_test(self, request, pk=None):
        """Mark the vision test step complete"""
        serializer = StepCompletionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            visit = services.mark_vision_test_complete(
                pk, force=serializer.validated_data['force'], user=request.user
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({'visit': VisitSerializer(visit).data})

    @action(detail=True, methods=['post'])
    def mark_prescription(self, request, pk=None):
        """Mark the prescription step complete"""
        serializer = StepCompletionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            visit = services.mark_prescription_complete(
                pk, force=serializer.validated_data['force'], user=request.user
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({'visit': VisitSerializer(visit).data})

    @action(detail=True, methods=['post'], url_path='vision-tests')
    def vision_tests(self, request, pk=None):
        """Record a vision test, completing the vision test step"""
        serializer = ClinicalRecordCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            vision_test = services.record_vision_test(
                pk, notes=serializer.validated_data['notes'], user=request.user
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'vision_test': VisionTestSerializer(vision_test).data,
            'visit': VisitSerializer(services.get_visit(pk)).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def prescriptions(self, request, pk=None):
        """Record a prescription, completing the prescription step"""
        serializer = ClinicalRecordCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            prescription = services.record_prescription(
                pk, notes=serializer.validated_data['notes'], user=request.user
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'prescription': PrescriptionSerializer(prescription).data,
            'visit': VisitSerializer(services.get_visit(pk)).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='bulk-complete')
    def bulk_complete(self, request):
        """Complete several visits, reporting per visit results"""
        serializer = BulkCompletionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            report = bulk_complete_visits(
                data['visit_ids'],
                data['completion_type'],
                bulk_notes=data.get('bulk_notes'),
                settle_due=data['settle_due'],
                payment_method=data.get('payment_method'),
                user=request.user,
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response({
            'message': f"{len(report.succeeded) - len(report.skipped)} visits completed successfully",
            **report.as_dict(),
        })

    @action(detail=False, methods=['get'])
    def pending(self, request):
        """Visits that are not completed yet, with counters for the dashboard"""
        date_filter = request.query_params.get('date_filter') or None
        overall_status = request.query_params.get('overall_status') or None
        payment_status = request.query_params.get('payment_status') or None

        errors = {}
        if date_filter and date_filter not in DateWindow.values:
            errors['date_filter'] = f'Must be one of: {", ".join(DateWindow.values)}'
        if overall_status and overall_status not in OverallStatus.values:
            errors['overall_status'] = f'Must be one of: {", ".join(OverallStatus.values)}'
        if payment_status and payment_status not in PaymentStatus.values:
            errors['payment_status'] = f'Must be one of: {", ".join(PaymentStatus.values)}'
        if errors:
            return Response(errors, status=status.HTTP_400_BAD_REQUEST)

        visits = services.pending_visits(
            overall_status=overall_status,
            payment_status=payment_status,
            date_filter=date_filter,
        )

        page = self.paginate_queryset(visits)
        statistics = VisitStatisticsSerializer(services.visit_statistics()).data
        if page is not None:
            response = self.get_paginated_response(VisitSerializer(page, many=True).data)
            response.data['statistics'] = statistics
            return response

        return Response({
            'results': VisitSerializer(visits, many=True).data,
            'statistics': statistics,
        })
