from decimal import Decimal

from django.db.models import Count, Sum
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.exceptions import BillingError
from core.permissions import IsAuthenticatedAndActive

from .models import Payment, PaymentMethod
from .serializers import (
    PaymentMethodSerializer, PaymentRecordSerializer, PaymentSerializer
)
from .services import PaymentLedger


# ===========================================
# PAYMENT METHOD VIEWSET
# ===========================================
class PaymentMethodViewSet(viewsets.ReadOnlyModelViewSet):
    """Payment methods offered at the front desk"""

    queryset = PaymentMethod.objects.all()
    serializer_class = PaymentMethodSerializer
    permission_classes = [IsAuthenticatedAndActive]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['is_active']

    @action(detail=False, methods=['get'])
    def active(self, request):
        """Get active payment methods"""
        methods = PaymentMethod.objects.filter(is_active=True).order_by('sort_order')
        serializer = self.get_serializer(methods, many=True)
        return Response(serializer.data)


# ===========================================
# PAYMENT VIEWSET
# ===========================================
class PaymentViewSet(mixins.CreateModelMixin,
                     viewsets.ReadOnlyModelViewSet):
    """Payments are recorded through the payment ledger and never edited"""

    queryset = Payment.objects.select_related(
        'visit', 'patient', 'payment_method', 'received_by'
    )
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticatedAndActive]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['visit', 'patient', 'payment_method', 'payment_date']

    def create(self, request, *args, **kwargs):
        """Record a payment for the visit given in the body"""
        serializer = PaymentRecordSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            payment = PaymentLedger().record_payment(
                data['visit'],
                data['amount'],
                method=data.get('payment_method'),
                payment_date=data.get('payment_date'),
                notes=data.get('notes', ''),
                received_by=request.user,
                idempotency_key=data.get('idempotency_key'),
            )
        except BillingError as e:
            return Response(e.as_dict(), status=e.status_code)

        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def summary(self, request):
        """Get payment summary statistics"""
        queryset = self.filter_queryset(self.get_queryset())

        method_breakdown = queryset.values('payment_method__name', 'payment_method__code').annotate(
            count=Count('id'),
            amount=Sum('amount')
        ).order_by('-amount')

        return Response({
            'total_payments': queryset.count(),
            'total_amount': queryset.aggregate(total=Sum('amount'))['total'] or Decimal('0'),
            'method_breakdown': list(method_breakdown),
        })
