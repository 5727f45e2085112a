# apps/ledger/views.py
from django.utils import timezone
from django.utils.dateparse import parse_date
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response

from core.permissions import IsAuthenticatedAndActive

from .filters import AccountVoucherFilter
from .models import AccountVoucher
from .serializers import AccountVoucherSerializer, LedgerTotalsSerializer
from .services import account_summary, daily_totals, ledger_balance


class AccountVoucherViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only access to the main account ledger"""

    queryset = AccountVoucher.objects.select_related('created_by')
    serializer_class = AccountVoucherSerializer
    permission_classes = [IsAuthenticatedAndActive]
    filter_backends = [DjangoFilterBackend]
    filterset_class = AccountVoucherFilter

    @action(detail=False, methods=['get'])
    def summary(self, request):
        """Totals per source account plus today's movement"""
        start_date = parse_date(request.query_params.get('start_date', '') or '')
        end_date = parse_date(request.query_params.get('end_date', '') or '')

        summary = account_summary(start_date=start_date, end_date=end_date)
        today = daily_totals(timezone.localdate())

        return Response({
            'accounts': {
                key: LedgerTotalsSerializer(value).data for key, value in summary.items()
            },
            'today': {
                **LedgerTotalsSerializer(today).data,
                'voucher_count': today['voucher_count'],
            },
        })

    @action(detail=False, methods=['get'])
    def balance(self, request):
        """Net balance, optionally for one source reference"""
        reference = request.query_params.get('source_reference_id')
        if reference is not None and not reference.isdigit():
            return Response(
                {'error': 'source_reference_id must be an integer'},
                status=status.HTTP_400_BAD_REQUEST
            )

        balance = ledger_balance(
            source_reference_id=int(reference) if reference is not None else None,
            source_account=request.query_params.get('source_account'),
        )
        return Response({'balance': f'{balance:.2f}'})
