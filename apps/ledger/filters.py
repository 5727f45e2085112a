from django_filters import rest_framework as django_filters

from .models import AccountVoucher


class AccountVoucherFilter(django_filters.FilterSet):
    """Filter for ledger vouchers"""

    date_from = django_filters.DateFilter(field_name='date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='date', lookup_expr='lte')

    class Meta:
        model = AccountVoucher
        fields = ['voucher_type', 'source_account', 'source_transaction_type', 'source_reference_id']
