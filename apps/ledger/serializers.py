from rest_framework import serializers

from .models import AccountVoucher


class AccountVoucherSerializer(serializers.ModelSerializer):
    source_account_display = serializers.CharField(source='get_source_account_display', read_only=True)
    transaction_type_display = serializers.CharField(source='get_source_transaction_type_display', read_only=True)
    created_by_name = serializers.CharField(source='created_by.get_username', read_only=True, default=None)

    class Meta:
        model = AccountVoucher
        fields = [
            'id', 'voucher_no', 'voucher_type', 'date', 'narration', 'amount',
            'source_account', 'source_account_display',
            'source_transaction_type', 'transaction_type_display',
            'source_voucher_no', 'source_reference_id',
            'created_by', 'created_by_name', 'created_at'
        ]
        read_only_fields = fields


class LedgerTotalsSerializer(serializers.Serializer):
    credit_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    debit_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    net_change = serializers.DecimalField(max_digits=14, decimal_places=2)
