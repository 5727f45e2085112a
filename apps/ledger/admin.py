from django.contrib import admin

from .models import AccountVoucher


@admin.register(AccountVoucher)
class AccountVoucherAdmin(admin.ModelAdmin):
    list_display = ('voucher_no', 'voucher_type', 'date', 'amount', 'source_account',
                    'source_transaction_type', 'source_reference_id')
    list_filter = ('voucher_type', 'source_account', 'source_transaction_type', 'date')
    search_fields = ('voucher_no', 'narration', 'source_voucher_no')
    readonly_fields = [field.name for field in AccountVoucher._meta.fields]

    # The ledger is append-only
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
