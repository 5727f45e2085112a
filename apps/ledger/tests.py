from datetime import date
from decimal import Decimal

import pytest
from django.db import transaction

from core.constants import SourceAccount, TransactionType, VoucherType
from core.exceptions import ConcurrentModification, InvalidAmount, InvariantViolation
from apps.ledger.models import AccountVoucher, NumberSequence
from apps.ledger.services import (
    VoucherPoster, account_summary, daily_totals, generate_narration, ledger_balance
)


class TestNarration:

    def test_known_account_and_type(self):
        narration = generate_narration(
            'hospital', 'income', 'OPD Income', 'Visit payment from Patient: Karim (ID: P-1)'
        )
        assert narration == 'Hospital Income - OPD Income: Visit payment from Patient: Karim (ID: P-1)'

    def test_fund_transfer_display(self):
        assert generate_narration('optics', 'fund_out', 'Transfer', 'to bank') == \
            'Optics Fund Out - Transfer: to bank'

    def test_unknown_values_are_capitalized(self):
        assert generate_narration('pharmacy', 'petty_cash', 'Misc', 'tea') == \
            'Pharmacy Petty cash - Misc: tea'


@pytest.mark.django_db
class TestVoucherPoster:

    def post(self, poster, voucher_type=VoucherType.CREDIT, amount='100.00', **kwargs):
        return poster.post(
            voucher_type, amount, 'Hospital Income - OPD Income: test',
            SourceAccount.HOSPITAL, TransactionType.INCOME, **kwargs
        )

    def test_posts_sequential_voucher_numbers(self):
        poster = VoucherPoster()
        first = self.post(poster)
        second = self.post(poster, VoucherType.DEBIT, '40.00')

        assert first.voucher_no == '00001'
        assert second.voucher_no == '00002'
        assert second.amount == Decimal('40.00')

    def test_defaults_date_to_today(self):
        voucher = self.post(VoucherPoster())
        assert voucher.date is not None

    def test_rejects_non_positive_amount(self):
        with pytest.raises(InvalidAmount):
            self.post(VoucherPoster(), amount='0')
        assert AccountVoucher.objects.count() == 0

    def test_rejects_unknown_voucher_type(self):
        with pytest.raises(ValueError):
            self.post(VoucherPoster(), voucher_type='Transfer')

    def test_numbering_collision_is_a_conflict(self, monkeypatch):
        poster = VoucherPoster()
        self.post(poster)
        monkeypatch.setattr(VoucherPoster, '_next_voucher_no', staticmethod(lambda: '00001'))

        with pytest.raises(ConcurrentModification):
            with transaction.atomic():
                self.post(poster)

        assert AccountVoucher.objects.count() == 1

    def test_vouchers_are_append_only(self):
        voucher = self.post(VoucherPoster())
        voucher.narration = 'edited'

        with pytest.raises(InvariantViolation):
            voucher.save()
        with pytest.raises(InvariantViolation):
            voucher.delete()

        assert AccountVoucher.objects.get(pk=voucher.pk).narration == 'Hospital Income - OPD Income: test'

    def test_balance_per_reference(self):
        poster = VoucherPoster()
        self.post(poster, amount='300.00', source_reference_id=11)
        self.post(poster, VoucherType.DEBIT, '300.00', source_reference_id=11)
        self.post(poster, amount='50.00', source_reference_id=12)

        assert ledger_balance(source_reference_id=11) == Decimal('0.00')
        assert ledger_balance(source_reference_id=12) == Decimal('50.00')
        assert ledger_balance() == Decimal('50.00')

    def test_daily_totals_and_account_summary(self):
        poster = VoucherPoster()
        day = date(2024, 3, 1)
        self.post(poster, amount='200.00', date=day)
        self.post(poster, VoucherType.DEBIT, '20.00', date=day)
        poster.credit('75.00', 'Optics Income - Sales: glasses', SourceAccount.OPTICS,
                      TransactionType.INCOME, date=day)

        totals = daily_totals(day)
        assert totals['credit_total'] == Decimal('275.00')
        assert totals['debit_total'] == Decimal('20.00')
        assert totals['voucher_count'] == 3

        summary = account_summary(start_date=day, end_date=day)
        assert summary['hospital']['net_change'] == Decimal('180.00')
        assert summary['optics']['net_change'] == Decimal('75.00')
        assert summary['medicine']['net_change'] == Decimal('0.00')


@pytest.mark.django_db
class TestVoucherApi:

    def test_vouchers_are_listed_and_summarized(self, api_client):
        VoucherPoster().credit('120.00', 'Hospital Income - OPD Income: x',
                               SourceAccount.HOSPITAL, TransactionType.INCOME,
                               source_reference_id=9)

        response = api_client.get('/api/ledger/vouchers/')
        assert response.status_code == 200
        assert response.data['count'] == 1

        response = api_client.get('/api/ledger/vouchers/balance/', {'source_reference_id': 9})
        assert response.data == {'balance': '120.00'}

        response = api_client.get('/api/ledger/vouchers/summary/')
        assert response.status_code == 200
        assert response.data['accounts']['hospital']['credit_total'] == '120.00'

    def test_vouchers_cannot_be_written_through_the_api(self, api_client):
        response = api_client.post('/api/ledger/vouchers/', {})
        assert response.status_code == 405


@pytest.mark.django_db
class TestNumberSequence:

    def test_series_count_independently(self):
        assert NumberSequence.next_value('voucher') == 1
        assert NumberSequence.next_value('voucher') == 2
        assert NumberSequence.next_value('payment-20260101') == 1
        assert NumberSequence.objects.get(name='voucher').last_value == 2

