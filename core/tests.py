from decimal import Decimal

import pytest

from core.constants import DiscountType
from core.endpoints import Operation, endpoint_map, resolve_endpoint
from core.exceptions import ActiveVisitExists, BillingError, NotFound
from core.money import clamp, discount_amount, final_amount, to_money


class TestMoney:

    def test_to_money_quantizes_half_up(self):
        assert to_money('10.005') == Decimal('10.01')
        assert to_money(3) == Decimal('3.00')

    def test_to_money_empty_is_zero(self):
        assert to_money(None) == Decimal('0.00')
        assert to_money('') == Decimal('0.00')

    def test_to_money_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_money('ten')

    def test_clamp(self):
        assert clamp(Decimal('120'), Decimal('0'), Decimal('100')) == Decimal('100')
        assert clamp(Decimal('-5'), Decimal('0'), Decimal('100')) == Decimal('0')

    def test_percentage_discount_is_clamped_to_full_total(self):
        assert discount_amount('1000', DiscountType.PERCENTAGE, '120') == Decimal('1000.00')

    def test_negative_percentage_gives_no_discount(self):
        assert discount_amount('1000', DiscountType.PERCENTAGE, '-10') == Decimal('0.00')

    def test_amount_discount_never_exceeds_total(self):
        assert discount_amount('800', DiscountType.AMOUNT, '1000') == Decimal('800.00')

    def test_percentage_discount_rounds_to_cents(self):
        assert discount_amount('333.33', DiscountType.PERCENTAGE, '10') == Decimal('33.33')

    def test_unknown_discount_type_gives_no_discount(self):
        assert discount_amount('500', 'voucher', '50') == Decimal('0.00')

    def test_final_amount_never_negative(self):
        assert final_amount('100', '150') == Decimal('0.00')
        assert final_amount('500', '50') == Decimal('450.00')


class TestExceptions:

    def test_error_body_carries_message_and_code(self):
        error = NotFound('Visit 7 does not exist')
        assert error.as_dict() == {'error': 'Visit 7 does not exist', 'code': 'not_found'}
        assert error.status_code == 404

    def test_default_message(self):
        error = ActiveVisitExists()
        assert isinstance(error, BillingError)
        assert 'active visit' in error.message
        assert error.status_code == 409


class TestEndpoints:

    def test_resolves_collection_routes(self):
        assert resolve_endpoint(Operation.ESTIMATE_COST) == '/api/billing/estimate/'
        assert resolve_endpoint(Operation.REGISTER_VISIT) == '/api/visits/'
        assert resolve_endpoint('bulk_complete_visits') == '/api/visits/bulk-complete/'

    def test_resolves_detail_routes(self):
        assert resolve_endpoint(Operation.RECORD_PAYMENT, pk=5) == '/api/visits/5/payments/'
        assert resolve_endpoint(Operation.COMPLETE_VISIT, pk=5) == '/api/visits/5/complete/'
        assert resolve_endpoint(Operation.DELETE_VISIT, pk=5) == '/api/visits/5/'
        assert resolve_endpoint(Operation.UPDATE_VISIT, pk=5) == '/api/visits/5/'

    def test_missing_argument(self):
        with pytest.raises(ValueError):
            resolve_endpoint(Operation.COMPLETE_VISIT)

    def test_unknown_operation(self):
        with pytest.raises(ValueError):
            resolve_endpoint('reopen_visit')

    def test_endpoint_map_skips_unresolvable_operations(self):
        routes = endpoint_map()
        assert 'estimate_cost' in routes
        assert 'complete_visit' not in routes

        routes = endpoint_map(pk=3)
        assert routes['mark_vision_test'] == '/api/visits/3/mark_vision_test/'
