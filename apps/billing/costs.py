# apps/billing/costs.py
#
# Cost calculator shared by the estimate endpoint and visit registration.
# Both call estimate_for(), so a preview and the persisted visit always agree.

from dataclasses import dataclass, asdict
from decimal import Decimal

from core.conf import registration_fee as configured_registration_fee
from core.constants import DiscountType
from core.money import to_money, discount_amount, final_amount, ZERO


@dataclass(frozen=True)
class CostBreakdown:
    registration_fee: Decimal
    doctor_fee: Decimal
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal

    def as_dict(self):
        return asdict(self)


def normalize_discount_type(discount_type):
    if discount_type in (DiscountType.PERCENTAGE, DiscountType.AMOUNT):
        return DiscountType(discount_type)
    return DiscountType.NONE


def compute_costs(doctor_fee, discount_type, discount_value, registration_fee=None):
    """
    Compute the charges for a visit.

    registration_fee defaults to the configured CLINIC_BILLING value. Invalid
    discount types are treated as no discount.
    """
    if registration_fee is None:
        registration_fee = configured_registration_fee()

    registration_fee = max(ZERO, to_money(registration_fee))
    doctor_fee = max(ZERO, to_money(doctor_fee))
    total = registration_fee + doctor_fee

    discount = discount_amount(total, normalize_discount_type(discount_type), discount_value)

    return CostBreakdown(
        registration_fee=registration_fee,
        doctor_fee=doctor_fee,
        total_amount=total,
        discount_amount=discount,
        final_amount=final_amount(total, discount),
    )


def doctor_fee_for(doctor, is_followup=False):
    """Consultation fee for a doctor, the follow-up fee for follow-up visits when set"""
    if doctor is None:
        return ZERO
    return to_money(doctor.fee_for(is_followup))


def estimate_for(doctor, discount_type, discount_value, is_followup=False):
    return compute_costs(doctor_fee_for(doctor, is_followup), discount_type, discount_value)
