# core/constants.py

from django.db import models


class DiscountType(models.TextChoices):
    NONE = 'none', 'None'
    PERCENTAGE = 'percentage', 'Percentage'
    AMOUNT = 'amount', 'Fixed Amount'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PARTIAL = 'partial', 'Partial'
    PAID = 'paid', 'Paid'


class StepStatus(models.TextChoices):
    """Status of a clinical step (vision test, prescription)"""
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'


class OverallStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    VISION_TEST = 'vision_test', 'Vision Test'
    PRESCRIPTION = 'prescription', 'Prescription'
    COMPLETED = 'completed', 'Completed'


class CompletionType(models.TextChoices):
    VISION_ONLY = 'vision_only', 'Vision Test Only'
    PRESCRIPTION_ONLY = 'prescription_only', 'Prescription Only'
    BOTH = 'both', 'Vision Test & Prescription'
    SIMPLE_COMPLETE = 'simple_complete', 'Simple Completion'


class SourceAccount(models.TextChoices):
    HOSPITAL = 'hospital', 'Hospital'
    MEDICINE = 'medicine', 'Medicine'
    OPTICS = 'optics', 'Optics'


class TransactionType(models.TextChoices):
    INCOME = 'income', 'Income'
    EXPENSE = 'expense', 'Expense'
    FUND_IN = 'fund_in', 'Fund In'
    FUND_OUT = 'fund_out', 'Fund Out'


class VoucherType(models.TextChoices):
    DEBIT = 'Debit', 'Debit'
    CREDIT = 'Credit', 'Credit'


class Gender(models.TextChoices):
    MALE = 'M', 'Male'
    FEMALE = 'F', 'Female'
    OTHER = 'O', 'Other'


class DateWindow(models.TextChoices):
    """Date windows offered by the pending visits screen"""
    TODAY = 'today', 'Today'
    YESTERDAY = 'yesterday', 'Yesterday'
    THIS_WEEK = 'this_week', 'This Week'
    LAST_WEEK = 'last_week', 'Last Week'
