# core/endpoints.py

from django.db import models
from django.urls import reverse


class Operation(models.TextChoices):
    """Named operations exposed to the front desk UI"""
    ESTIMATE_COST = 'estimate_cost', 'Estimate Cost'
    REGISTER_VISIT = 'register_visit', 'Register Visit'
    UPDATE_VISIT = 'update_visit', 'Update Visit'
    RECORD_PAYMENT = 'record_payment', 'Record Payment'
    COMPLETE_VISIT = 'complete_visit', 'Complete Visit'
    BULK_COMPLETE_VISITS = 'bulk_complete_visits', 'Bulk Complete Visits'
    DELETE_VISIT = 'delete_visit', 'Delete Visit'
    PENDING_VISITS = 'pending_visits', 'Pending Visits'
    MARK_VISION_TEST = 'mark_vision_test', 'Mark Vision Test Complete'
    MARK_PRESCRIPTION = 'mark_prescription', 'Mark Prescription Complete'
    LEDGER_SUMMARY = 'ledger_summary', 'Ledger Summary'


# operation -> (url name, kwargs the route requires)
OPERATION_ROUTES = {
    Operation.ESTIMATE_COST: ('cost-estimate', ()),
    Operation.REGISTER_VISIT: ('visit-list', ()),
    Operation.UPDATE_VISIT: ('visit-detail', ('pk',)),
    Operation.RECORD_PAYMENT: ('visit-payments', ('pk',)),
    Operation.COMPLETE_VISIT: ('visit-complete', ('pk',)),
    Operation.BULK_COMPLETE_VISITS: ('visit-bulk-complete', ()),
    Operation.DELETE_VISIT: ('visit-detail', ('pk',)),
    Operation.PENDING_VISITS: ('visit-pending', ()),
    Operation.MARK_VISION_TEST: ('visit-mark-vision-test', ('pk',)),
    Operation.MARK_PRESCRIPTION: ('visit-mark-prescription', ('pk',)),
    Operation.LEDGER_SUMMARY: ('voucher-summary', ()),
}


def resolve_endpoint(operation, **kwargs):
    """
    Resolve the URL path for a named operation.

    Raises ValueError for an unknown operation or a missing route argument.
    """
    url_name, required = OPERATION_ROUTES[Operation(operation)]
    missing = [name for name in required if name not in kwargs]
    if missing:
        raise ValueError(f"Operation {operation} requires: {', '.join(missing)}")
    return reverse(url_name, kwargs={name: kwargs[name] for name in required})


def endpoint_map(**kwargs):
    """All operations that can be resolved with the given arguments"""
    resolved = {}
    for operation, (url_name, required) in OPERATION_ROUTES.items():
        if all(name in kwargs for name in required):
            resolved[operation.value] = resolve_endpoint(operation, **kwargs)
    return resolved
