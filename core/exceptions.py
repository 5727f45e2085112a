# core/exceptions.py

from rest_framework import status


class BillingError(Exception):
    """Base class for errors raised by the visit billing core"""

    code = 'billing_error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Billing operation failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self):
        return {'error': self.message, 'code': self.code}


class NotFound(BillingError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Record not found'


class InvalidAmount(BillingError):
    code = 'invalid_amount'
    default_message = 'Amount must be greater than zero'


class InvalidCompletionType(BillingError):
    code = 'invalid_completion_type'
    default_message = 'Unknown completion type'


class InvariantViolation(BillingError):
    code = 'invariant_violation'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Billing invariant violated'


class ConcurrentModification(BillingError):
    code = 'concurrent_modification'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Visit is being modified by another request, retry the operation'


class VisitAlreadyCompleted(BillingError):
    code = 'visit_already_completed'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Visit is already completed'


class MissingEvidence(BillingError):
    code = 'missing_evidence'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'No clinical record exists for this step'


class ActiveVisitExists(BillingError):
    code = 'active_visit_exists'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This patient already has an active visit. Please complete the current visit first.'


class IdempotencyConflict(BillingError):
    code = 'idempotency_conflict'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Idempotency key was already used for a different payment'
