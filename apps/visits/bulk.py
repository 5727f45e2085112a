# apps/visits/bulk.py
#
# Batch completion for the pending visits screen. The batch is not atomic:
# each visit is completed in its own transaction and failures are reported
# per id.

import logging
from dataclasses import dataclass, field

from django.db import IntegrityError, transaction

from core.constants import CompletionType
from core.exceptions import BillingError, ConcurrentModification, InvalidCompletionType

from .events import publish_visit_updated
from .models import Visit
from .status import VisitStatusMachine

logger = logging.getLogger(__name__)

DEFAULT_BULK_NOTES = 'Bulk completion by receptionist'


@dataclass
class BulkCompletionReport:
    succeeded: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    failed: list = field(default_factory=list)

    def add_failure(self, visit_id, error):
        self.failed.append({'id': visit_id, 'reason': error.message, 'code': error.code})

    def as_dict(self):
        return {
            'succeeded': self.succeeded,
            'skipped': self.skipped,
            'failed': self.failed,
        }


def selectable_visit_ids(visit_ids):
    """The ids from visit_ids that can still be completed"""
    return list(
        Visit.objects.filter(pk__in=visit_ids)
        .active()
        .order_by('pk')
        .values_list('pk', flat=True)
    )


def bulk_complete_visits(visit_ids, completion_type, bulk_notes=None,
                         settle_due=False, payment_method=None, user=None):
    """
    Complete each visit independently.

    Visits that are already completed are skipped and also counted as
    succeeded. With settle_due, whatever is due on a visit is paid through
    the payment ledger before it is completed.
    """
    if completion_type not in CompletionType.values:
        raise InvalidCompletionType(f"Unknown completion type: {completion_type}")

    from apps.payments.services import PaymentLedger
    ledger = PaymentLedger()

    actor = user if user is not None and user.is_authenticated else None
    note_text = f"Bulk completion: {bulk_notes or DEFAULT_BULK_NOTES}"
    report = BulkCompletionReport()

    # dict.fromkeys keeps request order and drops duplicates
    for visit_id in dict.fromkeys(visit_ids):
        try:
            with transaction.atomic():
                visit = Visit.objects.lock(visit_id)
                if visit.is_completed:
                    report.skipped.append(visit_id)
                    report.succeeded.append(visit_id)
                    continue

                if settle_due:
                    ledger.settle_due(
                        visit,
                        method=payment_method,
                        notes=note_text,
                        received_by=actor,
                    )

                machine = VisitStatusMachine(visit)
                machine.complete(
                    completion_type,
                    skip_vision_test=True,
                    skip_prescription=True,
                    note_text=note_text,
                )
                machine.check_invariants()
                visit.updated_by = actor
                visit.save()
                publish_visit_updated(visit)
        except IntegrityError as e:
            error = ConcurrentModification(f"Visit {visit_id} collided with another request: {e}")
            logger.warning(f"Bulk completion failed for visit {visit_id}: {error.message}")
            report.add_failure(visit_id, error)
            continue
        except BillingError as e:
            logger.warning(f"Bulk completion failed for visit {visit_id}: {e.message}")
            report.add_failure(visit_id, e)
            continue

        report.succeeded.append(visit_id)

    logger.info(
        f"Bulk completion ({completion_type}): {len(report.succeeded)} succeeded, "
        f"{len(report.skipped)} skipped, {len(report.failed)} failed"
    )
    return report
