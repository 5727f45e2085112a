# apps/visits/events.py
#
# VisitUpdated event. Receivers get the payload only after the transaction
# that changed the visit has committed.

import logging

from django.db import transaction
from django.dispatch import Signal

from core.conf import billing_setting

logger = logging.getLogger(__name__)


# Sent with sender=Visit and payload=dict
visit_updated = Signal()

UPDATED = 'updated'
DELETED = 'deleted'


def build_payload(visit, event_type=UPDATED):
    from .serializers import VisitEventSerializer

    return {
        'visit': VisitEventSerializer(visit).data,
        'doctor_id': visit.selected_doctor_id,
        'type': event_type,
        'channel': billing_setting('EVENT_CHANNEL'),
    }


def publish_visit_updated(visit, event_type=UPDATED):
    """
    Queue a VisitUpdated event for after the current transaction commits.

    The payload is built now, so a deleted visit is described as it was
    before deletion. Nothing is sent if the transaction rolls back.
    """
    payload = build_payload(visit, event_type)

    def send():
        visit_updated.send(sender=visit.__class__, payload=payload)

    transaction.on_commit(send)
    return payload
