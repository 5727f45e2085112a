# apps/visits/signals.py
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver
import logging

from .events import visit_updated
from .models import Visit

logger = logging.getLogger(__name__)


# ===========================================
# VISIT SIGNALS
# ===========================================
@receiver(post_save, sender=Visit)
def visit_post_save(sender, instance, created, **kwargs):
    """Log visit creation"""
    if created:
        logger.info(f"New visit created: {instance.visit_id}")


@receiver(post_delete, sender=Visit)
def visit_post_delete(sender, instance, **kwargs):
    logger.info(f"Visit deleted: {instance.visit_id}")


# ===========================================
# VISIT EVENTS
# ===========================================
@receiver(visit_updated)
def log_visit_updated(sender, payload, **kwargs):
    """Delivery to real-time channels hooks in here"""
    visit = payload['visit']
    logger.info(
        f"VisitUpdated [{payload['channel']}] {payload['type']}: {visit['visit_id']} "
        f"({visit['overall_status']}, payment {visit['payment_status']})"
    )
