# core/mixins/immutable.py
from django.db import models

from core.exceptions import InvariantViolation


class AppendOnlyMixin(models.Model):
    """Rows can be inserted but never updated in place"""

    allow_delete = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvariantViolation(
                f"{self.__class__.__name__} {self.pk} is append-only and cannot be modified"
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if not self.allow_delete:
            raise InvariantViolation(
                f"{self.__class__.__name__} {self.pk} cannot be deleted, post a reversal instead"
            )
        return super().delete(*args, **kwargs)

    class Meta:
        abstract = True
