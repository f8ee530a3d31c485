"""
Base model classes shared by the session security models.
"""

import uuid

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model with UUID primary key.

    Session identifiers are handed to clients, so every model in the
    system uses a random UUID rather than a sequential integer.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record"
    )

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.__class__.__name__}({self.id})"

    def __repr__(self):
        return f"<{self.__class__.__name__}: {self.id}>"

