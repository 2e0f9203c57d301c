# Overview: Typed polymorphic reference used by commissions and tasks.

"""
Related-entity references.

Commissions and tasks point at "the thing they are about": an order, a user,
a payment, a wholesale application. The database keeps two plain columns
(related_to, related_id) but application code only sees EntityRef, a tagged
value whose kind fixes the id type. Orders and payout batches use UUID string
ids; everything else uses integer ids.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass

from ..errors import ValidationError


class RelatedEntity(str, enum.Enum):
    ORDER = "Order"
    USER = "User"
    PAYMENT = "Payment"
    COMMISSION = "Commission"
    WHOLESALE_APPLICATION = "WholesaleApplication"
    PAYOUT_BATCH = "PayoutBatch"

    @property
    def uses_uuid(self) -> bool:
        return self in (RelatedEntity.ORDER, RelatedEntity.PAYOUT_BATCH)


@dataclass(frozen=True)
class EntityRef:
    kind: RelatedEntity
    id: int | str

    def __post_init__(self):
        if not isinstance(self.kind, RelatedEntity):
            try:
                object.__setattr__(self, "kind", RelatedEntity(self.kind))
            except ValueError:
                raise ValidationError(f"Unknown related entity kind: {self.kind}")

        if self.kind.uses_uuid:
            if not isinstance(self.id, str):
                raise ValidationError(f"{self.kind.value} references require a UUID string id")
            try:
                uuid.UUID(self.id)
            except ValueError:
                raise ValidationError(f"Invalid {self.kind.value} id: {self.id}")
        elif isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValidationError(f"{self.kind.value} references require an integer id")

    @classmethod
    def order(cls, order_id: str) -> "EntityRef":
        return cls(RelatedEntity.ORDER, order_id)

    @classmethod
    def user(cls, user_id: int) -> "EntityRef":
        return cls(RelatedEntity.USER, user_id)

    @classmethod
    def commission(cls, commission_id: int) -> "EntityRef":
        return cls(RelatedEntity.COMMISSION, commission_id)

    @classmethod
    def from_columns(cls, related_to: str | None, related_id: str | None) -> "EntityRef | None":
        """Rebuild a reference from its storage columns."""
        if not related_to or related_id is None:
            return None
        kind = RelatedEntity(related_to)
        return cls(kind, related_id if kind.uses_uuid else int(related_id))

    def to_columns(self) -> tuple[str, str]:
        return self.kind.value, str(self.id)

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "id": self.id}


class RelatedEntityMixin:
    """
    Adds a typed `related` property over related_to/related_id columns.

    The including model must declare both columns.
    """

    @property
    def related(self) -> EntityRef | None:
        return EntityRef.from_columns(self.related_to, self.related_id)

    @related.setter
    def related(self, ref: EntityRef | None) -> None:
        if ref is None:
            self.related_to = None
            self.related_id = None
            return
        if not isinstance(ref, EntityRef):
            raise ValidationError("related must be an EntityRef")
        self.related_to, self.related_id = ref.to_columns()
