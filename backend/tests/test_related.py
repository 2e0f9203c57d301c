"""
EntityRef tests: the typed reference used by commissions and tasks.
"""

import uuid

import pytest

from storefront.errors import ValidationError
from storefront.models import EntityRef, RelatedEntity, Task


ORDER_ID = str(uuid.uuid4())


class TestEntityRef:
    def test_order_requires_uuid(self):
        with pytest.raises(ValidationError):
            EntityRef.order("not-a-uuid")

    def test_order_rejects_int_id(self):
        with pytest.raises(ValidationError):
            EntityRef(RelatedEntity.ORDER, 42)

    def test_int_kinds_reject_strings_and_bools(self):
        with pytest.raises(ValidationError):
            EntityRef(RelatedEntity.USER, "7")
        with pytest.raises(ValidationError):
            EntityRef(RelatedEntity.COMMISSION, True)

    def test_kind_accepts_string_value(self):
        ref = EntityRef("Payment", 3)
        assert ref.kind is RelatedEntity.PAYMENT

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            EntityRef("Invoice", 1)

    def test_columns_round_trip(self):
        for ref in (EntityRef.order(ORDER_ID), EntityRef.user(12)):
            assert EntityRef.from_columns(*ref.to_columns()) == ref

    def test_from_empty_columns(self):
        assert EntityRef.from_columns(None, None) is None

    def test_to_dict(self):
        assert EntityRef.user(5).to_dict() == {"type": "User", "id": 5}


class TestRelatedEntityMixin:
    def test_setter_writes_both_columns(self):
        task = Task(title="Check")
        task.related = EntityRef.order(ORDER_ID)

        assert task.related_to == "Order"
        assert task.related_id == ORDER_ID
        assert task.related == EntityRef.order(ORDER_ID)

    def test_setter_clears(self):
        task = Task(title="Check")
        task.related = EntityRef.user(1)
        task.related = None

        assert task.related_to is None
        assert task.related is None

    def test_setter_rejects_raw_tuple(self):
        task = Task(title="Check")
        with pytest.raises(ValidationError):
            task.related = ("Order", ORDER_ID)
