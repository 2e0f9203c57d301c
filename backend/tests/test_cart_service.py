"""
Cart tests.

Verifies:
- Minimum-order thresholds and their exact messages
- Repeat adds merge into one line; zero removes; negatives are rejected
- Guest cart merge on login
- Inventory check reports every short line
"""

import pytest

from storefront.errors import NotFoundError, ValidationError
from storefront.models import CartItem
from storefront.extensions import db
from storefront.services import cart_service, product_service


GUEST = "guest:abc123"


@pytest.fixture
def owner(customer):
    return cart_service.user_owner(customer.id)


class TestMinimumOrder:
    @pytest.mark.parametrize(
        "quantity,is_wholesale,valid",
        [(4, False, False), (5, False, True), (99, True, False), (100, True, True)],
    )
    def test_thresholds(self, app, quantity, is_wholesale, valid):
        assert cart_service.check_minimum_order(quantity, is_wholesale).is_valid is valid

    def test_below_minimum_message(self, app):
        result = cart_service.check_minimum_order(4)
        assert result.message == "Order must contain at least 5 units. Currently has 4 units."
        assert result.errors == [result.message]

    def test_wholesale_minimum_message(self, app):
        result = cart_service.check_minimum_order(99, is_wholesale=True)
        assert result.message == "Order must contain at least 100 units. Currently has 99 units."

    def test_met_minimum_message(self, app):
        result = cart_service.check_minimum_order(5)
        assert result.message == "Order meets minimum requirements with 5 units."
        assert result.errors == []

    def test_empty_cart_is_invalid(self, owner):
        result = cart_service.validate_cart(owner)
        assert result.is_valid is False
        assert result.errors == ["Cart is empty"]

    def test_validate_cart_totals_lines(self, owner, variation, make_variation):
        other = make_variation(price_cents=900)
        cart_service.add_item(owner, variation.id, 2)
        cart_service.add_item(owner, other.id, 3)

        assert cart_service.validate_cart(owner).is_valid is True


class TestCartLines:
    def test_repeat_add_merges(self, owner, variation):
        cart_service.add_item(owner, variation.id, 2)
        line = cart_service.add_item(owner, variation.id, 3)

        assert line.quantity == 5
        assert db.session.query(CartItem).filter_by(owner_key=owner).count() == 1

    def test_cart_summary(self, owner, variation):
        cart_service.add_item(owner, variation.id, 4)

        cart = cart_service.get_cart(owner)
        assert cart["total_quantity"] == 4
        assert cart["subtotal_cents"] == 4000
        assert cart["meets_retail_minimum"] is False

    def test_update_to_zero_removes_line(self, owner, variation):
        line = cart_service.add_item(owner, variation.id, 2)

        assert cart_service.update_item(owner, line.id, 0) is None
        assert cart_service.get_cart(owner)["items"] == []

    def test_negative_quantity_rejected(self, owner, variation):
        line = cart_service.add_item(owner, variation.id, 2)
        with pytest.raises(ValidationError):
            cart_service.update_item(owner, line.id, -1)

    def test_cannot_touch_another_owners_line(self, owner, variation):
        line = cart_service.add_item(GUEST, variation.id, 2)
        with pytest.raises(NotFoundError):
            cart_service.update_item(owner, line.id, 3)

    def test_inactive_variation_hidden(self, owner, variation):
        cart_service.add_item(owner, variation.id, 6)
        product_service.update_variation(variation.id, {"is_active": False})

        assert cart_service.get_cart(owner)["items"] == []
        assert cart_service.validate_cart(owner).is_valid is False


class TestTransferCart:
    def test_guest_lines_merge_into_account(self, owner, variation, make_variation):
        other = make_variation(price_cents=700)
        cart_service.add_item(owner, variation.id, 2)
        cart_service.add_item(GUEST, variation.id, 3)
        cart_service.add_item(GUEST, other.id, 1)

        merged = cart_service.transfer_cart(GUEST, owner)

        assert merged == 2
        quantities = {line["variation_id"]: line["quantity"] for line in cart_service.get_cart(owner)["items"]}
        assert quantities == {variation.id: 5, other.id: 1}
        assert db.session.query(CartItem).filter_by(owner_key=GUEST).count() == 0

    def test_empty_source_is_noop(self, owner):
        assert cart_service.transfer_cart(GUEST, owner) == 0

    def test_merged_quantity_is_capped(self, owner, variation):
        cart_service.add_item(owner, variation.id, cart_service.MAX_LINE_QUANTITY)
        cart_service.add_item(GUEST, variation.id, cart_service.MAX_LINE_QUANTITY)

        cart_service.transfer_cart(GUEST, owner)

        [line] = db.session.query(CartItem).filter_by(owner_key=owner).all()
        assert line.quantity == cart_service.MAX_LINE_QUANTITY

    def test_guest_owner_rejects_blank_session(self, app):
        with pytest.raises(ValidationError):
            cart_service.guest_owner("  ")


class TestInventoryCheck:
    def test_reports_every_short_line(self, owner, make_variation, stock):
        first = make_variation(name="Mint 6mg")
        second = make_variation(name="Citrus 12mg")
        stock(first, 2)
        stock(second, 1)
        cart_service.add_item(owner, first.id, 5)
        cart_service.add_item(owner, second.id, 4)

        result = cart_service.validate_inventory(owner)

        assert result.is_valid is False
        assert result.message == "Some items in your cart are not available in the requested quantity."
        assert len(result.errors) == 2
        assert result.errors[0] == (
            f"Not enough inventory for {first.product.name} - Mint 6mg. Available: 2, Requested: 5"
        )

    def test_enough_stock_passes(self, owner, variation):
        cart_service.add_item(owner, variation.id, 10)
        assert cart_service.validate_inventory(owner).is_valid is True
