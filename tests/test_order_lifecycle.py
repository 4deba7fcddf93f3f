"""Tests for the order lifecycle manager."""

import re
from datetime import timedelta

import pytest

from food_ordering.core.config import Settings
from food_ordering.exceptions import Forbidden, NotFound, Unexpected, ValidationFailed
from food_ordering.models import OrderStatus, PaymentMethod, PaymentStatus, Restaurant
from food_ordering.services.orders import OrderLifecycleManager, generate_order_number
from tests.factories import order_payload


async def place(manager, customer, restaurant_id, **overrides):
    return await manager.create(customer.id, **order_payload(restaurant_id, **overrides))


class TestGenerateOrderNumber:
    def test_prefix_then_millis_and_suffix(self):
        number = generate_order_number("KOB")

        assert re.fullmatch(r"KOB\d{14,16}", number)

    def test_custom_prefix(self):
        assert generate_order_number("ORD").startswith("ORD")


class TestCreate:
    async def test_new_order_is_pending_with_one_timeline_entry(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        assert order.status == OrderStatus.PENDING
        assert len(order.items) == 2
        assert order.pricing["total"] == 7500
        assert len(order.timeline) == 1
        assert order.timeline[0]["status"] == "pending"
        assert order.timeline[0]["note"] == "Order placed successfully"

    async def test_stores_parties_payment_and_delivery_estimate(
        self, manager, customer, restaurant_id, clock
    ):
        order = await place(manager, customer, restaurant_id, special_instructions="No onions")

        assert order.customer_id == customer.id
        assert order.restaurant_id == restaurant_id
        assert order.special_instructions == "No onions"
        assert order.payment["method"] == PaymentMethod.BANK_TRANSFER.value
        assert order.payment["status"] == PaymentStatus.PENDING.value
        assert order.payment["bank_transfer"] is None
        assert order.estimated_delivery_time == clock.now + timedelta(
            minutes=manager.settings.estimated_delivery_minutes
        )
        assert order.order_number.startswith("KOB")

    async def test_items_keep_customizations(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        assert order.items[1]["customizations"] == {"spicy": True, "extra_egg": 1}
        assert order.items[0]["customizations"] == {}

    async def test_items_are_a_snapshot_of_the_menu(self, manager, session, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        restaurant = await session.get(Restaurant, restaurant_id)
        restaurant.menu = [{**m, "price": m["price"] * 2} for m in restaurant.menu]
        await session.commit()

        reloaded = await manager.get_by_id(customer, order.id)
        assert [i["price"] for i in reloaded.items] == [3500, 1500]

    async def test_unknown_restaurant(self, manager, customer, restaurant_id):
        with pytest.raises(NotFound):
            await place(manager, customer, restaurant_id + 100)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"items": [{"menu_item_id": "x", "name": "X", "price": -1, "quantity": 1}]},
            {"items": [{"menu_item_id": "x", "name": "X", "price": 10, "quantity": 0}]},
            {"items": [{"menu_item_id": "x", "name": "X", "price": 10, "quantity": 1,
                        "customizations": {"nested": {"a": 1}}}]},
            {"pricing": {"subtotal": 1, "delivery_fee": -5, "service_fee": 0, "tax": 0, "total": 0}},
            {"delivery_address": {"name": "Ada", "street": "", "city": "Ikeja", "state": "Lagos"}},
        ],
        ids=[
            "no-items",
            "negative-price",
            "zero-quantity",
            "nested-customization",
            "negative-fee",
            "blank-street",
        ],
    )
    async def test_invalid_input(self, manager, customer, restaurant_id, overrides):
        with pytest.raises(ValidationFailed):
            await place(manager, customer, restaurant_id, **overrides)

    async def test_mismatched_total_accepted_by_default(self, manager, customer, restaurant_id):
        pricing = {"subtotal": 6500, "delivery_fee": 500, "service_fee": 200, "tax": 300, "total": 1}

        order = await place(manager, customer, restaurant_id, pricing=pricing)

        assert order.pricing["total"] == 1

    async def test_mismatched_total_rejected_when_enforced(self, session, customer, restaurant_id):
        manager = OrderLifecycleManager(session, settings=Settings(enforce_pricing_total=True))
        pricing = {"subtotal": 6500, "delivery_fee": 500, "service_fee": 200, "tax": 300, "total": 1}

        with pytest.raises(ValidationFailed):
            await place(manager, customer, restaurant_id, pricing=pricing)

    async def test_order_number_collision_is_retried(self, session, clock, customer, restaurant_id):
        numbers = iter(["KOB1", "KOB1", "KOB2"])
        manager = OrderLifecycleManager(session, clock=clock, number_factory=lambda: next(numbers))

        first = await place(manager, customer, restaurant_id)
        first_id = first.id
        second = await place(manager, customer, restaurant_id)

        assert second.order_number == "KOB2"
        assert second.id != first_id

    async def test_collision_gives_up_after_max_attempts(self, session, customer, restaurant_id):
        manager = OrderLifecycleManager(
            session,
            settings=Settings(order_number_max_attempts=3),
            number_factory=lambda: "KOB1",
        )
        await place(manager, customer, restaurant_id)

        with pytest.raises(Unexpected):
            await place(manager, customer, restaurant_id)


class TestList:
    async def test_customer_only_sees_own_orders(
        self, manager, customer, other_customer, admin, restaurant_id
    ):
        await place(manager, customer, restaurant_id)
        await place(manager, other_customer, restaurant_id)
        await place(manager, other_customer, restaurant_id)

        orders, pagination = await manager.list_orders(customer)
        assert [o.customer_id for o in orders] == [customer.id]
        assert pagination.total == 1

        orders, pagination = await manager.list_orders(admin)
        assert pagination.total == 3

    async def test_customer_filters_cannot_widen_scope(
        self, manager, customer, other_customer, restaurant_id
    ):
        foreign = await place(manager, other_customer, restaurant_id)

        orders, _ = await manager.list_orders(
            customer, status="pending", search=foreign.order_number
        )

        assert orders == []

    async def test_newest_first(self, manager, customer, restaurant_id, clock):
        first = await place(manager, customer, restaurant_id)
        clock.advance(minutes=5)
        second = await place(manager, customer, restaurant_id)

        orders, _ = await manager.list_orders(customer)

        assert [o.id for o in orders] == [second.id, first.id]

    async def test_filter_by_status(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)
        await place(manager, customer, restaurant_id)
        await manager.update_status(admin, order.id, OrderStatus.PREPARING)

        orders, pagination = await manager.list_orders(customer, status="preparing")

        assert [o.id for o in orders] == [order.id]
        assert pagination.total == 1

    async def test_search_is_case_insensitive_substring(self, session, admin, customer, restaurant_id):
        numbers = iter(["KOB1000123", "KOB2000456"])
        manager = OrderLifecycleManager(session, number_factory=lambda: next(numbers))
        await place(manager, customer, restaurant_id)
        await place(manager, customer, restaurant_id)

        orders, _ = await manager.list_orders(admin, search="kob1000")
        assert [o.order_number for o in orders] == ["KOB1000123"]

        orders, _ = await manager.list_orders(admin, search="%")
        assert orders == []

    async def test_pagination(self, manager, customer, restaurant_id, clock):
        for _ in range(5):
            clock.advance(seconds=1)
            await place(manager, customer, restaurant_id)

        orders, pagination = await manager.list_orders(customer, page=2, limit=2)

        assert len(orders) == 2
        assert pagination.model_dump() == {
            "page": 2,
            "limit": 2,
            "total": 5,
            "total_pages": 3,
            "has_next": True,
            "has_prev": True,
        }

        orders, pagination = await manager.list_orders(customer, page=3, limit=2)
        assert len(orders) == 1
        assert pagination.has_next is False

    async def test_empty_result(self, manager, customer):
        orders, pagination = await manager.list_orders(customer)

        assert orders == []
        assert pagination.total_pages == 0
        assert pagination.has_next is False
        assert pagination.has_prev is False

    @pytest.mark.parametrize(
        "kwargs",
        [{"page": 0}, {"limit": 0}, {"limit": 51}, {"status": "lost"}, {"search": "   "}],
    )
    async def test_invalid_query(self, manager, customer, kwargs):
        with pytest.raises(ValidationFailed):
            await manager.list_orders(customer, **kwargs)


class TestGetById:
    async def test_owner_and_admin_can_read(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        assert (await manager.get_by_id(customer, order.id)).id == order.id
        assert (await manager.get_by_id(admin, order.id)).id == order.id

    async def test_foreign_order_is_not_found(self, manager, customer, other_customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(NotFound):
            await manager.get_by_id(other_customer, order.id)

    async def test_missing_order(self, manager, admin):
        with pytest.raises(NotFound):
            await manager.get_by_id(admin, 999)


class TestUpdateStatus:
    async def test_appends_one_entry_matching_new_status(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        for status in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY):
            before = len(order.timeline)
            order = await manager.update_status(admin, order.id, status)

            assert order.status == status
            assert len(order.timeline) == before + 1
            assert order.timeline[-1]["status"] == status.value
            assert order.timeline[-1]["updated_by"] == admin.id

    async def test_default_and_custom_note(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        order = await manager.update_status(admin, order.id, "preparing")
        assert order.timeline[-1]["note"] == "Order status updated to preparing"

        order = await manager.update_status(admin, order.id, "ready", note="Bag sealed")
        assert order.timeline[-1]["note"] == "Bag sealed"

    async def test_delivered_sets_actual_delivery_time(
        self, manager, customer, admin, restaurant_id, clock
    ):
        order = await place(manager, customer, restaurant_id)
        delivered_at = clock.advance(minutes=40)

        order = await manager.update_status(admin, order.id, OrderStatus.DELIVERED)

        assert order.status == OrderStatus.DELIVERED
        assert order.actual_delivery_time == delivered_at
        assert order.timeline[-1]["timestamp"] == delivered_at.isoformat()

    async def test_cancel_note_becomes_reason(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        order = await manager.update_status(
            admin, order.id, OrderStatus.CANCELLED, note="Restaurant closed"
        )

        assert order.cancel_reason == "Restaurant closed"

    async def test_any_transition_is_allowed(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)
        await manager.update_status(admin, order.id, OrderStatus.DELIVERED)

        order = await manager.update_status(admin, order.id, OrderStatus.PENDING)

        assert order.status == OrderStatus.PENDING
        assert [e["status"] for e in order.timeline] == ["pending", "delivered", "pending"]

    async def test_requires_admin(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(Forbidden):
            await manager.update_status(customer, order.id, OrderStatus.DELIVERED)

    async def test_invalid_status_and_note(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(ValidationFailed):
            await manager.update_status(admin, order.id, "teleported")
        with pytest.raises(ValidationFailed):
            await manager.update_status(admin, order.id, "ready", note="x" * 501)

    async def test_missing_order(self, manager, admin):
        with pytest.raises(NotFound):
            await manager.update_status(admin, 999, OrderStatus.READY)


class TestUpdatePayment:
    async def test_owner_updates_reference_and_status(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        order = await manager.update_payment(customer, order.id, "REF-77", "confirmed")

        assert order.payment["reference"] == "REF-77"
        assert order.payment["status"] == "confirmed"
        assert order.payment["method"] == "bank_transfer"
        assert order.status == OrderStatus.PENDING
        assert len(order.timeline) == 2
        assert order.timeline[-1]["status"] == "payment_updated"
        assert order.timeline[-1]["note"] == "Payment reference updated: REF-77"
        assert order.timeline[-1]["updated_by"] == customer.id

    async def test_admin_may_update(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        order = await manager.update_payment(admin, order.id, "REF-1", PaymentStatus.FAILED)

        assert order.payment["status"] == "failed"

    async def test_other_customer_is_forbidden(self, manager, customer, other_customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(Forbidden):
            await manager.update_payment(other_customer, order.id, "REF-1", "confirmed")

    @pytest.mark.parametrize("status, reference", [("refunded", "REF"), ("paid", "REF"), ("pending", " ")])
    async def test_invalid_input(self, manager, customer, restaurant_id, status, reference):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(ValidationFailed):
            await manager.update_payment(customer, order.id, reference, status)


class TestRecordBankTransfer:
    async def test_records_transfer_without_changing_statuses(
        self, manager, customer, restaurant_id, clock
    ):
        order = await place(manager, customer, restaurant_id)
        clock.advance(minutes=2)

        receipt = await manager.record_bank_transfer(
            customer, order.order_number, 7500, "TRF-001", "0123456789"
        )

        assert receipt.model_dump() == {
            "reference": "TRF-001",
            "order_number": order.order_number,
            "amount": 7500,
            "customer_email": None,
        }
        order = await manager.get_by_id(customer, order.id)
        assert order.status == OrderStatus.PENDING
        assert order.payment["status"] == "pending"
        assert order.payment["method"] == "bank_transfer"
        assert order.payment["reference"] == "TRF-001"
        assert order.payment["bank_transfer"] == {
            "amount": 7500,
            "reference": "TRF-001",
            "confirmed": False,
            "transfer_date": clock.now.isoformat(),
            "confirmation_date": None,
            "confirmed_by": None,
        }
        assert order.timeline[-1]["status"] == "payment_initiated"
        assert order.timeline[-1]["note"] == "Bank transfer initiated with reference: TRF-001"

    async def test_receipt_echoes_customer_email(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        receipt = await manager.record_bank_transfer(
            customer, order.order_number, 7500, "TRF-002", "0123456789",
            customer_email="ada@example.com",
        )

        assert receipt.customer_email == "ada@example.com"

    async def test_replaces_previous_transfer(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)
        await manager.record_bank_transfer(customer, order.order_number, 100, "OLD", "0123456789")

        await manager.record_bank_transfer(customer, order.order_number, 7500, "NEW", "0123456789")

        order = await manager.get_by_id(customer, order.id)
        assert order.payment["bank_transfer"]["reference"] == "NEW"
        assert order.payment["bank_transfer"]["amount"] == 7500
        assert len(order.timeline) == 3

    async def test_switches_method_to_bank_transfer(self, manager, session, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)
        order.payment = {**order.payment, "method": "cash"}
        await session.commit()

        await manager.record_bank_transfer(customer, order.order_number, 10, "TRF", "0123456789")

        order = await manager.get_by_id(customer, order.id)
        assert order.payment["method"] == "bank_transfer"

    async def test_unknown_order_number(self, manager, customer):
        with pytest.raises(NotFound):
            await manager.record_bank_transfer(customer, "KOB0", 10, "TRF", "0123456789")

    async def test_other_customer_is_forbidden(self, manager, customer, other_customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(Forbidden):
            await manager.record_bank_transfer(
                other_customer, order.order_number, 10, "TRF", "0123456789"
            )

    @pytest.mark.parametrize(
        "amount, reference, account",
        [(-1, "TRF", "0123"), (10, "", "0123"), (10, "TRF", "  ")],
    )
    async def test_invalid_input(self, manager, customer, restaurant_id, amount, reference, account):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(ValidationFailed):
            await manager.record_bank_transfer(customer, order.order_number, amount, reference, account)


class TestConfirmPayment:
    async def test_pending_order_becomes_confirmed(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        order = await manager.confirm_payment(admin, order.id)

        assert order.status == OrderStatus.CONFIRMED
        assert order.payment["status"] == "confirmed"
        assert order.timeline[-1]["status"] == "payment_confirmed"
        assert order.timeline[-1]["note"] == "Payment confirmed by admin: Kemi Admin"
        assert order.timeline[-1]["updated_by"] == admin.id

    async def test_confirms_bank_transfer_record(self, manager, customer, admin, restaurant_id, clock):
        order = await place(manager, customer, restaurant_id)
        await manager.record_bank_transfer(customer, order.order_number, 7500, "TRF", "0123456789")
        confirmed_at = clock.advance(hours=1)

        order = await manager.confirm_payment(admin, order.id)

        transfer = order.payment["bank_transfer"]
        assert transfer["confirmed"] is True
        assert transfer["confirmation_date"] == confirmed_at.isoformat()
        assert transfer["confirmed_by"] == admin.id
        assert transfer["reference"] == "TRF"

    @pytest.mark.parametrize(
        "status",
        [s for s in OrderStatus if s != OrderStatus.PENDING],
    )
    async def test_other_statuses_are_left_alone(self, manager, customer, admin, restaurant_id, status):
        order = await place(manager, customer, restaurant_id)
        await manager.update_status(admin, order.id, status)

        order = await manager.confirm_payment(admin, order.id)

        assert order.status == status
        assert order.payment["status"] == "confirmed"

    async def test_repeat_is_idempotent_but_still_logged(self, manager, customer, admin, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        order = await manager.confirm_payment(admin, order.id)
        order = await manager.confirm_payment(admin, order.id)

        assert order.payment["status"] == "confirmed"
        assert order.status == OrderStatus.CONFIRMED
        assert [e["status"] for e in order.timeline] == [
            "pending",
            "payment_confirmed",
            "payment_confirmed",
        ]

    async def test_note_falls_back_to_admin_id(self, manager, customer, restaurant_id):
        from food_ordering.core.security import CurrentUser, Role

        nameless = CurrentUser(id="admin-9", role=Role.ADMIN)
        order = await place(manager, customer, restaurant_id)

        order = await manager.confirm_payment(nameless, order.id)

        assert order.timeline[-1]["note"] == "Payment confirmed by admin: admin-9"

    async def test_requires_admin(self, manager, customer, restaurant_id):
        order = await place(manager, customer, restaurant_id)

        with pytest.raises(Forbidden):
            await manager.confirm_payment(customer, order.id)

    async def test_missing_order(self, manager, admin):
        with pytest.raises(NotFound):
            await manager.confirm_payment(admin, 12345)


class TestDashboardStats:
    async def test_revenue_counts_confirmed_payments_only(
        self, manager, customer, other_customer, admin, restaurant_id
    ):
        paid = await place(manager, customer, restaurant_id)
        await place(manager, other_customer, restaurant_id)
        failed = await place(manager, other_customer, restaurant_id)
        await manager.confirm_payment(admin, paid.id)
        await manager.update_payment(admin, failed.id, "REF", "failed")

        summary = await manager.dashboard_stats(admin)

        assert summary.total_orders == 3
        assert summary.total_restaurants == 1
        assert summary.total_revenue == 7500
        assert len(summary.recent_orders) == 3

    async def test_requires_admin(self, manager, customer):
        with pytest.raises(Forbidden):
            await manager.dashboard_stats(customer)
