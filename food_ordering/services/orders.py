"""
Order Lifecycle Manager

Owns the ``Order`` document: placement, status changes, payment updates,
bank-transfer records and admin payment confirmation.

Rules enforced here:
    - Every change to ``status`` or ``payment`` appends exactly one
      timeline entry in the same write (see ``_apply_transition``).
    - Non-admin callers only ever see their own orders. A foreign order
      is reported as missing, never as forbidden, on reads.
    - Any status may follow any other; there is no transition table.
    - Writes are read-modify-write of the whole document with no version
      check, so concurrent updates to one order are last-write-wins.

Usage:
    manager = OrderLifecycleManager(session)
    order = await manager.create(user.id, restaurant_id, items, address, pricing)
    order = await manager.confirm_payment(admin, order.id)
"""

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.config import Settings, get_settings
from food_ordering.core.security import CurrentUser
from food_ordering.exceptions import (
    Conflict,
    Forbidden,
    NotFound,
    Unexpected,
    ValidationFailed,
    format_validation_errors,
)
from food_ordering.models import (
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TimelineTag,
    utcnow,
)
from food_ordering.repository import OrderFilter, OrderRepository, RestaurantRepository
from food_ordering.schemas import (
    BankTransferReceipt,
    DeliveryAddress,
    OrderItem,
    PaginationInfo,
    Payment,
    Pricing,
)
from food_ordering.services.paging import clean_term, paginate, resolve_page

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 500
PRICING_TOLERANCE = 0.01
RECENT_ORDERS_LIMIT = 10

# Refunds are not set through the payment update endpoint
UPDATABLE_PAYMENT_STATUSES = (
    PaymentStatus.PENDING,
    PaymentStatus.CONFIRMED,
    PaymentStatus.FAILED,
)


def generate_order_number(prefix: str = "KOB") -> str:
    """Epoch milliseconds followed by a random 0-999 suffix, e.g. ``KOB1718000000000427``."""
    return f"{prefix}{int(time.time() * 1000)}{random.randint(0, 999)}"


@dataclass
class DashboardSummary:
    total_orders: int
    total_restaurants: int
    total_revenue: float
    recent_orders: Sequence[Order]


class OrderLifecycleManager:
    """
    Order operations for one request.

    Args:
        session: Database session of the current request
        settings: Defaults to the cached application settings
        clock: Returns the current aware datetime
        number_factory: Produces candidate order numbers
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        number_factory: Optional[Callable[[], str]] = None,
    ):
        self.settings = settings or get_settings()
        self.orders = OrderRepository(session)
        self.restaurants = RestaurantRepository(session)
        self.clock = clock
        self.number_factory = number_factory or (
            lambda: generate_order_number(self.settings.order_number_prefix)
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _parse(model: type[BaseModel], value: Any, what: str) -> Any:
        if isinstance(value, model):
            return value
        try:
            return model.model_validate(value)
        except ValidationError as e:
            raise ValidationFailed(
                f"Invalid {what}",
                errors=format_validation_errors(e.errors(include_url=False)),
            )

    @staticmethod
    def _require_admin(user: CurrentUser) -> None:
        if not user.is_admin:
            raise Forbidden("Admin access required")

    @staticmethod
    def _require_owner_or_admin(user: CurrentUser, order: Order) -> None:
        if not user.is_admin and order.customer_id != user.id:
            raise Forbidden("Access denied")

    @staticmethod
    def _timeline_entry(
        status: Union[OrderStatus, TimelineTag],
        note: Optional[str],
        timestamp: datetime,
        updated_by: Optional[str] = None,
    ) -> dict[str, Any]:
        return {
            "status": status.value,
            "timestamp": timestamp.isoformat(),
            "note": note,
            "updated_by": updated_by,
        }

    def _apply_transition(
        self,
        order: Order,
        tag: Union[OrderStatus, TimelineTag],
        note: Optional[str],
        now: datetime,
        updated_by: Optional[str] = None,
        **changes: Any,
    ) -> Order:
        """Set ``changes`` on the order and append the matching timeline entry."""
        for field, value in changes.items():
            setattr(order, field, value)
        order.timeline = [
            *order.timeline,
            self._timeline_entry(tag, note, now, updated_by),
        ]
        return order

    async def _save(self, order: Order, action: str) -> Order:
        try:
            return await self.orders.save(order)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to {action} for order {order.order_number}: {e}")
            raise Unexpected(f"Failed to {action}") from e

    async def _get_order(self, order_id: int) -> Order:
        order = await self.orders.find_by_id(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    @staticmethod
    def _coerce_status(value: Union[str, OrderStatus]) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            raise ValidationFailed(
                f"Invalid status. Options: {[s.value for s in OrderStatus]}"
            )

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create(
        self,
        customer_id: str,
        restaurant_id: int,
        items: Iterable[Union[OrderItem, dict]],
        delivery_address: Union[DeliveryAddress, dict],
        pricing: Union[Pricing, dict],
        special_instructions: Optional[str] = None,
    ) -> Order:
        """
        Place a new order for ``customer_id``.

        The order starts ``pending`` with a single timeline entry and a
        pending bank-transfer payment. Items, address and pricing are
        stored as copies.

        Raises:
            ValidationFailed: empty items, negative price, quantity below 1,
                negative pricing field, or (when enforced) a total that does
                not add up
            NotFound: unknown restaurant
            Unexpected: no free order number after the configured attempts,
                or a storage failure
        """
        items = [self._parse(OrderItem, item, "order item") for item in items]
        if not items:
            raise ValidationFailed("At least one item is required")
        address = self._parse(DeliveryAddress, delivery_address, "delivery address")
        pricing = self._parse(Pricing, pricing, "pricing")

        if abs(pricing.computed_total - pricing.total) > PRICING_TOLERANCE:
            if self.settings.enforce_pricing_total:
                raise ValidationFailed(
                    f"Total {pricing.total} does not match subtotal, fees and tax "
                    f"({pricing.computed_total})"
                )
            logger.warning(
                f"Pricing total {pricing.total} differs from computed "
                f"{pricing.computed_total} (customer {customer_id})"
            )

        restaurant = await self.restaurants.find_by_id(restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant not found")

        now = self.clock()
        attempts = self.settings.order_number_max_attempts

        for attempt in range(1, attempts + 1):
            order = Order(
                order_number=self.number_factory(),
                customer_id=customer_id,
                restaurant_id=restaurant_id,
                items=[item.model_dump(mode="json") for item in items],
                pricing=pricing.model_dump(mode="json"),
                delivery_address=address.model_dump(mode="json"),
                payment=Payment().model_dump(mode="json"),
                status=OrderStatus.PENDING,
                special_instructions=special_instructions,
                timeline=[
                    self._timeline_entry(OrderStatus.PENDING, "Order placed successfully", now)
                ],
                estimated_delivery_time=now + timedelta(
                    minutes=self.settings.estimated_delivery_minutes
                ),
                created_at=now,
            )
            try:
                order = await self.orders.insert(order)
            except Conflict as e:
                logger.warning(
                    f"Order number collision on {e.order_number} "
                    f"(attempt {attempt}/{attempts})"
                )
                continue
            except SQLAlchemyError as e:
                logger.exception(f"Error creating order: {e}")
                raise Unexpected("Failed to create order") from e

            logger.info(
                f"Order {order.order_number} placed by customer {customer_id} "
                f"at restaurant #{restaurant_id} (total {pricing.total})"
            )
            return order

        logger.error(f"Gave up allocating an order number after {attempts} attempts")
        raise Unexpected("Failed to create order")

    # =========================================================================
    # READ
    # =========================================================================

    async def list_orders(
        self,
        requester: CurrentUser,
        status: Optional[Union[str, OrderStatus]] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> tuple[Sequence[Order], PaginationInfo]:
        """
        Page through orders, newest first.

        Non-admin requesters are always narrowed to their own orders,
        whatever filters they pass. ``search`` matches a case-insensitive
        substring of the order number.
        """
        offset, limit = resolve_page(page, limit, self.settings)
        search = clean_term(search, "Search term")

        flt = OrderFilter(
            status=self._coerce_status(status) if status is not None else None,
            search=search,
        )
        if not requester.is_admin:
            flt.customer_id = requester.id

        orders = await self.orders.find(flt, offset=offset, limit=limit)
        return orders, paginate(page, limit, await self.orders.count(flt))

    async def get_by_id(self, requester: CurrentUser, order_id: int) -> Order:
        """
        Raises:
            NotFound: missing order, or an order the non-admin requester
                does not own
        """
        order = await self.orders.find_by_id(order_id)
        if order is None or (not requester.is_admin and order.customer_id != requester.id):
            raise NotFound("Order not found")
        return order

    # =========================================================================
    # STATUS
    # =========================================================================

    async def update_status(
        self,
        admin: CurrentUser,
        order_id: int,
        new_status: Union[str, OrderStatus],
        note: Optional[str] = None,
    ) -> Order:
        """
        Move the order to ``new_status``.

        ``delivered`` stamps ``actual_delivery_time``; ``cancelled`` with a
        note records it as the cancel reason.
        """
        self._require_admin(admin)
        new_status = self._coerce_status(new_status)
        if note is not None and len(note) > MAX_NOTE_LENGTH:
            raise ValidationFailed(f"Note cannot exceed {MAX_NOTE_LENGTH} characters")

        order = await self._get_order(order_id)
        previous = order.status
        now = self.clock()

        changes: dict[str, Any] = {"status": new_status}
        if new_status == OrderStatus.DELIVERED:
            changes["actual_delivery_time"] = now
        if new_status == OrderStatus.CANCELLED and note:
            changes["cancel_reason"] = note

        self._apply_transition(
            order,
            new_status,
            note or f"Order status updated to {new_status.value}",
            now,
            updated_by=admin.id,
            **changes,
        )
        order = await self._save(order, "update order status")

        logger.info(
            f"Order {order.order_number}: {previous.value} -> {new_status.value} "
            f"by admin {admin.id}"
        )
        return order

    # =========================================================================
    # PAYMENT
    # =========================================================================

    async def update_payment(
        self,
        requester: CurrentUser,
        order_id: int,
        payment_reference: str,
        status: Union[str, PaymentStatus],
    ) -> Order:
        """
        Record a payment reference and status on the order.

        Raises:
            NotFound: unknown order
            Forbidden: requester is neither the owner nor an admin
        """
        try:
            status = PaymentStatus(status)
        except ValueError:
            raise ValidationFailed("Invalid payment status")
        if status not in UPDATABLE_PAYMENT_STATUSES:
            raise ValidationFailed("Invalid payment status")
        payment_reference = (payment_reference or "").strip()
        if not payment_reference:
            raise ValidationFailed("Payment reference is required")

        order = await self._get_order(order_id)
        self._require_owner_or_admin(requester, order)

        payment = {
            **order.payment,
            "reference": payment_reference,
            "status": status.value,
        }
        self._apply_transition(
            order,
            TimelineTag.PAYMENT_UPDATED,
            f"Payment reference updated: {payment_reference}",
            self.clock(),
            updated_by=requester.id,
            payment=payment,
        )
        order = await self._save(order, "update payment information")

        logger.info(f"Order {order.order_number}: payment {status.value} ({payment_reference})")
        return order

    async def record_bank_transfer(
        self,
        requester: CurrentUser,
        order_number: str,
        amount: float,
        reference: str,
        bank_account: str,
        customer_email: Optional[str] = None,
    ) -> BankTransferReceipt:
        """
        Record the customer's claim of an offline bank transfer.

        Switches the payment method to bank transfer and replaces any earlier
        transfer record. Neither the payment status nor the order status
        changes; an admin confirms the money separately. ``customer_email``
        is only echoed on the receipt as the address the customer gave.
        """
        if amount is None or amount < 0:
            raise ValidationFailed("Amount must be a positive number")
        reference = (reference or "").strip()
        if not reference:
            raise ValidationFailed("Transfer reference is required")
        if not (bank_account or "").strip():
            raise ValidationFailed("Bank account is required")

        order = await self.orders.find_one(order_number=order_number)
        if order is None:
            raise NotFound("Order not found")
        self._require_owner_or_admin(requester, order)

        now = self.clock()
        payment = {
            **order.payment,
            "method": PaymentMethod.BANK_TRANSFER.value,
            "reference": reference,
            "bank_transfer": {
                "amount": amount,
                "reference": reference,
                "confirmed": False,
                "transfer_date": now.isoformat(),
                "confirmation_date": None,
                "confirmed_by": None,
            },
        }
        self._apply_transition(
            order,
            TimelineTag.PAYMENT_INITIATED,
            f"Bank transfer initiated with reference: {reference}",
            now,
            updated_by=requester.id,
            payment=payment,
        )
        order = await self._save(order, "process bank transfer")

        logger.info(
            f"Order {order.order_number}: bank transfer of {amount} recorded "
            f"(ref {reference}, account ****{bank_account.strip()[-4:]})"
        )
        return BankTransferReceipt(
            reference=reference,
            order_number=order.order_number,
            amount=amount,
            customer_email=customer_email,
        )

    async def confirm_payment(self, admin: CurrentUser, order_id: int) -> Order:
        """
        Mark the payment as received.

        A pending order advances to confirmed; any other status is left
        alone. Repeated calls keep the payment confirmed and still append
        one timeline entry each.
        """
        self._require_admin(admin)
        order = await self._get_order(order_id)
        now = self.clock()

        payment = {**order.payment, "status": PaymentStatus.CONFIRMED.value}
        if payment.get("bank_transfer"):
            payment["bank_transfer"] = {
                **payment["bank_transfer"],
                "confirmed": True,
                "confirmation_date": now.isoformat(),
                "confirmed_by": admin.id,
            }

        changes: dict[str, Any] = {"payment": payment}
        if order.status == OrderStatus.PENDING:
            changes["status"] = OrderStatus.CONFIRMED

        self._apply_transition(
            order,
            TimelineTag.PAYMENT_CONFIRMED,
            f"Payment confirmed by admin: {admin.display_name}",
            now,
            updated_by=admin.id,
            **changes,
        )
        order = await self._save(order, "confirm payment")

        logger.info(f"Order {order.order_number}: payment confirmed by admin {admin.id}")
        return order

    # =========================================================================
    # REPORTING
    # =========================================================================

    async def dashboard_stats(self, admin: CurrentUser) -> DashboardSummary:
        """Order count, active restaurants, confirmed revenue and the latest orders."""
        self._require_admin(admin)
        recent = await self.orders.find(OrderFilter(), limit=RECENT_ORDERS_LIMIT)
        return DashboardSummary(
            total_orders=await self.orders.count(),
            total_restaurants=await self.restaurants.count_active(),
            total_revenue=await self.orders.total_confirmed_revenue(),
            recent_orders=recent,
        )
