"""
Persistence Provider

Thin query layer between the services and SQLAlchemy. Orders are read
and written as whole documents: load, mutate in memory, save back. There
is no version column, so concurrent writers to the same order race and
the last commit wins.
"""

import json
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.exceptions import Conflict
from food_ordering.models import Order, OrderStatus, PaymentStatus, Restaurant


@dataclass
class OrderFilter:
    """Criteria for listing orders. ``None`` means "do not filter"."""
    customer_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    search: Optional[str] = None


class OrderRepository:
    """Order queries and writes on a single session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _where(self, query, flt: OrderFilter):
        if flt.customer_id is not None:
            query = query.where(Order.customer_id == flt.customer_id)
        if flt.status is not None:
            query = query.where(Order.status == flt.status)
        if flt.search:
            query = query.where(
                func.lower(Order.order_number).contains(flt.search.lower(), autoescape=True)
            )
        return query

    async def find_by_id(self, order_id: int) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    async def find_one(self, **criteria) -> Optional[Order]:
        result = await self.session.execute(select(Order).filter_by(**criteria))
        return result.scalar_one_or_none()

    async def find(self, flt: OrderFilter, offset: int = 0, limit: int = 10) -> Sequence[Order]:
        """Newest first, ties broken by id."""
        query = self._where(select(Order), flt)
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
        result = await self.session.execute(query.offset(offset).limit(limit))
        return result.scalars().all()

    async def count(self, flt: Optional[OrderFilter] = None) -> int:
        query = select(func.count(Order.id))
        if flt is not None:
            query = self._where(query, flt)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def insert(self, order: Order) -> Order:
        """
        Persist a new order.

        Raises:
            Conflict: if ``order_number`` is already taken. The session is
                rolled back so the caller can retry with a new number.
            IntegrityError: for any other constraint violation.
        """
        self.session.add(order)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if "order_number" in str(e.orig):
                raise Conflict(
                    f"Order number {order.order_number} already exists",
                    order_number=order.order_number,
                ) from e
            raise
        return order

    async def save(self, order: Order) -> Order:
        self.session.add(order)
        await self.session.commit()
        return order

    async def total_confirmed_revenue(self) -> float:
        """Sum of ``pricing.total`` over orders with a confirmed payment."""
        result = await self.session.execute(
            select(func.sum(Order.pricing["total"].as_float())).where(
                Order.payment["status"].as_string() == PaymentStatus.CONFIRMED.value
            )
        )
        return round(result.scalar() or 0.0, 2)


@dataclass
class RestaurantFilter:
    """Criteria for browsing restaurants. Only active restaurants are ever listed."""
    search: Optional[str] = None
    cuisine: Optional[str] = None


class RestaurantRepository:
    """Read access to restaurants."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _where(self, query, flt: Optional[RestaurantFilter]):
        query = query.where(Restaurant.is_active.is_(True))
        if flt is None:
            return query
        # cuisine is a JSON list; its serialized text is matched
        cuisine_text = func.lower(cast(Restaurant.cuisine, String))
        if flt.search:
            term = flt.search.lower()
            query = query.where(or_(
                func.lower(Restaurant.name).contains(term, autoescape=True),
                func.lower(Restaurant.description).contains(term, autoescape=True),
                cuisine_text.contains(term, autoescape=True),
            ))
        if flt.cuisine:
            query = query.where(
                cuisine_text.contains(json.dumps(flt.cuisine.lower()), autoescape=True)
            )
        return query

    async def find_by_id(self, restaurant_id: int) -> Optional[Restaurant]:
        return await self.session.get(Restaurant, restaurant_id)

    async def find_active_by_slug(self, slug: str) -> Optional[Restaurant]:
        result = await self.session.execute(
            select(Restaurant).where(
                Restaurant.slug == slug,
                Restaurant.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def find_active(
        self,
        flt: Optional[RestaurantFilter] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Sequence[Restaurant]:
        """Alphabetical by name."""
        query = self._where(select(Restaurant), flt)
        query = query.order_by(Restaurant.name, Restaurant.id)
        result = await self.session.execute(query.offset(offset).limit(limit))
        return result.scalars().all()

    async def count_active(self, flt: Optional[RestaurantFilter] = None) -> int:
        result = await self.session.execute(self._where(select(func.count(Restaurant.id)), flt))
        return result.scalar() or 0
