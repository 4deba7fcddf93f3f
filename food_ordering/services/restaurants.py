"""
Restaurant Catalog

Read-only browsing of active restaurants: a filtered, paged list without
menus, and the full restaurant (menu included) by slug.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.config import Settings, get_settings
from food_ordering.exceptions import NotFound
from food_ordering.models import Restaurant
from food_ordering.repository import RestaurantFilter, RestaurantRepository
from food_ordering.schemas import PaginationInfo
from food_ordering.services.paging import clean_term, paginate, resolve_page

logger = logging.getLogger(__name__)


class RestaurantCatalog:

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.restaurants = RestaurantRepository(session)

    async def browse(
        self,
        search: Optional[str] = None,
        cuisine: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> tuple[Sequence[Restaurant], PaginationInfo]:
        """
        Page through active restaurants.

        ``search`` is a case-insensitive substring of the name, description
        or any cuisine; ``cuisine`` must equal one of the restaurant's
        cuisines, ignoring case.
        """
        offset, limit = resolve_page(page, limit, self.settings)
        flt = RestaurantFilter(
            search=clean_term(search, "Search term"),
            cuisine=clean_term(cuisine, "Cuisine"),
        )

        restaurants = await self.restaurants.find_active(flt, offset=offset, limit=limit)
        total = await self.restaurants.count_active(flt)
        logger.debug(f"Restaurant browse {flt} page {page}: {total} match(es)")
        return restaurants, paginate(page, limit, total)

    async def get_by_slug(self, slug: str) -> Restaurant:
        restaurant = await self.restaurants.find_active_by_slug(slug)
        if restaurant is None:
            raise NotFound("Restaurant not found")
        return restaurant
