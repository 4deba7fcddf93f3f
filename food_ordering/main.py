"""
FastAPI Application Entry Point

Food Ordering API - customers place and track orders, administrators
move orders through their lifecycle and confirm bank-transfer payments.

Endpoints:
    - POST  /api/orders: Place an order
    - GET   /api/orders: List orders (customers see only their own)
    - GET   /api/orders/{id}: Get one order
    - PATCH /api/orders/{id}/status: Update order status (admin)
    - PATCH /api/orders/{id}/payment: Update payment reference (owner or admin)
    - POST  /api/payments/bank-transfer: Record a bank transfer (owner or admin)
    - POST  /api/payments/confirm: Confirm a payment (admin)
    - GET   /api/restaurants: Browse restaurants (search, cuisine, paging)
    - GET   /api/restaurants/{slug}: One restaurant with its menu
    - GET   /api/admin/dashboard/stats: Dashboard statistics (admin)
    - GET   /health: System health check

Run:
    uvicorn food_ordering.main:app --port 8001
"""

import logging
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from food_ordering.core.config import get_settings, setup_logging
from food_ordering.core.security import CurrentUser, get_current_user, require_admin
from food_ordering.database import get_db, init_db, engine
from food_ordering.exceptions import OrderingError, format_validation_errors
from food_ordering.models import utcnow
from food_ordering.schemas import (
    ApiResponse,
    BankTransferReceipt,
    BankTransferRequest,
    DashboardData,
    DashboardStats,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderData,
    OrderListData,
    OrderResponse,
    PaymentConfirmRequest,
    PaymentUpdate,
    RestaurantData,
    RestaurantListData,
    RestaurantResponse,
    RestaurantSummary,
    StatusUpdate,
)
from food_ordering.services.orders import OrderLifecycleManager
from food_ordering.services.restaurants import RestaurantCatalog

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    problems = settings.validate_production_config()
    if problems:
        logger.warning(f"⚠️ Insecure configuration for {settings.env_mode.value}: {problems}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Food ordering backend: restaurants and menus, order placement, "
        "status tracking and bank-transfer payment confirmation."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_manager(db: AsyncSession = Depends(get_db)) -> OrderLifecycleManager:
    """Order lifecycle manager bound to the request's session."""
    return OrderLifecycleManager(db)


def get_restaurant_catalog(db: AsyncSession = Depends(get_db)) -> RestaurantCatalog:
    return RestaurantCatalog(db)


def order_response(order: Any) -> OrderData:
    return OrderData(order=OrderResponse.model_validate(order))


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍲 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the database is reachable."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return HealthResponse(
        status="operational" if db_status == "healthy" else "degraded",
        database=db_status,
        environment=settings.env_mode.value,
        timestamp=utcnow(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    status_code=201,
    response_model=ApiResponse[OrderData],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    user: CurrentUser = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[OrderData]:
    """
    Place a new order for the calling user.

    Items, delivery address and pricing are stored as a snapshot; later
    menu edits do not change a placed order.
    """
    logger.info(f"Creating order for customer {user.id} at restaurant #{order_data.restaurant_id}")

    order = await manager.create(
        customer_id=user.id,
        restaurant_id=order_data.restaurant_id,
        items=order_data.items,
        delivery_address=order_data.delivery_address,
        pricing=order_data.pricing,
        special_instructions=order_data.special_instructions,
    )
    return ApiResponse(
        message="Order created successfully",
        data=order_response(order),
    )


@app.get(
    "/api/orders",
    response_model=ApiResponse[OrderListData],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[OrderListData]:
    """Paginated orders, newest first. Customers only ever see their own."""
    orders, pagination = await manager.list_orders(
        user, status=status, search=search, page=page, limit=limit
    )
    return ApiResponse(
        data=OrderListData(
            orders=[OrderResponse.model_validate(o) for o in orders],
            pagination=pagination,
        ),
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=ApiResponse[OrderData],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[OrderData]:
    """Get a specific order by ID."""
    order = await manager.get_by_id(user, order_id)
    return ApiResponse(data=order_response(order))


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=ApiResponse[OrderData],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status (Admin)",
)
async def update_order_status(
    order_id: int,
    body: StatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[OrderData]:
    order = await manager.update_status(admin, order_id, body.status, body.note)
    return ApiResponse(
        message="Order status updated successfully",
        data=order_response(order),
    )


@app.patch(
    "/api/orders/{order_id}/payment",
    response_model=ApiResponse[OrderData],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Payment",
)
async def update_order_payment(
    order_id: int,
    body: PaymentUpdate,
    user: CurrentUser = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[OrderData]:
    order = await manager.update_payment(user, order_id, body.payment_reference, body.status)
    return ApiResponse(
        message="Payment information updated successfully",
        data=order_response(order),
    )


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@app.post(
    "/api/payments/bank-transfer",
    response_model=ApiResponse[BankTransferReceipt],
    responses=ERROR_RESPONSES,
    tags=["Payments"],
    summary="Record Bank Transfer",
)
async def record_bank_transfer(
    body: BankTransferRequest,
    user: CurrentUser = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[BankTransferReceipt]:
    """
    Record that the customer has sent a bank transfer for an order.

    The payment stays pending until an admin confirms it.
    """
    receipt = await manager.record_bank_transfer(
        user,
        order_number=body.order_number,
        amount=body.amount,
        reference=body.reference,
        bank_account=body.bank_account,
        customer_email=body.customer_email,
    )
    return ApiResponse(
        message="Bank transfer details recorded successfully",
        data=receipt,
    )


@app.post(
    "/api/payments/confirm",
    response_model=ApiResponse[OrderData],
    responses=ERROR_RESPONSES,
    tags=["Payments"],
    summary="Confirm Payment (Admin)",
)
async def confirm_payment(
    body: PaymentConfirmRequest,
    admin: CurrentUser = Depends(require_admin),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[OrderData]:
    order = await manager.confirm_payment(admin, body.order_id)
    return ApiResponse(
        message="Payment confirmed successfully",
        data=order_response(order),
    )


# =============================================================================
# RESTAURANT ENDPOINTS
# =============================================================================

@app.get(
    "/api/restaurants",
    response_model=ApiResponse[RestaurantListData],
    responses={400: {"model": ErrorResponse}},
    tags=["Restaurants"],
)
async def list_restaurants(
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    cuisine: Optional[str] = Query(None),
    catalog: RestaurantCatalog = Depends(get_restaurant_catalog),
) -> ApiResponse[RestaurantListData]:
    """Active restaurants, filtered and paged. Menus are left out of the list."""
    restaurants, pagination = await catalog.browse(
        search=search, cuisine=cuisine, page=page, limit=limit
    )
    return ApiResponse(
        data=RestaurantListData(
            restaurants=[RestaurantSummary.model_validate(r) for r in restaurants],
            pagination=pagination,
        ),
    )


@app.get(
    "/api/restaurants/{slug}",
    response_model=ApiResponse[RestaurantData],
    responses={404: {"model": ErrorResponse}},
    tags=["Restaurants"],
)
async def get_restaurant(
    slug: str,
    catalog: RestaurantCatalog = Depends(get_restaurant_catalog),
) -> ApiResponse[RestaurantData]:
    """Active restaurant by slug, with its full menu."""
    restaurant = await catalog.get_by_slug(slug)
    return ApiResponse(
        data=RestaurantData(restaurant=RestaurantResponse.model_validate(restaurant)),
    )


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@app.get(
    "/api/admin/dashboard/stats",
    response_model=ApiResponse[DashboardData],
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def dashboard_stats(
    admin: CurrentUser = Depends(require_admin),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> ApiResponse[DashboardData]:
    """Order count, active restaurants, confirmed revenue and recent orders."""
    summary = await manager.dashboard_stats(admin)
    return ApiResponse(
        data=DashboardData(
            stats=DashboardStats(
                total_orders=summary.total_orders,
                total_restaurants=summary.total_restaurants,
                total_revenue=summary.total_revenue,
            ),
            recent_orders=[OrderResponse.model_validate(o) for o in summary.recent_orders],
        ),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Render domain errors in the standard envelope."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            message=exc.message,
            error=type(exc).__name__,
            errors=exc.errors,
        ).model_dump(by_alias=True, exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters are 400s."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            message="Validation failed",
            error="ValidationFailed",
            errors=format_validation_errors(exc.errors()),
        ).model_dump(by_alias=True, exclude_none=True),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal Server Error",
            "error": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
