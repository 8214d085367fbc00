"""FastAPI surface for the POS cart core.

Terminals identify themselves with the ``X-Terminal-ID`` and ``X-User-ID``
headers; the session travels in the terminal's session cookie (or the
``X-Session-ID`` header). Every error body is ``{"error": {"code", "message"}}``.
"""

import logging
from typing import Any

from fastapi import FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pos_cart.config import configure_logging, settings
from pos_cart.dto import (
    AddItemRequest,
    BatchAddRequest,
    BatchAddResponse,
    BatchAvailabilityRequest,
    CacheHealthResponse,
    CartContentsResponse,
    CartStatusResponse,
    CartTotalsResponse,
    CouponRequest,
    CustomerRequest,
    ErrorResponse,
    HealthCheckResponse,
    LocationRequest,
    MaintenanceResponse,
    ProductTaxRequest,
    RefreshStockRequest,
    ReservationResponse,
    ReserveStockRequest,
    SessionResponse,
    StockUpdateRequest,
    StockUpdateResponse,
    StockViewResponse,
    UpdateQuantityRequest,
)
from pos_cart.services import PosServices

from .dependencies import (
    CartDep,
    CartHandlerDep,
    InventoryHandlerDep,
    SessionDep,
    SessionHandlerDep,
    lifespan,
)

logger = logging.getLogger(__name__)

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Stock or lock conflict"},
}


def _error_body(detail: Any) -> dict[str, Any]:
    if isinstance(detail, dict) and "code" in detail:
        return detail
    return {"code": "http_error", "message": str(detail)}


def create_app(services: PosServices | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Pre-built component graph. If None, the lifespan builds
            one from settings.

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="POS Cart API",
        description="Multi-terminal point-of-sale cart, session, inventory and tax coordination",
        version="0.1.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": _error_body(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.get("/")
    def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "POS Cart API",
            "version": "0.1.0",
            "endpoints": {
                "session": "/session",
                "cart": "/cart",
                "stock": "/stock",
                "cache": "/cache",
                "health": "/health",
                "docs": "/docs",
            },
        }

    @app.get("/health", response_model=HealthCheckResponse)
    def health(handler: InventoryHandlerDep) -> HealthCheckResponse:
        return handler.health_check()

    # Sessions

    @app.post("/session", response_model=SessionResponse, responses=ERROR_RESPONSES)
    def open_session(request: Request, session: SessionDep, handler: SessionHandlerDep) -> SessionResponse:
        """Resolve or create the caller's session; a new session sets the cookie."""
        return handler.to_response(session, created=getattr(request.state, "session_created", False))

    @app.post("/session/extend", response_model=SessionResponse, responses=ERROR_RESPONSES)
    def extend_session(session: SessionDep, handler: SessionHandlerDep) -> SessionResponse:
        return handler.extend(session)

    @app.delete("/session", responses=ERROR_RESPONSES)
    def destroy_session(response: Response, session: SessionDep, handler: SessionHandlerDep) -> dict[str, Any]:
        cookie = handler.destroy(session)
        response.delete_cookie(cookie.name, path=cookie.path, secure=cookie.secure, httponly=cookie.httponly)
        return {"success": True, "message": "Session destroyed"}

    @app.get("/session/validate", response_model=SessionResponse, responses=ERROR_RESPONSES)
    def validate_session(
        request: Request,
        handler: SessionHandlerDep,
    ) -> SessionResponse:
        return handler.validate(request.headers.get("x-session-id"), request.headers.get("x-terminal-id"))

    @app.get("/sessions/stats")
    def session_stats(handler: SessionHandlerDep) -> dict[str, Any]:
        return handler.get_stats()

    # Cart

    @app.get("/cart", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def get_cart(cart: CartDep, handler: CartHandlerDep, calculate: bool = True) -> CartContentsResponse:
        return handler.contents(cart, calculate=calculate)

    @app.post("/cart/items", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def add_item(request: AddItemRequest, cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.add_item(cart, request)

    @app.post("/cart/items/batch", response_model=BatchAddResponse, responses=ERROR_RESPONSES)
    def batch_add(request: BatchAddRequest, cart: CartDep, handler: CartHandlerDep) -> BatchAddResponse:
        return handler.batch_add(cart, request)

    @app.put("/cart/items/{key}", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def update_item(
        key: str, request: UpdateQuantityRequest, cart: CartDep, handler: CartHandlerDep
    ) -> CartContentsResponse:
        return handler.update_item(cart, key, request)

    @app.delete("/cart/items/{key}", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def remove_item(key: str, cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.remove_item(cart, key)

    @app.delete("/cart", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def clear_cart(cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.clear(cart)

    @app.post("/cart/coupons", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def apply_coupon(request: CouponRequest, cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.apply_coupon(cart, request)

    @app.delete("/cart/coupons/{code}", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def remove_coupon(code: str, cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.remove_coupon(cart, code)

    @app.put("/cart/location", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def set_location(request: LocationRequest, cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.set_location(cart, request)

    @app.put("/cart/customer", response_model=CartContentsResponse, responses=ERROR_RESPONSES)
    def set_customer(request: CustomerRequest, cart: CartDep, handler: CartHandlerDep) -> CartContentsResponse:
        return handler.set_customer(cart, request)

    @app.get("/cart/totals", response_model=CartTotalsResponse, responses=ERROR_RESPONSES)
    def get_totals(cart: CartDep, handler: CartHandlerDep) -> CartTotalsResponse:
        return handler.totals(cart)

    @app.get("/cart/status", response_model=CartStatusResponse, responses=ERROR_RESPONSES)
    def cart_status(cart: CartDep, handler: CartHandlerDep) -> CartStatusResponse:
        return handler.status(cart)

    @app.get("/cart/summary", responses=ERROR_RESPONSES)
    def cart_summary(cart: CartDep, handler: CartHandlerDep) -> dict[str, Any]:
        return handler.summary(cart)

    # Stock

    @app.get("/stock/report")
    def stock_report(
        handler: InventoryHandlerDep,
        product_ids: list[int] | None = Query(None),
    ) -> dict[str, Any]:
        return handler.status_report(product_ids)

    @app.post("/stock/availability")
    def batch_availability(request: BatchAvailabilityRequest, handler: InventoryHandlerDep) -> dict[str, Any]:
        return handler.batch_availability(request)

    @app.post("/stock/refresh")
    def refresh_stock(request: RefreshStockRequest, handler: InventoryHandlerDep) -> dict[str, Any]:
        return handler.refresh(request)

    @app.get("/stock/{product_id}", response_model=StockViewResponse, responses=ERROR_RESPONSES)
    def get_stock(product_id: int, handler: InventoryHandlerDep, use_cache: bool = True) -> StockViewResponse:
        return handler.get_stock(product_id, use_cache=use_cache)

    @app.put("/stock/{product_id}", response_model=StockUpdateResponse, responses=ERROR_RESPONSES)
    def update_stock(
        product_id: int, request: StockUpdateRequest, session: SessionDep, handler: InventoryHandlerDep
    ) -> StockUpdateResponse:
        return handler.update_stock(product_id, request, session)

    # Reservations

    @app.post(
        "/reservations",
        response_model=ReservationResponse,
        status_code=status.HTTP_201_CREATED,
        responses=ERROR_RESPONSES,
    )
    def reserve_stock(
        request: ReserveStockRequest, session: SessionDep, handler: InventoryHandlerDep
    ) -> ReservationResponse:
        return handler.reserve(request, session)

    @app.get("/reservations/{reservation_id}", response_model=ReservationResponse, responses=ERROR_RESPONSES)
    def get_reservation(reservation_id: str, handler: InventoryHandlerDep) -> ReservationResponse:
        return handler.get_reservation(reservation_id)

    @app.delete("/reservations/{target}")
    def release_reservation(
        target: str, handler: InventoryHandlerDep, product_id: int | None = None
    ) -> dict[str, Any]:
        """Release by reservation id or order key; already-released targets succeed."""
        return handler.release(target, product_id)

    # Tax

    @app.post("/tax/products/{product_id}", responses=ERROR_RESPONSES)
    def product_tax(product_id: int, request: ProductTaxRequest, handler: InventoryHandlerDep) -> dict[str, Any]:
        return handler.product_tax(product_id, request)

    @app.get("/tax/settings")
    def tax_settings(handler: InventoryHandlerDep) -> dict[str, Any]:
        return handler.tax_settings()

    # Operations

    @app.get("/cache/stats")
    def cache_stats(handler: InventoryHandlerDep) -> dict[str, Any]:
        return handler.cache_stats()

    @app.get("/cache/health", response_model=CacheHealthResponse)
    def cache_health(handler: InventoryHandlerDep) -> CacheHealthResponse:
        return handler.cache_health()

    @app.delete("/cache")
    def clear_cache(handler: InventoryHandlerDep, group: str | None = None) -> dict[str, Any]:
        return handler.clear_cache(group)

    @app.post("/maintenance/sweep", response_model=MaintenanceResponse)
    def maintenance_sweep(handler: InventoryHandlerDep) -> MaintenanceResponse:
        return handler.maintenance()

    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn using settings for host, port and reload."""
    import uvicorn

    configure_logging()
    uvicorn.run(
        "pos_cart.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


def sweep() -> None:
    """Run every maintenance sweep once against the configured store."""
    from .dependencies import build_services

    configure_logging()
    result = build_services().run_maintenance()
    logger.info("Maintenance complete: %s", result)


if __name__ == "__main__":
    main()
