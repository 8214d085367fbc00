"""HTTP handlers for stock, tax lookups and operational endpoints."""

from decimal import Decimal, InvalidOperation

from pos_cart.dto import (
    BatchAvailabilityRequest,
    CacheHealthResponse,
    HealthCheckResponse,
    MaintenanceResponse,
    ProductTaxRequest,
    RefreshStockRequest,
    ReservationResponse,
    ReserveStockRequest,
    StockUpdateRequest,
    StockUpdateResponse,
    StockViewResponse,
)
from pos_cart.entities import CustomerLocation, Session
from pos_cart.errors import ValidationError
from pos_cart.services import PosServices

from .errors import translate_errors


class InventoryHandler:
    """HTTP handlers backed by the inventory coordinator, cache layer and tax engine.

    Example:
        ```python
        handler = InventoryHandler(services=services)

        @app.get("/stock/{product_id}", response_model=StockViewResponse)
        def get_stock(product_id: int):
            return handler.get_stock(product_id)
        ```
    """

    def __init__(self, services: PosServices) -> None:
        """Initialize the handler.

        Args:
            services: The wired component graph (required).
        """
        self._services = services

    # Stock

    def get_stock(self, product_id: int, use_cache: bool = True) -> StockViewResponse:
        with translate_errors("get stock"):
            view = self._services.inventory.get_real_time_stock(product_id, use_cache=use_cache)
            return StockViewResponse.model_validate(view.to_dict())

    def batch_availability(self, request: BatchAvailabilityRequest) -> dict:
        with translate_errors("check availability"):
            return self._services.inventory.batch_check_availability(request.products).to_dict()

    def status_report(self, product_ids: list[int] | None = None) -> dict:
        with translate_errors("build stock report"):
            return self._services.inventory.get_stock_status_report(product_ids).to_dict()

    def update_stock(self, product_id: int, request: StockUpdateRequest, session: Session) -> StockUpdateResponse:
        """Handle PUT /stock/{product_id}.

        Raises:
            HTTPException: 400 for negative or excessive stock, 404 for unknown products
        """
        with translate_errors("update stock"):
            result = self._services.inventory.update_stock(
                product_id,
                request.quantity,
                operation=request.operation,
                terminal_id=session.terminal_id,
                user_id=session.user_id,
                reason=request.reason,
                note=request.note,
                force=request.force,
            )
            return StockUpdateResponse.model_validate(result.to_dict())

    def refresh(self, request: RefreshStockRequest) -> dict:
        with translate_errors("refresh stock"):
            return self._services.inventory.force_refresh_stock_cache(request.product_ids)

    # Reservations

    def reserve(self, request: ReserveStockRequest, session: Session) -> ReservationResponse:
        with translate_errors("reserve stock"):
            reservation = self._services.inventory.reserve(
                request.product_id,
                request.quantity,
                request.order_key,
                owner=session.terminal_id,
                ttl=request.ttl,
            )
            return ReservationResponse.model_validate(reservation.to_dict())

    def get_reservation(self, reservation_id: str) -> ReservationResponse:
        with translate_errors("get reservation"):
            reservation = self._services.inventory.get_reservation(reservation_id)
            return ReservationResponse.model_validate(reservation.to_dict())

    def release(self, target: str, product_id: int | None = None) -> dict:
        with translate_errors("release reservation"):
            return self._services.inventory.release(target, product_id).to_dict()

    # Tax

    def product_tax(self, product_id: int, request: ProductTaxRequest) -> dict:
        with translate_errors("calculate product tax"):
            try:
                price = Decimal(request.price) if request.price else None
            except InvalidOperation as e:
                raise ValidationError("Invalid price.", price=request.price) from e
            location = CustomerLocation(**request.location.model_dump()) if request.location else None
            return self._services.taxes.calculate_product_tax(product_id, price, location).to_dict()

    def tax_settings(self) -> dict:
        return self._services.taxes.get_tax_settings()

    # Operations

    def cache_stats(self) -> dict:
        with translate_errors("get cache stats"):
            return {
                "cache": self._services.cache.stats(),
                "tax": self._services.taxes.get_cache_stats(),
                "performance": self._services.metrics.to_dict(),
            }

    def cache_health(self) -> CacheHealthResponse:
        with translate_errors("get cache health"):
            return CacheHealthResponse.model_validate(self._services.cache.get_cache_health())

    def clear_cache(self, group: str | None = None) -> dict:
        with translate_errors("clear cache"):
            if group:
                count = self._services.cache.invalidate(group)
            else:
                count = self._services.cache.clear_all()
            return {"success": True, "deleted_count": count, "message": "Cache cleared successfully"}

    def maintenance(self) -> MaintenanceResponse:
        with translate_errors("run maintenance"):
            return MaintenanceResponse.model_validate(self._services.run_maintenance())

    def health_check(self) -> HealthCheckResponse:
        healthy = self._services.is_healthy()
        return HealthCheckResponse(status="healthy" if healthy else "unhealthy", store_healthy=healthy)
