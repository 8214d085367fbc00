"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Every request resolves its own session and cart; nothing about a
      terminal is kept in process memory
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Header, Request, Response

from pos_cart.config import settings
from pos_cart.entities import Session
from pos_cart.handlers import CartHandler, InventoryHandler, SessionHandler
from pos_cart.repositories import (
    HttpCatalogProvider,
    HttpTaxRateProvider,
    InMemoryCatalog,
    RedisKeyValueStore,
    StaticTaxRateProvider,
)
from pos_cart.services import CartService, PosServices

logger = logging.getLogger(__name__)


def build_services() -> PosServices:
    """Wire the production component graph from settings.

    The shared store is always Redis. Catalog and tax rates come from the
    configured HTTP collaborators, or empty in-memory sources when no URL
    is set.
    """
    store = RedisKeyValueStore.create()
    catalog = HttpCatalogProvider.create() if settings.catalog_api_url else InMemoryCatalog()
    rates = HttpTaxRateProvider.create() if settings.tax_api_url else StaticTaxRateProvider()
    return PosServices.create(store=store, catalog=catalog, rates=rates)


def get_services(request: Request) -> PosServices:
    """Dependency injection for PosServices from app.state.

    Raises:
        RuntimeError: If services are not initialized
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("PosServices not initialized. Check lifespan setup.")
    return services


def get_session_handler(request: Request) -> SessionHandler:
    handler = getattr(request.app.state, "session_handler", None)
    if handler is None:
        raise RuntimeError("SessionHandler not initialized. Check lifespan setup.")
    return handler


def get_cart_handler(request: Request) -> CartHandler:
    handler = getattr(request.app.state, "cart_handler", None)
    if handler is None:
        raise RuntimeError("CartHandler not initialized. Check lifespan setup.")
    return handler


def get_inventory_handler(request: Request) -> InventoryHandler:
    handler = getattr(request.app.state, "inventory_handler", None)
    if handler is None:
        raise RuntimeError("InventoryHandler not initialized. Check lifespan setup.")
    return handler


def get_session(
    request: Request,
    response: Response,
    handler: Annotated[SessionHandler, Depends(get_session_handler)],
    x_terminal_id: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    x_session_id: Annotated[str | None, Header()] = None,
) -> Session:
    """Resolve the calling terminal's session, issuing a cookie for new ones."""
    resolved = handler.resolve(
        x_terminal_id,
        x_user_id,
        cookies=request.cookies,
        session_header=x_session_id,
        user_agent=request.headers.get("user-agent", ""),
        ip_address=request.client.host if request.client else "",
    )
    if resolved.cookie is not None:
        cookie = resolved.cookie
        response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            max_age=cookie.max_age,
            path=cookie.path,
            secure=cookie.secure,
            httponly=cookie.httponly,
            samesite=cookie.samesite,
        )
    response.headers["X-Session-ID"] = resolved.session.session_id
    request.state.session_created = resolved.created
    return resolved.session


def get_cart(
    session: Annotated[Session, Depends(get_session)],
    services: Annotated[PosServices, Depends(get_services)],
) -> CartService:
    return services.cart_for(session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores them in app.state. Services placed
    on app.state before startup (tests, embedding applications) are used
    as given.

    Cleanup:
        Closes HTTP collaborators and removes handlers from app.state
    """
    services = getattr(app.state, "services", None)
    owned = services is None
    if owned:
        services = build_services()
        app.state.services = services

    app.state.session_handler = SessionHandler(session_service=services.sessions)
    app.state.cart_handler = CartHandler()
    app.state.inventory_handler = InventoryHandler(services=services)

    logger.info("POS cart services initialized (store healthy: %s)", services.is_healthy())

    yield

    del app.state.inventory_handler
    del app.state.cart_handler
    del app.state.session_handler
    if owned:
        for collaborator in (services.catalog, services.rates):
            close = getattr(collaborator, "close", None)
            if close is not None:
                close()
        del app.state.services
    logger.info("POS cart services shut down")


# Type aliases for cleaner dependency injection
ServicesDep = Annotated[PosServices, Depends(get_services)]
SessionDep = Annotated[Session, Depends(get_session)]
CartDep = Annotated[CartService, Depends(get_cart)]
SessionHandlerDep = Annotated[SessionHandler, Depends(get_session_handler)]
CartHandlerDep = Annotated[CartHandler, Depends(get_cart_handler)]
InventoryHandlerDep = Annotated[InventoryHandler, Depends(get_inventory_handler)]
