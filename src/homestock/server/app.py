"""ASGI application for Homestock."""
# mypy: ignore-errors

from __future__ import annotations

import logging
from datetime import date, datetime
from time import perf_counter
from typing import Any, Optional
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from homestock import __version__, metrics
from homestock.config import Settings, get_settings
from homestock.errors import HomestockError
from homestock.logging_utils import configure_logging as configure_app_logging
from homestock.models.household import Category, Household, HouseholdInvite, HouseholdMember
from homestock.models.inventory import InventoryItem
from homestock.models.shopping import EntryChange, ReconcileResult, ShoppingListEntry
from homestock.reconcile import ReconciliationEngine, ReconciliationSweeper
from homestock.server import deps

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    """Convert non-serializable values into JSON-safe representations."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (list, tuple)):
        return [_json_safe(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _json_safe(sub_value) for key, sub_value in value.items()}
    return repr(value)


def _configure_logging(settings: Settings) -> None:
    configure_app_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


def _request_extra(request: Request) -> dict[str, Any]:
    request_id = getattr(request.state, "request_id", None)
    return {"extra": {"request_id": request_id}} if request_id else {}


def _no_fields(payload: dict[str, Any]) -> None:
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields provided for update",
        )


def create_app() -> FastAPI:
    """Create and configure a FastAPI application instance."""

    settings = get_settings()
    _configure_logging(settings)

    application = FastAPI(title="Homestock Household Inventory", version=__version__)

    if settings.reconcile_sweep_enabled:
        sweeper = ReconciliationSweeper(
            engine=ReconciliationEngine.from_settings(),
            poll_interval=settings.reconcile_sweep_interval,
            batch_size=settings.reconcile_sweep_batch_size,
        )
        sweep_scheduler = AsyncIOScheduler()
        sweep_scheduler.add_job(
            sweeper.poll_once,
            "interval",
            seconds=settings.reconcile_sweep_interval,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
        )

        @application.on_event("startup")
        async def start_sweeper() -> None:
            sweep_scheduler.start()

        @application.on_event("shutdown")
        async def stop_sweeper() -> None:
            sweep_scheduler.shutdown(wait=False)

    logger.debug("Application created with log level %s", settings.log_level)

    if settings.log_requests:
        access_logger = logging.getLogger("homestock.access")

        @application.middleware("http")
        async def log_request_response(request: Request, call_next):
            """Log request/response details without leaking sensitive data."""

            request_id = request.headers.get("X-Request-ID") or uuid4().hex
            request.state.request_id = request_id
            start = perf_counter()
            path = request.url.path
            method = request.method
            try:
                response: Response = await call_next(request)
            except Exception:
                duration_ms = (perf_counter() - start) * 1000
                access_logger.exception(
                    "HTTP %s %s status=500 duration_ms=%.2f",
                    method,
                    path,
                    duration_ms,
                    extra={"request_id": request_id},
                )
                metrics.REQUEST_COUNT.labels(method=method, path=path, status="500").inc()
                metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(
                    duration_ms / 1000.0
                )
                raise

            duration_ms = (perf_counter() - start) * 1000
            response.headers.setdefault("X-Request-ID", request_id)
            access_logger.info(
                "HTTP %s %s status=%s duration_ms=%.2f",
                method,
                path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id, "user_id": request.headers.get("X-User-ID")},
            )
            metrics.REQUEST_COUNT.labels(
                method=method,
                path=path,
                status=str(response.status_code),
            ).inc()
            metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000.0)
            return response

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            **_request_extra(request),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": _json_safe(exc.errors())},
        )

    @application.exception_handler(HomestockError)
    async def domain_exception_handler(request: Request, exc: HomestockError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
            **_request_extra(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": type(exc).__name__},
        )

    # Households -----------------------------------------------------------

    @application.post(
        "/households",
        response_model=Household,
        status_code=status.HTTP_201_CREATED,
        summary="Create a household",
    )
    def households_create(
        payload: HouseholdCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        creator: deps.HouseholdCreator = Depends(deps.get_household_creator),
    ) -> Household:
        return creator(payload.name, caller)

    @application.get(
        "/households/current",
        response_model=Optional[Household],
        summary="Current household",
    )
    def households_current(
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.HouseholdProvider = Depends(deps.get_household_provider),
    ) -> Optional[Household]:
        return provider(caller)

    @application.get(
        "/households/members",
        response_model=list[HouseholdMember],
        summary="List household members",
    )
    def households_members(
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.MemberProvider = Depends(deps.get_member_provider),
    ) -> list[HouseholdMember]:
        return provider(caller)

    @application.delete(
        "/households/members/{user_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Remove a household member",
    )
    def households_remove_member(
        user_id: str,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        remover: deps.MemberRemover = Depends(deps.get_member_remover),
    ) -> None:
        remover(user_id, caller)

    @application.post(
        "/households/invites",
        response_model=HouseholdInvite,
        summary="Get or create an invite code",
    )
    def households_invite(
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        issuer: deps.InviteIssuer = Depends(deps.get_invite_issuer),
    ) -> HouseholdInvite:
        return issuer(caller)

    @application.post(
        "/households/join",
        response_model=Household,
        summary="Join a household by invite code",
    )
    def households_join(
        payload: HouseholdJoinRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        joiner: deps.HouseholdJoiner = Depends(deps.get_household_joiner),
    ) -> Household:
        return joiner(payload.invite_code, caller)

    # Categories -----------------------------------------------------------

    @application.get("/categories", response_model=list[Category], summary="List categories")
    def categories_list(
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.CategoryProvider = Depends(deps.get_category_provider),
    ) -> list[Category]:
        return provider(caller)

    @application.post(
        "/categories",
        response_model=Category,
        status_code=status.HTTP_201_CREATED,
        summary="Create category",
    )
    def categories_create(
        payload: CategoryCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        creator: deps.CategoryCreator = Depends(deps.get_category_creator),
    ) -> Category:
        return creator(caller, payload.model_dump())

    @application.post(
        "/categories/seed",
        response_model=list[Category],
        summary="Seed default categories",
    )
    def categories_seed(
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        seeder: deps.CategorySeeder = Depends(deps.get_category_seeder),
    ) -> list[Category]:
        return seeder(caller)

    @application.put("/categories/{category_id}", response_model=Category, summary="Update category")
    def categories_update(
        category_id: int,
        payload: CategoryUpdateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        updater: deps.CategoryUpdater = Depends(deps.get_category_updater),
    ) -> Category:
        update_payload = payload.model_dump(exclude_unset=True)
        _no_fields(update_payload)
        return updater(category_id, caller, update_payload)

    @application.delete(
        "/categories/{category_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete category",
    )
    def categories_delete(
        category_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        deleter: deps.CategoryDeleter = Depends(deps.get_category_deleter),
    ) -> None:
        deleter(category_id, caller)

    # Inventory ------------------------------------------------------------

    @application.get("/inventory", response_model=list[InventoryItem], summary="List inventory")
    def inventory_list(
        category_id: Optional[int] = Query(default=None, ge=1),
        limit: Optional[int] = Query(default=None, ge=1, le=500),
        offset: int = Query(default=0, ge=0),
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.InventoryProvider = Depends(deps.get_inventory_provider),
    ) -> list[InventoryItem]:
        return provider(caller, category_id, limit, offset)

    @application.post(
        "/inventory",
        response_model=InventoryItem,
        status_code=status.HTTP_201_CREATED,
        summary="Create inventory item",
    )
    def inventory_create(
        payload: InventoryCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        creator: deps.InventoryCreator = Depends(deps.get_inventory_creator),
    ) -> InventoryItem:
        create_payload = payload.model_dump()
        logger.debug("Creating inventory item payload=%s", create_payload)
        return creator(caller, create_payload)

    @application.get(
        "/inventory/low-stock",
        response_model=list[InventoryItem],
        summary="List items below their minimum stock",
    )
    def inventory_low_stock(
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.LowStockProvider = Depends(deps.get_low_stock_provider),
    ) -> list[InventoryItem]:
        return provider(caller)

    @application.get(
        "/inventory/expiring",
        response_model=list[InventoryItem],
        summary="List items expiring soon",
    )
    def inventory_expiring(
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.ExpiringProvider = Depends(deps.get_expiring_provider),
    ) -> list[InventoryItem]:
        return provider(caller)

    @application.get("/inventory/{item_id}", response_model=InventoryItem, summary="Get inventory item")
    def inventory_get(
        item_id: int,
        caller: deps.Caller = Depends(deps.get_caller),
        fetcher: deps.InventoryFetcher = Depends(deps.get_inventory_fetcher),
    ) -> InventoryItem:
        item = fetcher(item_id, caller)
        if item is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
        return item

    @application.put("/inventory/{item_id}", response_model=InventoryItem, summary="Update inventory item")
    def inventory_update(
        item_id: int,
        payload: InventoryUpdateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        updater: deps.InventoryUpdater = Depends(deps.get_inventory_updater),
    ) -> InventoryItem:
        update_payload = payload.model_dump(exclude_unset=True)
        _no_fields(update_payload)
        logger.debug("Updating inventory item %s with payload=%s", item_id, update_payload)
        return updater(item_id, caller, update_payload)

    @application.delete(
        "/inventory/{item_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete inventory item",
    )
    def inventory_delete(
        item_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        deleter: deps.InventoryDeleter = Depends(deps.get_inventory_deleter),
    ) -> None:
        deleter(item_id, caller)

    @application.post(
        "/inventory/{item_id}/restock",
        response_model=ShoppingListEntry,
        status_code=status.HTTP_201_CREATED,
        summary="Add a low-stock item to the shopping list",
    )
    def inventory_restock(
        item_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        requester: deps.RestockRequester = Depends(deps.get_restock_requester),
    ) -> ShoppingListEntry:
        return requester(item_id, caller)

    # Shopping list --------------------------------------------------------

    @application.get(
        "/shopping-list",
        response_model=list[ShoppingListEntry],
        summary="List shopping list entries",
    )
    def shopping_list_list(
        caller: deps.Caller = Depends(deps.get_caller),
        provider: deps.ShoppingListProvider = Depends(deps.get_shopping_list_provider),
    ) -> list[ShoppingListEntry]:
        return provider(caller)

    @application.post(
        "/shopping-list",
        response_model=ShoppingListEntry,
        status_code=status.HTTP_201_CREATED,
        summary="Create shopping list entry",
    )
    def shopping_list_create(
        payload: ShoppingListCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        creator: deps.ShoppingListCreator = Depends(deps.get_shopping_list_creator),
    ) -> ShoppingListEntry:
        return creator(caller, payload.model_dump())

    @application.get(
        "/shopping-list/{entry_id}",
        response_model=ShoppingListEntry,
        summary="Get shopping list entry",
    )
    def shopping_list_get(
        entry_id: int,
        caller: deps.Caller = Depends(deps.get_caller),
        fetcher: deps.ShoppingListFetcher = Depends(deps.get_shopping_list_fetcher),
    ) -> ShoppingListEntry:
        entry = fetcher(entry_id, caller)
        if entry is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
        return entry

    @application.put(
        "/shopping-list/{entry_id}",
        response_model=EntryChange,
        summary="Update shopping list entry",
    )
    def shopping_list_update(
        entry_id: int,
        payload: ShoppingListUpdateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        updater: deps.ShoppingListUpdater = Depends(deps.get_shopping_list_updater),
    ) -> EntryChange:
        update_payload = payload.model_dump(exclude_unset=True)
        _no_fields(update_payload)
        return updater(entry_id, caller, update_payload)

    @application.delete(
        "/shopping-list/{entry_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete shopping list entry",
    )
    def shopping_list_delete(
        entry_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        deleter: deps.ShoppingListDeleter = Depends(deps.get_shopping_list_deleter),
    ) -> None:
        deleter(entry_id, caller)

    @application.post(
        "/shopping-list/{entry_id}/bought",
        response_model=EntryChange,
        summary="Mark entry as bought",
    )
    def shopping_list_mark_bought(
        entry_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        marker: deps.ShoppingListFlagSetter = Depends(deps.get_bought_marker),
    ) -> EntryChange:
        return marker(entry_id, caller)

    @application.post(
        "/shopping-list/{entry_id}/added-to-inventory",
        response_model=EntryChange,
        summary="Mark entry as added to inventory",
    )
    def shopping_list_mark_added(
        entry_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        marker: deps.ShoppingListFlagSetter = Depends(deps.get_added_marker),
    ) -> EntryChange:
        return marker(entry_id, caller)

    @application.post(
        "/shopping-list/{entry_id}/reconcile",
        response_model=ReconcileResult,
        summary="Merge a completed entry into inventory",
    )
    def shopping_list_reconcile(
        entry_id: int,
        auth: None = Depends(deps.require_api_token),
        caller: deps.Caller = Depends(deps.get_caller),
        reconciler: deps.Reconciler = Depends(deps.get_entry_reconciler),
    ) -> ReconcileResult:
        return reconciler(entry_id, caller)

    @application.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    return application


class HouseholdCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class HouseholdJoinRequest(BaseModel):
    invite_code: str = Field(min_length=1, max_length=16)


class CategoryCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    icon: Optional[str] = Field(default=None, max_length=32)
    color: Optional[str] = Field(default=None, max_length=32)


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    icon: Optional[str] = Field(default=None, max_length=32)
    color: Optional[str] = Field(default=None, max_length=32)


class InventoryCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    quantity: float = Field(ge=0)
    unit: str = Field(default="piece", min_length=1, max_length=64)
    category_id: Optional[int] = Field(default=None, ge=1)
    min_stock: Optional[float] = Field(default=None, ge=0)
    expiration_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class InventoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, min_length=1, max_length=64)
    category_id: Optional[int] = Field(default=None, ge=1)
    min_stock: Optional[float] = Field(default=None, ge=0)
    expiration_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class ShoppingListCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, min_length=1, max_length=64)
    category_id: Optional[int] = Field(default=None, ge=1)
    linked_inventory_item_id: Optional[int] = Field(default=None, ge=1)


class ShoppingListUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, min_length=1, max_length=64)
    category_id: Optional[int] = Field(default=None, ge=1)
    is_bought: Optional[bool] = Field(default=None)
    is_added_to_inventory: Optional[bool] = Field(default=None)


app = create_app()

__all__ = ["app", "create_app"]
