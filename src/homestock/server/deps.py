"""Dependency definitions for the Homestock API server."""

from __future__ import annotations

from typing import Callable, List, Optional

from fastapi import Depends, HTTPException, Request, status

from homestock.config import get_settings
from homestock.db.categories import (
    create_category,
    delete_category,
    list_categories,
    seed_default_categories,
    update_category,
)
from homestock.db.households import (
    create_household,
    generate_invite_code,
    get_current_household,
    join_household,
    list_members,
    remove_member,
)
from homestock.db.inventory import (
    create_inventory_item,
    delete_inventory_item,
    get_inventory_item,
    list_expiring_soon,
    list_inventory,
    list_low_stock,
    update_inventory_item,
)
from homestock.db.shopping_list import (
    add_low_stock_item_to_shopping_list,
    create_shopping_entry,
    delete_shopping_entry,
    get_shopping_entry,
    list_shopping_entries,
    mark_added_to_inventory,
    mark_bought,
    update_shopping_entry,
)
from homestock.models.household import Category, Household, HouseholdInvite, HouseholdMember
from homestock.models.inventory import InventoryItem
from homestock.models.shopping import EntryChange, ReconcileResult, ShoppingListEntry
from homestock.reconcile import ReconciliationEngine

Caller = Optional[str]

HouseholdCreator = Callable[[str, Caller], Household]
HouseholdProvider = Callable[[Caller], Optional[Household]]
MemberProvider = Callable[[Caller], List[HouseholdMember]]
MemberRemover = Callable[[str, Caller], None]
InviteIssuer = Callable[[Caller], HouseholdInvite]
HouseholdJoiner = Callable[[str, Caller], Household]
CategoryProvider = Callable[[Caller], List[Category]]
CategoryCreator = Callable[[Caller, dict], Category]
CategoryUpdater = Callable[[int, Caller, dict], Category]
CategoryDeleter = Callable[[int, Caller], None]
CategorySeeder = Callable[[Caller], List[Category]]
InventoryProvider = Callable[[Caller, Optional[int], Optional[int], int], List[InventoryItem]]
InventoryFetcher = Callable[[int, Caller], Optional[InventoryItem]]
InventoryCreator = Callable[[Caller, dict], InventoryItem]
InventoryUpdater = Callable[[int, Caller, dict], InventoryItem]
InventoryDeleter = Callable[[int, Caller], None]
LowStockProvider = Callable[[Caller], List[InventoryItem]]
ExpiringProvider = Callable[[Caller], List[InventoryItem]]
RestockRequester = Callable[[int, Caller], ShoppingListEntry]
ShoppingListProvider = Callable[[Caller], List[ShoppingListEntry]]
ShoppingListFetcher = Callable[[int, Caller], Optional[ShoppingListEntry]]
ShoppingListCreator = Callable[[Caller, dict], ShoppingListEntry]
ShoppingListUpdater = Callable[[int, Caller, dict], EntryChange]
ShoppingListFlagSetter = Callable[[int, Caller], EntryChange]
ShoppingListDeleter = Callable[[int, Caller], None]
Reconciler = Callable[[int, Caller], ReconcileResult]


def get_caller(request: Request) -> Caller:
    """Return the user id supplied by the upstream auth layer, if any."""

    user_id = request.headers.get("X-User-ID")
    if user_id and user_id.strip():
        return user_id.strip()
    return None


def get_reconciler() -> ReconciliationEngine:
    return ReconciliationEngine.from_settings()


def get_household_creator() -> HouseholdCreator:
    return create_household


def get_household_provider() -> HouseholdProvider:
    return get_current_household


def get_member_provider() -> MemberProvider:
    return list_members


def get_member_remover() -> MemberRemover:
    return remove_member


def get_invite_issuer() -> InviteIssuer:
    return generate_invite_code


def get_household_joiner() -> HouseholdJoiner:
    return join_household


def get_category_provider() -> CategoryProvider:
    return list_categories


def get_category_creator() -> CategoryCreator:
    return lambda caller, payload: create_category(caller, **payload)


def get_category_updater() -> CategoryUpdater:
    return lambda category_id, caller, payload: update_category(category_id, caller, **payload)


def get_category_deleter() -> CategoryDeleter:
    return delete_category


def get_category_seeder() -> CategorySeeder:
    return seed_default_categories


def get_inventory_provider() -> InventoryProvider:
    return lambda caller, category_id=None, limit=None, offset=0: list_inventory(
        caller, category_id, limit=limit, offset=offset
    )


def get_inventory_fetcher() -> InventoryFetcher:
    return get_inventory_item


def get_inventory_creator() -> InventoryCreator:
    return lambda caller, payload: create_inventory_item(caller, **payload)


def get_inventory_updater() -> InventoryUpdater:
    return lambda item_id, caller, payload: update_inventory_item(item_id, caller, **payload)


def get_inventory_deleter() -> InventoryDeleter:
    return delete_inventory_item


def get_low_stock_provider() -> LowStockProvider:
    return list_low_stock


def get_expiring_provider() -> ExpiringProvider:
    days = get_settings().expiring_soon_days
    return lambda caller: list_expiring_soon(caller, days)


def get_restock_requester() -> RestockRequester:
    return add_low_stock_item_to_shopping_list


def get_shopping_list_provider() -> ShoppingListProvider:
    return list_shopping_entries


def get_shopping_list_fetcher() -> ShoppingListFetcher:
    return get_shopping_entry


def get_shopping_list_creator() -> ShoppingListCreator:
    return lambda caller, payload: create_shopping_entry(caller, **payload)


def get_shopping_list_updater(
    reconciler: ReconciliationEngine = Depends(get_reconciler),
) -> ShoppingListUpdater:
    return lambda entry_id, caller, payload: update_shopping_entry(
        entry_id, caller, reconciler=reconciler, **payload
    )


def get_bought_marker(
    reconciler: ReconciliationEngine = Depends(get_reconciler),
) -> ShoppingListFlagSetter:
    return lambda entry_id, caller: mark_bought(entry_id, caller, reconciler=reconciler)


def get_added_marker(
    reconciler: ReconciliationEngine = Depends(get_reconciler),
) -> ShoppingListFlagSetter:
    return lambda entry_id, caller: mark_added_to_inventory(entry_id, caller, reconciler=reconciler)


def get_shopping_list_deleter() -> ShoppingListDeleter:
    return delete_shopping_entry


def get_entry_reconciler(
    reconciler: ReconciliationEngine = Depends(get_reconciler),
) -> Reconciler:
    return reconciler.reconcile


def require_api_token(
    request: Request,
    settings = Depends(get_settings),
) -> None:
    """Ensure requests carry the configured API token when required."""

    token = settings.api_token
    if not token:
        return

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.split("Bearer ")[-1].strip() == token:
        return

    if request.headers.get("X-API-Key") == token:
        return

    if request.query_params.get("api_token") == token:
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
