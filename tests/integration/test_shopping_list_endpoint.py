"""Integration tests for the shopping list endpoints."""

from __future__ import annotations

from fastapi import status

from homestock.config import get_settings
from homestock.db.models import ShoppingListEntryORM
from homestock.db.repository import session_scope, utcnow


def _headers(user_id: str = "alice") -> dict[str, str]:
    headers = {"X-User-ID": user_id}
    token = get_settings().api_token
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def test_shopping_list_lifecycle_merges_into_inventory(client, household):
    response = client.get("/shopping-list", headers=_headers())
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == []

    response = client.post(
        "/shopping-list",
        json={"name": "milk", "quantity": 2, "unit": "carton"},
        headers=_headers(),
    )
    assert response.status_code == status.HTTP_201_CREATED
    entry = response.json()
    entry_id = entry["id"]
    assert entry["state"] == "pending"
    assert entry["added_by"] == "alice"

    response = client.post(f"/shopping-list/{entry_id}/bought", headers=_headers("bob"))
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["entry"]["state"] == "bought"
    assert body["reconciliation"] is None

    response = client.post(f"/shopping-list/{entry_id}/added-to-inventory", headers=_headers("bob"))
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["entry"] is None
    assert body["reconciliation"]["outcome"] == "created"

    response = client.get(f"/shopping-list/{entry_id}", headers=_headers())
    assert response.status_code == status.HTTP_404_NOT_FOUND

    inventory = client.get("/inventory", headers=_headers()).json()
    assert [(item["name"], item["quantity"], item["unit"], item["last_updated_by"]) for item in inventory] == [
        ("milk", 2.0, "carton", "bob")
    ]

    response = client.post(f"/shopping-list/{entry_id}/reconcile", headers=_headers())
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["outcome"] == "missing"


def test_update_endpoint_patches_and_triggers(client, household):
    entry_id = client.post("/shopping-list", json={"name": "eggs"}, headers=_headers()).json()["id"]

    response = client.put(f"/shopping-list/{entry_id}", json={"quantity": 12}, headers=_headers())
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["entry"]["quantity"] == 12

    response = client.put(f"/shopping-list/{entry_id}", json={}, headers=_headers())
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = client.put(
        f"/shopping-list/{entry_id}",
        json={"is_bought": True, "is_added_to_inventory": True},
        headers=_headers(),
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["reconciliation"]["outcome"] == "created"
    assert client.get("/shopping-list", headers=_headers()).json() == []


def test_reconcile_endpoint_reports_not_ready(client, household):
    entry_id = client.post("/shopping-list", json={"name": "kale"}, headers=_headers()).json()["id"]

    response = client.post(f"/shopping-list/{entry_id}/reconcile", headers=_headers())

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"entry_id": entry_id, "outcome": "not_ready", "inventory_item_id": None}


def test_error_mapping(client, household, other_household):
    response = client.post("/shopping-list", json={"name": "milk"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = client.post("/shopping-list", json={"name": "milk"}, headers=_headers("drifter"))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "NoHousehold"

    response = client.post("/shopping-list", json={"name": "milk", "quantity": -1}, headers=_headers())
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    entry_id = client.post("/shopping-list", json={"name": "milk"}, headers=_headers()).json()["id"]
    response = client.delete(f"/shopping-list/{entry_id}", headers=_headers("mallory"))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.put("/shopping-list/9999", json={"name": "x"}, headers=_headers())
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "NotFound"


def test_clearing_flag_mid_merge_is_a_conflict(client, household):
    entry_id = client.post("/shopping-list", json={"name": "flour"}, headers=_headers()).json()["id"]
    with session_scope() as session:
        row = session.get(ShoppingListEntryORM, entry_id)
        row.is_bought = True
        row.is_added_to_inventory = True
        row.is_processing = True
        row.processing_started_at = utcnow()

    response = client.put(f"/shopping-list/{entry_id}", json={"is_bought": False}, headers=_headers())

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "InvalidTransition"


def test_delete_entry(client, household):
    entry_id = client.post("/shopping-list", json={"name": "limes"}, headers=_headers()).json()["id"]

    response = client.delete(f"/shopping-list/{entry_id}", headers=_headers("bob"))
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/shopping-list", headers=_headers()).json() == []
