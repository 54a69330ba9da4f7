"""Integration tests for metrics endpoint."""

from __future__ import annotations


def test_metrics_endpoint_available(client, household):
    headers = {"X-User-ID": "alice"}
    entry_id = client.post("/shopping-list", json={"name": "tea"}, headers=headers).json()["id"]
    client.put(
        f"/shopping-list/{entry_id}",
        json={"is_bought": True, "is_added_to_inventory": True},
        headers=headers,
    )

    response = client.get("/metrics")
    assert response.status_code == 200
    body = response.content.decode()
    assert "homestock_http_requests_total" in body
    assert 'homestock_reconciliations_total{outcome="created"}' in body
