from __future__ import annotations

from datetime import date

from backend.card_reports.config import CHANNEL_USAGE, Settings
from backend.card_reports.dependencies import get_report_settings
from backend.card_reports.main import app


def _create(client, amount: int, when: str = "2024-01-02T12:30:00+09:00"):
    response = client.post(
        "/records",
        json={"amount": amount, "datetime_of_use": when, "where_to_use": "Bakery"},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health_check(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "card-usage-reports"}


def test_create_record_updates_reports_and_notifies(client, store, console_client) -> None:
    payload = _create(client, 1200)

    assert payload["record"]["path"].startswith("details/2024/01/term1/2/")
    assert payload["outcomes"] == {"daily": "created", "weekly": "created", "monthly": "created"}
    assert store.get("reports/daily/2024-01/02")["total_amount"] == 1200
    channels = [channel for channel, _ in console_client.records]
    assert channels[-1] == CHANNEL_USAGE
    assert "alert_weekly" in channels


def test_records_at_the_same_instant_get_distinct_paths(client, store) -> None:
    first = _create(client, 100)["record"]["path"]
    second = _create(client, 200)["record"]["path"]

    assert first != second
    daily = store.get("reports/daily/2024-01/02")
    assert (daily["total_amount"], daily["total_count"]) == (300, 2)


def test_record_lifecycle(client, store) -> None:
    path = _create(client, 500)["record"]["path"]

    fetched = client.get(f"/records/{path}")
    assert fetched.status_code == 200
    assert fetched.json()["where_to_use"] == "Bakery"

    patched = client.patch(f"/records/{path}", json={"amount": 800})
    assert patched.status_code == 200
    assert patched.json()["record"]["amount"] == 800
    assert store.get("reports/monthly/2024/01")["total_amount"] == 800

    deleted = client.delete(f"/records/{path}")
    assert deleted.status_code == 200
    assert deleted.json()["record"]["is_active"] is False
    assert store.get("reports/daily/2024-01/02")["total_count"] == 0
    assert client.delete(f"/records/{path}").status_code == 409

    restored = client.post(f"/records/{path}/reactivate")
    assert restored.status_code == 200
    assert store.get("reports/daily/2024-01/02")["total_amount"] == 800
    assert client.post(f"/records/{path}/reactivate").status_code == 409


def test_unknown_record_returns_404(client) -> None:
    assert client.get("/records/details/2024/01/term1/2/missing").status_code == 404
    assert client.get("/records/details/2024/01/week1/2/missing").status_code == 404


def test_process_record_endpoint(client, seed_record, store) -> None:
    path = seed_record(date(2024, 1, 3), 700)

    response = client.post(
        "/reports/records/process",
        json={"path": path, "data": store.get(path), "report_types": "daily"},
    )

    assert response.status_code == 200
    assert response.json() == {"processed": True, "path": path, "outcomes": {"daily": "created"}}

    invalid = client.post(
        "/reports/records/process",
        json={"path": "details/2024/01/term1/3/x", "data": {"amount": "lots"}},
    )
    assert invalid.status_code == 400


def test_recalculate_endpoint(client, seed_record, store) -> None:
    seed_record(date(2024, 1, 1), 1000)
    seed_record(date(2024, 1, 1), 2000)
    seed_record(date(2024, 1, 2), 1500)

    response = client.post(
        "/reports/recalculate",
        json={"start_date": "2024-01-01", "end_date": "2024-01-02", "report_types": ["daily"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["executed_by"] == "http-api"
    assert body["created"]["daily"] == 2
    assert store.get("reports/daily/2024-01/01")["last_updated_by"] == "http-api"


def test_recalculate_endpoint_dry_run(client, seed_record, store) -> None:
    seed_record(date(2024, 1, 6), 1000)
    seed_record(date(2024, 1, 7), 2000)

    body = client.post(
        "/reports/recalculate",
        json={"start_date": "2024-01-06", "end_date": "2024-01-07", "dry_run": True},
    ).json()

    assert body["expected_processing"] == {"daily": 2, "weekly": 2, "monthly": 1}
    assert len(body["date_stats"]) == 2
    assert store.list_children("reports") == []


def test_recalculate_endpoint_validates_input(client) -> None:
    reversed_range = client.post(
        "/reports/recalculate", json={"start_date": "2024-01-02", "end_date": "2024-01-01"}
    )
    too_long = client.post(
        "/reports/recalculate", json={"start_date": "2024-01-01", "end_date": "2024-12-31"}
    )
    unknown_type = client.post(
        "/reports/recalculate",
        json={"start_date": "2024-01-01", "end_date": "2024-01-01", "report_types": "hourly"},
    )

    assert reversed_range.status_code == 400
    assert too_long.status_code == 400
    assert unknown_type.status_code == 400


def test_report_reads(client) -> None:
    _create(client, 400)

    listing = client.get("/reports/daily/2024-01")
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    single = client.get("/reports/weekly/2024-01/term1")
    assert single.status_code == 200
    assert single.json()["data"]["total_amount"] == 400

    assert client.get("/reports/monthly/2024/02").status_code == 404
    assert client.get("/reports/yearly/2024").status_code == 422


def test_deliver_endpoint(client, store) -> None:
    store.create("reports/daily/2024-01/02", {"total_amount": 5, "total_count": 1})

    response = client.post("/reports/deliver", params={"today": "2024-01-03"})

    assert response.status_code == 200
    assert response.json()["sent"] == ["reports/daily/2024-01/02"]


def test_misconfigured_thresholds_leave_no_partial_writes(client, seed_record, store) -> None:
    path = seed_record(date(2024, 1, 3), 700)
    app.dependency_overrides[get_report_settings] = lambda: Settings(
        weekly_thresholds=(5000, 1000, 10000)
    )

    created = client.post(
        "/records",
        json={"amount": 100, "datetime_of_use": "2024-01-02T12:30:00+09:00"},
    )
    processed = client.post(
        "/reports/records/process", json={"path": path, "data": store.get(path)}
    )

    assert created.status_code == 500
    assert "level1 < level2 < level3" in created.json()["detail"]
    assert processed.status_code == 500
    assert store.list_children("details/2024/01/term1") == ["3"]
    assert store.list_children("reports") == []
