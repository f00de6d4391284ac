from __future__ import annotations

from dataclasses import replace

from fastapi.testclient import TestClient

from seat_allocation.app import create_app
from seat_allocation.utils.config import get_settings


# Demo seed ids: employees 1=Admin, 2/3=Managers, 4=Technical;
# labs 1=Aero1 and 2=Aero2 on floor 1 (F9), 3=Propulsion and 4=Avionics on floor 2 (F10).
ADMIN_ID = 1
MANAGER_ID = 2
OTHER_MANAGER_ID = 3


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=True,
        notification_webhook_url=None,
    )


def test_request_lifecycle_end_to_end(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_flow.db"))

    with TestClient(app) as client:
        assert client.get("/health").json()["status"] == "ok"

        labs = client.get("/labs")
        assert labs.status_code == 200
        assert [lab["lab_name"] for lab in labs.json()] == [
            "Aero1",
            "Aero2",
            "Avionics",
            "Propulsion",
        ]

        created = client.post(
            "/requests",
            json={
                "requestor_id": MANAGER_ID,
                "division": "Structures",
                "num_workstations": 3,
                "seats": [1, 2, 3],
                "lab_id": 1,
                "justification": "New hires",
            },
        )
        assert created.status_code == 201
        request_body = created.json()
        assert request_body["status"] == "pending"
        assert request_body["floor_name"] == "F9"

        conflict = client.post(
            "/requests",
            json={
                "requestor_id": OTHER_MANAGER_ID,
                "division": "Systems",
                "num_workstations": 2,
                "seats": [3, 4],
                "lab_id": 1,
            },
        )
        assert conflict.status_code == 409
        assert conflict.json()["detail"]["error"] == "SeatConflict"

        approved = client.post(
            f"/requests/{request_body['request_id']}/approve",
            json={"approver_id": ADMIN_ID, "notes": "Go ahead"},
        )
        assert approved.status_code == 200
        assert approved.json()["request"]["status"] == "approved"
        assert approved.json()["bookings_changed"] == 3

        availability = client.get("/labs/1/availability").json()
        assert availability["in_use"] == 3
        assert availability["available"] == 47
        assert availability["approved_seats"] == [1, 2, 3]

        too_late = client.post(
            f"/requests/{request_body['request_id']}/reject",
            json={"reason": "Changed mind"},
        )
        assert too_late.status_code == 409
        assert too_late.json()["detail"]["error"] == "StaleState"

        summary = client.get("/reports/summary").json()
        assert summary["total_workstations"] == 180
        assert summary["occupied_workstations"] == 3

        assert client.get("/requests/999").status_code == 404


def test_multi_lab_allocation_over_http(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_allocation.db"))

    with TestClient(app) as client:
        request_id = client.post(
            "/requests",
            json={"requestor_id": OTHER_MANAGER_ID, "division": "Systems", "num_workstations": 4},
        ).json()["request_id"]

        partial = client.post(
            f"/requests/{request_id}/allocations",
            json={
                "lab_name": "Aero2",
                "lab_id": 2,
                "floor_id": 1,
                "division": "Systems",
                "seats": [1, 2],
                "asset_id_range": "101-102",
            },
        )
        assert partial.status_code == 200
        assert partial.json()["status"] == "partially_allocated"

        pending = client.get("/requests", params={"status": "partially_allocated"}).json()
        assert [item["request_id"] for item in pending] == [request_id]

        missing_lab = client.post(
            f"/requests/{request_id}/finalize",
            json={
                "approver_id": ADMIN_ID,
                "allocations": [
                    {"lab_name": "Hangar", "lab_id": 99, "floor_id": 2, "division": "Systems", "seats": [1]},
                ],
            },
        )
        assert missing_lab.status_code == 409
        assert missing_lab.json()["detail"]["error"] == "LabNotProvisioned"

        finalized = client.post(
            f"/requests/{request_id}/finalize",
            json={
                "approver_id": ADMIN_ID,
                "allocations": [
                    {"lab_name": "Aero2", "lab_id": 2, "floor_id": 1, "division": "Systems", "seats": [1, 2], "asset_id_range": "101-102"},
                    {"lab_name": "Propulsion", "lab_id": 3, "floor_id": 2, "division": "Systems", "seats": [5, 6]},
                ],
            },
        )
        assert finalized.status_code == 200
        assert finalized.json()["request"]["status"] == "approved"

        usages = {
            (row["lab_name"], row["division"]): row
            for row in client.get("/division_usages").json()
        }
        assert usages[("Aero2", "Systems")]["in_use"] == 2
        assert usages[("Aero2", "Systems")]["asset_id_range"] == "101-102"
        assert usages[("Propulsion", "Systems")]["in_use"] == 2

        bookings = client.get(f"/requests/{request_id}/bookings").json()
        assert {booking["status"] for booking in bookings} == {"approved"}

        divisions = client.get("/reports/divisions").json()
        assert divisions[0]["division"] == "Systems"
        assert divisions[0]["in_use"] == 4


def test_capacity_management_endpoints(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_capacity.db"))

    with TestClient(app) as client:
        floor = client.post(
            "/floors",
            json={"office_name": "Annex", "city": "Hyderabad", "floor_name": "G1"},
        ).json()
        again = client.post(
            "/floors",
            json={"office_name": "annex", "floor_name": "g1"},
        ).json()
        assert again["floor_id"] == floor["floor_id"]

        lab = client.post(
            "/labs",
            json={"floor_id": floor["floor_id"], "lab_name": "Simulation", "total_workstations": 12},
        )
        assert lab.status_code == 201
        duplicate = client.post(
            "/labs",
            json={"floor_id": floor["floor_id"], "lab_name": "Simulation", "total_workstations": 5},
        )
        assert duplicate.status_code == 400
        assert client.post(
            "/labs",
            json={"floor_id": 999, "lab_name": "Nowhere", "total_workstations": 5},
        ).status_code == 404

        resized = client.patch(f"/labs/{lab.json()['lab_id']}", json={"total_workstations": 20})
        assert resized.json()["total_workstations"] == 20

        offices = {row["office"]: row for row in client.get("/reports/offices").json()}
        assert offices["Annex"]["total"] == 20

        parsed = client.post("/asset_ids/parse", json={"asset_id_range": "12-15, 20"}).json()
        assert parsed["asset_ids"] == [12, 13, 14, 15, 20]
        assert parsed["canonical"] == "12-15, 20"
        assert parsed["tags"][0] == "012"

        strict = client.post(
            "/asset_ids/parse",
            json={"asset_id_range": "12-15, abc", "strict": True},
        )
        assert strict.status_code == 400


def test_invalid_payloads_are_rejected(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_invalid.db"))

    with TestClient(app) as client:
        zero = client.post(
            "/requests",
            json={"requestor_id": MANAGER_ID, "division": "Structures", "num_workstations": 0},
        )
        assert zero.status_code == 422

        duplicated = client.post(
            "/requests",
            json={
                "requestor_id": MANAGER_ID,
                "division": "Structures",
                "num_workstations": 2,
                "seats": [4, 4],
                "lab_id": 1,
            },
        )
        assert duplicated.status_code == 422

        no_lab = client.post(
            "/requests",
            json={"requestor_id": MANAGER_ID, "division": "Structures", "num_workstations": 2, "seats": [4]},
        )
        assert no_lab.status_code == 400
        assert no_lab.json()["detail"]["error"] == "ValidationError"


def test_approve_always_records_division_usage(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_approve_usage.db"))

    with TestClient(app) as client:
        created = client.post(
            "/requests",
            json={
                "requestor_id": MANAGER_ID,
                "division": "Structures",
                "num_workstations": 3,
                "seats": [5, 6, 7],
                "lab_id": 1,
            },
        ).json()

        approved = client.post(
            f"/requests/{created['request_id']}/approve",
            json={"approver_id": ADMIN_ID, "labs_already_updated": True},
        )
        assert approved.status_code == 200

        availability = client.get("/labs/1/availability").json()
        assert availability["in_use"] == 3
        usages = client.get("/division_usages").json()
        assert [(usage["division"], usage["in_use"]) for usage in usages] == [("Structures", 3)]


def test_asset_id_parsing_follows_app_settings(tmp_path):
    settings = replace(
        _build_test_settings(tmp_path, "api_parse_settings.db"),
        asset_id_parse_strict=True,
        asset_id_pad_width=4,
        asset_id_max_ids=5,
    )
    app = create_app(settings)

    with TestClient(app) as client:
        malformed = client.post("/asset_ids/parse", json={"asset_id_range": "12-15, abc"})
        assert malformed.status_code == 400
        assert malformed.json()["detail"]["error"] == "ValidationError"

        padded = client.post("/asset_ids/parse", json={"asset_id_range": "7-8"}).json()
        assert padded["tags"] == ["0007", "0008"]

        oversized = client.post("/asset_ids/parse", json={"asset_id_range": "1-20000000"})
        assert oversized.status_code == 400

        lenient = client.post(
            "/asset_ids/parse",
            json={"asset_id_range": "1-3, 1-20000000, 9", "strict": False},
        ).json()
        assert lenient["asset_ids"] == [1, 2, 3, 9]
