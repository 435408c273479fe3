import json
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.hierarchy import HierarchyStore, build_default_store
from models.catalog import NO_UNIT_ID
from services.compatibility_service import CompatibilityService, build_default_service
from settings import get_settings
from storage.conversion_array import ConversionArray, build_default_conversion_array

from conftest import PIK, build_payload


@pytest.fixture
def service() -> CompatibilityService:
    return CompatibilityService(store=HierarchyStore(), conversion_array=ConversionArray())


@pytest.fixture
def api_client(service: CompatibilityService, monkeypatch) -> Iterator[TestClient]:
    def build_test_service() -> CompatibilityService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


@pytest.fixture
def loaded_client(api_client: TestClient) -> TestClient:
    response = api_client.put("/hierarchy", json=build_payload().model_dump(mode="json"))
    assert response.status_code == 200
    response = api_client.put("/conversion-array", json={"pik": PIK})
    assert response.status_code == 200
    return api_client


def test_lifespan_clears_service_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("HIERARCHY_PERSISTENCE_PATH", str(tmp_path / "hierarchy.json"))
    monkeypatch.setenv("CONVERSION_ARRAY_PATH", str(tmp_path / "pik.json"))
    caches = (get_settings, build_default_store, build_default_conversion_array, build_default_service)
    for cache in caches:
        cache.cache_clear()

    try:
        with TestClient(create_app()):
            during = build_default_service()
            assert build_default_service() is during

        assert build_default_service() is not during
    finally:
        for cache in caches:
            cache.cache_clear()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").status_code == 200


def test_hierarchy_upload_returns_counts(api_client: TestClient) -> None:
    response = api_client.put("/hierarchy", json=build_payload().model_dump(mode="json"))

    assert response.status_code == 200
    assert response.json() == {"unit_count": 9, "meter_count": 6, "group_count": 5}


def test_invalid_hierarchy_is_rejected(api_client: TestClient) -> None:
    payload = build_payload().model_dump(mode="json")
    payload["groups"][0]["child_groups"] = [202]

    response = api_client.put("/hierarchy", json=payload)

    assert response.status_code == 400
    assert "cycle" in response.json()["detail"]


def test_conversion_array_lifecycle(api_client: TestClient) -> None:
    assert api_client.get("/conversion-array").json() == {"ready": False, "rows": 0, "columns": 0}

    response = api_client.put("/conversion-array", json={"pik": PIK})
    assert response.json() == {"ready": True, "rows": 4, "columns": 5}

    response = api_client.delete("/conversion-array")
    assert response.json()["ready"] is False


def test_ragged_conversion_array_is_rejected(api_client: TestClient) -> None:
    response = api_client.put("/conversion-array", json={"pik": [[True, False], [True]]})

    assert response.status_code == 422


def test_queries_before_array_is_loaded_are_empty(api_client: TestClient) -> None:
    api_client.put("/hierarchy", json=build_payload().model_dump(mode="json"))

    assert api_client.get("/units/1/compatible").json() == {"unit_ids": []}
    assert api_client.get("/groups/202/compatible").json() == {"unit_ids": []}


def test_unit_compatible_units(loaded_client: TestClient) -> None:
    assert loaded_client.get("/units/1/compatible").json() == {"unit_ids": [10, 11, 12]}
    assert loaded_client.get(f"/units/{NO_UNIT_ID}/compatible").json() == {"unit_ids": []}


def test_unknown_unit_is_a_conflict(loaded_client: TestClient) -> None:
    response = loaded_client.get("/units/999/compatible")

    assert response.status_code == 409
    assert "999" in response.json()["detail"]


def test_meter_set_compatible_units(loaded_client: TestClient) -> None:
    response = loaded_client.post("/meters/compatible", json={"meter_ids": [100, 102, 106]})
    assert response.json() == {"unit_ids": [11]}

    response = loaded_client.post("/meters/compatible", json={"meter_ids": []})
    assert response.json() == {"unit_ids": []}

    response = loaded_client.post("/meters/compatible", json={"meter_ids": [999]})
    assert response.status_code == 404
    assert response.json()["detail"] == "Meter 999 not found."


def test_group_compatible_units(loaded_client: TestClient) -> None:
    assert loaded_client.get("/groups/202/compatible").json() == {"unit_ids": [11, 12]}
    assert loaded_client.get("/groups/999/compatible").status_code == 404


def test_meter_options(loaded_client: TestClient) -> None:
    response = loaded_client.get("/groups/200/meter-options")

    assert response.status_code == 200
    options = {option["id"]: option for option in response.json()}
    assert options[101] == {"id": 101, "label": "Elec B", "disabled": False, "change_case": "NO_CHANGE"}
    assert options[102]["change_case"] == "LOST_DEFAULT_GRAPHIC_UNIT"
    assert options[103] == {"id": 103, "label": "Water", "disabled": True, "change_case": "NO_COMPATIBLE_UNITS"}


def test_group_options(loaded_client: TestClient) -> None:
    response = loaded_client.get("/groups/204/group-options")

    options = {option["id"]: option for option in response.json()}
    assert options[203]["disabled"] is True
    assert options[200]["change_case"] == "NO_CHANGE"


def test_options_with_inconsistent_catalog_is_a_conflict(api_client: TestClient) -> None:
    payload = build_payload()
    payload.meters[5].unit_id = 42
    api_client.put("/hierarchy", json=payload.model_dump(mode="json"))
    api_client.put("/conversion-array", json={"pik": PIK})

    response = api_client.get("/groups/200/meter-options")

    assert response.status_code == 409


def test_change_preview(loaded_client: TestClient) -> None:
    response = loaded_client.post("/groups/200/changes", json={"add_meters": [102]})

    assert response.status_code == 200
    body = response.json()
    assert body["decision"] == "confirm"
    assert body["outcomes"][0] == {
        "group_id": 200,
        "change_case": "LOST_DEFAULT_GRAPHIC_UNIT",
        "default_graphic_unit_update": NO_UNIT_ID,
    }
    assert [outcome["group_id"] for outcome in body["outcomes"]] == [200, 201, 202]


def test_change_creating_cycle_is_bad_request(loaded_client: TestClient) -> None:
    response = loaded_client.post("/groups/200/changes", json={"add_groups": [202]})

    assert response.status_code == 400


def test_commit_requires_confirmation(loaded_client: TestClient, service: CompatibilityService) -> None:
    change = {"add_meters": [102]}

    response = loaded_client.post("/groups/200/changes/commit", json={"change": change})
    assert response.json()["committed"] is False
    assert service.store.snapshot().groups[200].default_graphic_unit == 10

    response = loaded_client.post("/groups/200/changes/commit", json={"change": change, "confirmed": True})
    body = response.json()
    assert body["committed"] is True
    assert body["updated_groups"] == [200]
    snapshot = service.store.snapshot()
    assert snapshot.groups[200].default_graphic_unit == NO_UNIT_ID
    # Membership is left to the caller.
    assert snapshot.groups[200].child_meters == frozenset({100, 101})


def test_cancelled_change_is_never_committed(loaded_client: TestClient) -> None:
    response = loaded_client.post(
        "/groups/201/changes/commit",
        json={"change": {"add_meters": [103]}, "confirmed": True},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["committed"] is False
    assert body["plan"]["decision"] == "cancel"
    assert body["updated_groups"] == []


def test_invalid_stored_hierarchy_is_a_conflict(
    api_client: TestClient, service: CompatibilityService, tmp_path
) -> None:
    path = tmp_path / "hierarchy.json"
    payload = build_payload()
    payload.units[1].unit_index = 0
    path.write_text(json.dumps(payload.model_dump(mode="json")))
    service.store = HierarchyStore(persistence_path=path)

    for response in (
        api_client.get("/groups/200/compatible"),
        api_client.get("/groups/200/group-options"),
        api_client.post("/groups/200/changes", json={"add_meters": [102]}),
    ):
        assert response.status_code == 409
        assert "share index 0" in response.json()["detail"]


def test_emptying_a_group_commits_reset_default(
    loaded_client: TestClient, service: CompatibilityService
) -> None:
    response = loaded_client.post("/groups/203/changes/commit", json={"change": {"remove_meters": [103]}})

    body = response.json()
    assert body["plan"]["decision"] == "apply"
    assert body["committed"] is True
    assert body["updated_groups"] == [203]
    assert service.store.snapshot().groups[203].default_graphic_unit == NO_UNIT_ID
