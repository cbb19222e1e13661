from decimal import Decimal

import config
import main
from tests.conftest import FakeTryOnClient

ENDPOINT = "/api/agent/process-tryon"
HUMAN_URL = "https://img.test/person.png"
GARMENT_URL = "https://img.test/shirt.png"


def test_json_request_succeeds_and_records_spend(api, ledger, fake_client):
    response = api.post(
        ENDPOINT,
        json={"humanImageUrl": HUMAN_URL, "garmentImageUrl": GARMENT_URL, "garmentType": "upper_body"},
        headers={"x-session-id": "session-abc"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"]["imageUrl"] == "https://files.test/result.png"
    assert body["cost"] == 0.05
    assert body["userBudget"] == {"spent": 0.05, "remaining": 0.45, "limit": 0.5}
    assert body["metadata"]["userId"] == "session-abc"
    assert body["metadata"]["usedDescription"] is False
    assert fake_client.steps() == ["compose"]
    assert ledger.get_user_spending("session-abc") == Decimal("0.05")


def test_user_id_falls_back_to_forwarded_address(api, ledger):
    response = api.post(
        ENDPOINT,
        json={"humanImageUrl": HUMAN_URL, "garmentImageUrl": GARMENT_URL},
        headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1"},
    )

    assert response.json()["metadata"]["userId"] == "203.0.113.7"
    assert ledger.get_user_spending("203.0.113.7") == Decimal("0.05")


def test_multipart_request_uploads_binary(api, fake_client, png_bytes):
    response = api.post(
        ENDPOINT,
        files={"humanImage": ("person.png", png_bytes, "image/png")},
        data={"garmentImageUrl": GARMENT_URL, "garmentType": "dresses"},
        headers={"x-session-id": "s1"},
    )

    assert response.status_code == 200
    assert fake_client.calls == [
        ("upload", "person.png"),
        ("compose", "https://files.test/person.png", GARMENT_URL, "dresses"),
    ]
    assert response.json()["metadata"]["garmentType"] == "dresses"


def test_multipart_description_generates_garment(api, fake_client):
    response = api.post(
        ENDPOINT,
        data={"humanImageUrl": HUMAN_URL, "garmentDescription": "black leather trousers", "garmentType": "lower_body"},
        files={"garmentImage": ("empty.png", b"", "image/png")},
        headers={"x-session-id": "s1"},
    )

    body = response.json()
    assert response.status_code == 200
    assert fake_client.steps() == ["generate", "compose"]
    assert body["generatedGarment"] == "https://files.test/generated-garment.png"
    assert body["cost"] == 0.08
    assert body["metadata"]["usedDescription"] is True


def test_missing_human_image_is_400_without_side_effects(api, ledger, fake_client):
    response = api.post(ENDPOINT, json={"garmentImageUrl": GARMENT_URL}, headers={"x-session-id": "s1"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "missing human image"}
    assert fake_client.calls == []
    assert ledger.get_all_spending() == []


def test_missing_garment_input_is_400(api, fake_client):
    response = api.post(ENDPOINT, json={"humanImageUrl": HUMAN_URL})

    assert response.status_code == 400
    assert response.json()["error"] == "missing garment input"
    assert fake_client.calls == []


def test_malformed_json_is_400(api):
    response = api.post(ENDPOINT, content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "malformed JSON body"


def test_wrong_field_types_are_400(api):
    response = api.post(ENDPOINT, json={"humanImageUrl": ["a", "b"], "garmentImageUrl": GARMENT_URL})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid request body"


def test_unsupported_content_type_is_400(api):
    response = api.post(ENDPOINT, content=b"humanImageUrl=x", headers={"content-type": "text/plain"})

    assert response.status_code == 400
    assert "Unsupported content type" in response.json()["error"]


def test_budget_exceeded_is_402_with_snapshot(api, ledger, fake_client):
    ledger.record_spending("s1", "0.46")

    response = api.post(
        ENDPOINT,
        json={"humanImageUrl": HUMAN_URL, "garmentImageUrl": GARMENT_URL},
        headers={"x-session-id": "s1"},
    )

    assert response.status_code == 402
    assert response.json() == {
        "success": False,
        "error": "User budget limit reached",
        "userBudget": {"spent": 0.46, "remaining": 0.04, "limit": 0.5},
        "estimatedCost": 0.05,
    }
    assert fake_client.calls == []


def test_external_failure_is_500_and_not_charged(api, ledger, monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "development")
    failing = FakeTryOnClient(fail_on="compose")
    main.app.dependency_overrides[main.get_tryon_client] = lambda: failing

    response = api.post(
        ENDPOINT,
        json={"humanImageUrl": HUMAN_URL, "garmentImageUrl": GARMENT_URL},
        headers={"x-session-id": "s1"},
    )

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "compose failed: boom"
    assert body["details"]["step"] == "compose"
    assert ledger.get_user_spending("s1") == Decimal("0")


def test_production_mode_hides_error_detail(api, monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "production")
    failing = FakeTryOnClient(fail_on="generate")
    main.app.dependency_overrides[main.get_tryon_client] = lambda: failing

    response = api.post(ENDPOINT, json={"humanImageUrl": HUMAN_URL, "garmentDescription": "wool coat"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "External service call failed"}


def test_unclassified_error_is_generic_500(api, monkeypatch):
    class BrokenLedger:
        def reserve(self, user_id, amount):
            raise RuntimeError("ledger offline")

    monkeypatch.setattr(config, "ENVIRONMENT", "development")
    main.app.dependency_overrides[main.get_budget_ledger] = lambda: BrokenLedger()

    response = api.post(ENDPOINT, json={"humanImageUrl": HUMAN_URL, "garmentImageUrl": GARMENT_URL})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert body["details"] == {"type": "RuntimeError", "message": "ledger offline"}


def test_status_endpoint_reports_costs(api):
    response = api.get(ENDPOINT)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["baseCost"] == 0.05
    assert body["generationCost"] == 0.03
    assert body["userLimit"] == 0.5


def test_admin_endpoints_require_api_key(api, ledger, monkeypatch):
    monkeypatch.setattr(config, "API_KEY", "secret")
    ledger.record_spending("s1", "0.10")

    assert api.get("/api/admin/budgets").status_code == 401
    assert api.get("/api/admin/budgets", headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = api.get("/api/admin/budgets", headers={"Authorization": "Bearer secret"})
    assert response.status_code == 200
    assert response.json() == {"limit": 0.5, "users": [{"userId": "s1", "spent": 0.1, "remaining": 0.4}]}


def test_admin_reset_endpoints(api, ledger, monkeypatch):
    monkeypatch.setattr(config, "API_KEY", None)
    ledger.record_spending("s1", "0.10")
    ledger.record_spending("s2", "0.20")

    response = api.delete("/api/admin/budgets/s1")
    assert response.status_code == 200
    assert response.json() == {"success": True, "reset": {"userId": "s1"}}
    assert ledger.get_user_spending("s1") == Decimal("0")
    assert ledger.get_user_spending("s2") == Decimal("0.20")

    response = api.delete("/api/admin/budgets")
    assert response.status_code == 200
    assert ledger.get_all_spending() == []


def test_oversized_upload_is_rejected_before_any_call(api, ledger, fake_client, png_bytes, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 16)

    response = api.post(
        ENDPOINT,
        files={"humanImage": ("person.png", png_bytes + b"\0" * 64, "image/png")},
        data={"garmentImageUrl": GARMENT_URL},
        headers={"x-session-id": "s1"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "humanImage exceeds maximum upload size of 16 bytes"
    assert fake_client.calls == []
    assert ledger.get_all_spending() == []


def test_success_body_omits_absent_generated_garment(api):
    response = api.post(ENDPOINT, json={"humanImageUrl": HUMAN_URL, "garmentImageUrl": GARMENT_URL})

    assert response.status_code == 200
    assert "generatedGarment" not in response.json()
