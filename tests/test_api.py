"""HTTP surface tests using the Flask test client."""

from datetime import timedelta

import pytest


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_requires_token(client, inline_item):
    response = client.post(f"/seeker/items/{inline_item.id}/access")

    assert response.status_code == 401


class TestProviderItems:

    def test_add_text_item_is_inline(self, client, auth_headers, provider):
        response = client.post("/provider/items", headers=auth_headers(provider), json={
            "item_name": "Tax id",
            "item_type": "text",
            "encrypted_data": "Y2lwaGVy",
            "encrypted_key": "wrapped",
            "iv": "iv",
        })

        assert response.status_code == 201
        assert response.get_json()["delivery_mode"] == "inline"

        listing = client.get("/provider/items", headers=auth_headers(provider)).get_json()
        assert [item["item_name"] for item in listing] == ["Tax id"]
        assert "encrypted_data" not in listing[0]

    def test_add_file_item_needs_url(self, client, auth_headers, provider):
        response = client.post("/provider/items", headers=auth_headers(provider), json={
            "item_name": "Payslip",
            "item_type": "pdf",
            "encrypted_key": "wrapped",
            "iv": "iv",
        })

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_argument"

    def test_seeker_cannot_add_items(self, client, auth_headers, seeker):
        response = client.post("/provider/items", headers=auth_headers(seeker), json={})

        assert response.status_code == 403
        assert response.get_json() == {"code": "forbidden", "msg": "Insufficient permissions"}

    def test_seeker_browses_by_provider_email(self, client, auth_headers, seeker, provider,
                                              inline_item):
        response = client.get(
            "/seeker/provider-items",
            query_string={"provider_email": provider.email},
            headers=auth_headers(seeker),
        )

        body = response.get_json()
        assert response.status_code == 200
        assert body["provider_name"] == provider.name
        assert [item["id"] for item in body["items"]] == [inline_item.id]

    def test_unknown_provider_email(self, client, auth_headers, seeker):
        response = client.get(
            "/seeker/provider-items",
            query_string={"provider_email": "nobody@nowhere.test"},
            headers=auth_headers(seeker),
        )

        assert response.status_code == 404
        assert response.get_json()["code"] == "not_found"


def test_full_inline_scenario(client, auth_headers, clock, provider, seeker, inline_item):
    seeker_headers = auth_headers(seeker)
    provider_headers = auth_headers(provider)
    access_url = f"/seeker/items/{inline_item.id}/access"

    first = client.post(access_url, headers=seeker_headers)
    assert first.status_code == 202
    consent_id = first.get_json()["consent_id"]
    assert first.get_json()["consent_status"] == "pending"

    pending = client.get("/provider/consents/pending", headers=provider_headers).get_json()
    assert [row["consent_id"] for row in pending] == [consent_id]

    approval = client.post(
        f"/provider/consents/{consent_id}/decision",
        headers=provider_headers,
        json={
            "decision": "approve",
            "count": 2,
            "valid_until": (clock.now + timedelta(days=1)).isoformat() + "Z",
            "encrypted_key_for_seeker": "wrapped-for-seeker",
        },
    )
    assert approval.status_code == 200
    assert approval.get_json()["consent_status"] == "approved"

    one = client.post(access_url, headers=seeker_headers)
    assert one.status_code == 200
    assert one.get_json()["encrypted_data"] == inline_item.encrypted_data
    assert one.get_json()["encrypted_key_for_seeker"] == "wrapped-for-seeker"
    assert one.get_json()["access_count"] == 2

    two = client.post(access_url, headers=seeker_headers)
    assert two.status_code == 200
    assert two.get_json()["consent_status"] == "exhausted"

    three = client.post(access_url, headers=seeker_headers)
    assert three.status_code == 403
    assert three.get_json()["consent_status"] == "exhausted"
    assert "encrypted_data" not in three.get_json()

    again = client.post(f"/seeker/items/{inline_item.id}/request-again", headers=seeker_headers)
    assert again.status_code == 202
    assert again.get_json()["consent_status"] == "pending"

    history = client.get("/seeker/history", headers=seeker_headers).get_json()
    assert [row["action"] for row in history][0] == "request"
    assert len(history) == 5

    owner_history = client.get("/provider/history", headers=provider_headers).get_json()
    assert len(owner_history) == 5


def test_indirect_content_relay(client, auth_headers, clock, fetcher, provider, seeker,
                                indirect_item):
    seeker_headers = auth_headers(seeker)
    consent_id = client.post(
        f"/seeker/items/{indirect_item.id}/access", headers=seeker_headers
    ).get_json()["consent_id"]
    client.post(
        f"/provider/consents/{consent_id}/decision",
        headers=auth_headers(provider),
        json={"decision": "approve", "count": 1, "encrypted_key_for_seeker": "k"},
    )

    reference = client.post(f"/seeker/items/{indirect_item.id}/access", headers=seeker_headers)
    assert reference.status_code == 200
    assert reference.get_json()["encrypted_url"] == indirect_item.encrypted_url

    fetcher.fail = True
    failed = client.get(f"/seeker/items/{indirect_item.id}/content", headers=seeker_headers)
    assert failed.status_code == 503
    assert failed.get_json()["code"] == "unavailable"

    fetcher.fail = False
    content = client.get(f"/seeker/items/{indirect_item.id}/content", headers=seeker_headers)
    assert content.status_code == 200
    assert content.data == fetcher.content
    assert content.headers["X-Consent-Status"] == "exhausted"
    assert content.headers["X-Access-Remaining"] == "0"

    denied = client.get(f"/seeker/items/{indirect_item.id}/content", headers=seeker_headers)
    assert denied.status_code == 403
    assert denied.get_json()["consent_status"] == "exhausted"


class TestDecisionErrors:

    @pytest.fixture
    def consent_id(self, client, auth_headers, seeker, inline_item):
        return client.post(
            f"/seeker/items/{inline_item.id}/access", headers=auth_headers(seeker)
        ).get_json()["consent_id"]

    def test_other_provider_is_forbidden(self, client, auth_headers, other_provider, consent_id):
        response = client.post(
            f"/provider/consents/{consent_id}/decision",
            headers=auth_headers(other_provider),
            json={"decision": "approve", "count": 1},
        )

        assert response.status_code == 403
        assert response.get_json()["code"] == "forbidden"

    def test_revoke_of_pending_is_invalid_transition(self, client, auth_headers, provider, consent_id):
        response = client.post(
            f"/provider/consents/{consent_id}/decision",
            headers=auth_headers(provider),
            json={"decision": "revoke"},
        )

        assert response.status_code == 409
        assert response.get_json()["code"] == "invalid_transition"

    @pytest.mark.parametrize("body", [
        {"decision": "approve", "count": 0},
        {"decision": "approve", "count": "many"},
        {"decision": "approve", "count": 2.9},
        {"decision": "approve", "count": "2.9"},
        {"decision": "approve", "count": 1, "valid_until": "2000-01-01T00:00:00"},
        {"decision": "approve", "count": 1, "encrypted_key_for_seeker": {"k": 1}},
        {"decision": "approve", "count": 1, "encrypted_key_for_seeker": 7},
        {"decision": 5},
        {"decision": "shrug"},
    ])
    def test_bad_arguments(self, client, auth_headers, provider, consent_id, body):
        response = client.post(
            f"/provider/consents/{consent_id}/decision", headers=auth_headers(provider), json=body
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_argument"
        assert set(response.get_json()) == {"code", "msg"}

        pending = client.get("/provider/consents/pending", headers=auth_headers(provider))
        assert [row["consent_id"] for row in pending.get_json()] == [consent_id]

    def test_count_given_as_integral_string(self, client, auth_headers, provider, consent_id):
        response = client.post(
            f"/provider/consents/{consent_id}/decision",
            headers=auth_headers(provider),
            json={"decision": "approve", "count": "3"},
        )

        assert response.status_code == 200
        assert response.get_json()["access_count"] == 3

    def test_re_request_while_pending(self, client, auth_headers, seeker, inline_item, consent_id):
        response = client.post(
            f"/seeker/items/{inline_item.id}/request-again", headers=auth_headers(seeker)
        )

        assert response.status_code == 409


def test_admin_deactivation_hides_provider_items(client, auth_headers, admin, provider, seeker,
                                                 inline_item):
    response = client.post(
        f"/admin/providers/{provider.id}/activation",
        headers=auth_headers(admin),
        json={"active": False},
    )
    assert response.status_code == 200
    assert response.get_json() == {"provider_id": provider.id, "is_active": False}

    access = client.post(f"/seeker/items/{inline_item.id}/access", headers=auth_headers(seeker))
    assert access.status_code == 404


def test_activation_requires_boolean(client, auth_headers, admin, seeker):
    response = client.post(
        f"/admin/seekers/{seeker.id}/activation", headers=auth_headers(admin), json={"active": "no"}
    )

    assert response.status_code == 400


def test_seeker_cannot_administer(client, auth_headers, seeker, provider):
    response = client.post(
        f"/admin/providers/{provider.id}/activation",
        headers=auth_headers(seeker),
        json={"active": False},
    )

    assert response.status_code == 403
