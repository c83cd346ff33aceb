"""API tests for /messages: auth gate, queue + dispatch, listing."""

from datetime import datetime, timedelta, timezone

import pytest

from helpers import BUSINESS_NUMBER, CUSTOMER_E164, encode, envelope, sign, text_message
from wabridge.errors import WhatsAppAPIError


def _auth(plain):
    return {"X-API-Key": plain}


@pytest.fixture
def full_key(make_api_key):
    _, plain = make_api_key()
    return plain


class TestAuthGate:
    def test_missing_key_is_401(self, client):
        response = client.get("/messages")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_invalid_key_is_401(self, client, make_api_key):
        make_api_key()
        response = client.get("/messages", headers=_auth("garbage-key-value"))
        assert response.status_code == 401

    def test_missing_permission_is_403(self, client, make_api_key):
        _, plain = make_api_key(permissions=["read_contacts"])
        response = client.get("/messages", headers=_auth(plain))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"

    def test_expired_key_is_401_with_distinct_code(self, client, make_api_key):
        _, plain = make_api_key(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        response = client.get("/messages", headers=_auth(plain))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "api_key_expired"

    def test_bearer_token_accepted(self, client, full_key):
        response = client.get("/messages", headers={"Authorization": f"Bearer {full_key}"})
        assert response.status_code == 200

    def test_successful_auth_records_last_used(self, client, store, make_api_key):
        api_key, plain = make_api_key()
        assert store.api_keys[api_key.id].last_used_at is None

        client.get("/messages", headers=_auth(plain))

        assert store.api_keys[api_key.id].last_used_at is not None


class TestSendMessage:
    def test_queue_then_dispatch_marks_sent(self, client, store, sender, full_key):
        response = client.post(
            "/messages",
            json={"to": CUSTOMER_E164, "content": "Your order shipped"},
            headers=_auth(full_key),
        )

        assert response.status_code == 202
        queued = response.json()["message"]
        assert queued["status"] == "queued"
        assert queued["direction"] == "outbound"
        assert queued["from_number"] == BUSINESS_NUMBER
        assert queued["whatsapp_message_id"] is None

        sender.send.assert_called_once()
        with store.transaction() as session:
            stored = session.get_message(queued["id"])
        assert stored.status == "sent"
        assert stored.whatsapp_message_id == "wamid.OUTBOUND_001"

    def test_number_without_plus_is_normalized(self, client, full_key):
        response = client.post(
            "/messages", json={"to": "15551234567", "content": "x"}, headers=_auth(full_key)
        )
        assert response.status_code == 202
        assert response.json()["message"]["to_number"] == CUSTOMER_E164

    def test_provider_error_marks_failed(self, client, store, sender, full_key):
        sender.send.side_effect = WhatsAppAPIError(
            "Recipient phone number not in allowed list", provider_code="131030"
        )

        response = client.post(
            "/messages", json={"to": CUSTOMER_E164, "content": "hello"}, headers=_auth(full_key)
        )

        assert response.status_code == 202
        with store.transaction() as session:
            stored = session.get_message(response.json()["message"]["id"])
        assert stored.status == "failed"
        assert stored.error_code == "131030"
        assert stored.error_message == "Recipient phone number not in allowed list"

    def test_invalid_phone_is_400(self, client, store, sender, full_key):
        response = client.post(
            "/messages", json={"to": "not-a-phone", "content": "x"}, headers=_auth(full_key)
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_failed"
        assert store.messages == {}
        sender.send.assert_not_called()

    def test_empty_text_is_400(self, client, full_key):
        response = client.post(
            "/messages", json={"to": CUSTOMER_E164, "content": "  "}, headers=_auth(full_key)
        )
        assert response.status_code == 400

    def test_media_requires_url(self, client, full_key):
        response = client.post(
            "/messages", json={"to": CUSTOMER_E164, "type": "image"}, headers=_auth(full_key)
        )
        assert response.status_code == 400

    def test_template_message(self, client, store, full_key):
        response = client.post(
            "/messages",
            json={
                "to": CUSTOMER_E164,
                "type": "template",
                "template_name": "order_update",
                "template_language": "en_US",
            },
            headers=_auth(full_key),
        )
        assert response.status_code == 202
        message = response.json()["message"]
        assert message["metadata"]["template"]["name"] == "order_update"

    def test_unknown_field_rejected(self, client, full_key):
        response = client.post(
            "/messages",
            json={"to": CUSTOMER_E164, "content": "x", "priority": "high"},
            headers=_auth(full_key),
        )
        assert response.status_code == 422

    def test_send_requires_permission(self, client, make_api_key, sender):
        _, plain = make_api_key(permissions=["read_messages"])
        response = client.post(
            "/messages", json={"to": CUSTOMER_E164, "content": "x"}, headers=_auth(plain)
        )
        assert response.status_code == 403
        sender.send.assert_not_called()


class TestListMessages:
    def _send(self, client, key, to, content="x"):
        return client.post("/messages", json={"to": to, "content": content}, headers=_auth(key))

    def _receive(self, client, wamid):
        body = encode(envelope(messages=[text_message(wamid)]))
        client.post("/webhooks/whatsapp", content=body, headers={"X-Hub-Signature-256": sign(body)})

    def test_list_and_filters(self, client, full_key):
        self._send(client, full_key, CUSTOMER_E164)
        self._send(client, full_key, "+15559998888")
        self._receive(client, "wamid.IN1")

        everything = client.get("/messages", headers=_auth(full_key)).json()
        assert everything["pagination"]["total"] == 3
        assert len(everything["data"]) == 3

        inbound = client.get(
            "/messages", params={"direction": "inbound"}, headers=_auth(full_key)
        ).json()
        assert [m["whatsapp_message_id"] for m in inbound["data"]] == ["wamid.IN1"]

        customer = client.get(
            "/messages", params={"phone_number": CUSTOMER_E164}, headers=_auth(full_key)
        ).json()
        assert customer["pagination"]["total"] == 2

        sent = client.get("/messages", params={"status": "sent"}, headers=_auth(full_key)).json()
        assert sent["pagination"]["total"] == 2

    def test_pagination(self, client, full_key):
        for i in range(3):
            self._send(client, full_key, CUSTOMER_E164, content=f"m{i}")

        page = client.get(
            "/messages", params={"limit": 2, "offset": 2}, headers=_auth(full_key)
        ).json()

        assert len(page["data"]) == 1
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["limit"] == 2
        assert page["pagination"]["offset"] == 2
        assert page["pagination"]["page"] == 2
        assert page["pagination"]["total_pages"] == 2

    def test_invalid_status_filter(self, client, full_key):
        response = client.get("/messages", params={"status": "bogus"}, headers=_auth(full_key))
        assert response.status_code == 400

    def test_get_by_id(self, client, full_key):
        queued = self._send(client, full_key, CUSTOMER_E164).json()["message"]
        response = client.get(f"/messages/{queued['id']}", headers=_auth(full_key))
        assert response.status_code == 200
        assert response.json()["message"]["id"] == queued["id"]

    def test_get_missing(self, client, full_key):
        response = client.get("/messages/msg_nope", headers=_auth(full_key))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"
