"""Tests for outbound queueing and dispatch."""

from unittest.mock import MagicMock

import pytest

from helpers import BUSINESS_NUMBER, CUSTOMER_E164
from wabridge.domain.outbound import OutboundRequest, OutboundService, build_outbound_message
from wabridge.errors import DatabaseError, ValidationError, WhatsAppAPIError
from wabridge.infra.memory_store import MemoryStore

TEXT_REQUEST = OutboundRequest(to=CUSTOMER_E164, message_type="text", content="hi")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sender():
    fake = MagicMock()
    fake.send.return_value = "wamid.SENT"
    return fake


@pytest.fixture
def service(store, sender):
    return OutboundService(store, sender, from_number=BUSINESS_NUMBER)


class TestBuildOutboundMessage:
    def test_text(self):
        message = build_outbound_message(
            OutboundRequest(to="15551234567", message_type="text", content="hi"), BUSINESS_NUMBER
        )
        assert message.to_number == CUSTOMER_E164
        assert message.from_number == BUSINESS_NUMBER
        assert message.status == "queued"
        assert message.direction == "outbound"

    def test_media_keeps_url_and_filename(self):
        message = build_outbound_message(
            OutboundRequest(
                to=CUSTOMER_E164,
                message_type="document",
                media_url="https://cdn.example/x.pdf",
                filename="x.pdf",
            ),
            BUSINESS_NUMBER,
        )
        assert message.media_url == "https://cdn.example/x.pdf"
        assert message.metadata == {"filename": "x.pdf"}

    def test_template_defaults_content_to_name(self):
        message = build_outbound_message(
            OutboundRequest(
                to=CUSTOMER_E164,
                message_type="template",
                template_name="welcome",
                template_language="en_US",
            ),
            BUSINESS_NUMBER,
        )
        assert message.content == "welcome"
        assert message.metadata["template"] == {
            "name": "welcome",
            "language": "en_US",
            "components": [],
        }

    @pytest.mark.parametrize(
        "request_",
        [
            OutboundRequest(to="abc", message_type="text", content="x"),
            OutboundRequest(to=CUSTOMER_E164, message_type="location", content="x"),
            OutboundRequest(to=CUSTOMER_E164, message_type="text", content=""),
            OutboundRequest(to=CUSTOMER_E164, message_type="video"),
            OutboundRequest(to=CUSTOMER_E164, message_type="template", template_name="t"),
        ],
    )
    def test_invalid_requests(self, request_):
        with pytest.raises(ValidationError):
            build_outbound_message(request_, BUSINESS_NUMBER)

    def test_business_number_required(self):
        with pytest.raises(ValidationError):
            build_outbound_message(
                OutboundRequest(to=CUSTOMER_E164, message_type="text", content="x"), ""
            )


class TestOutboundService:
    def test_queue_stores_message(self, service, store, sender):
        message = service.queue(TEXT_REQUEST)

        assert message.status == "queued"
        assert message.id in store.messages
        sender.send.assert_not_called()

    def test_dispatch_records_wamid(self, service, store):
        message = service.queue(TEXT_REQUEST)

        service.dispatch(message.id)

        stored = store.messages[message.id]
        assert stored.status == "sent"
        assert stored.whatsapp_message_id == "wamid.SENT"

    def test_dispatch_provider_error(self, service, store, sender):
        sender.send.side_effect = WhatsAppAPIError("throttled", provider_code="130429")
        message = service.queue(TEXT_REQUEST)

        service.dispatch(message.id)

        stored = store.messages[message.id]
        assert stored.status == "failed"
        assert stored.error_code == "130429"
        assert stored.error_message == "throttled"

    def test_dispatch_error_without_provider_code(self, service, store, sender):
        sender.send.side_effect = WhatsAppAPIError("request to WhatsApp API failed")
        message = service.queue(TEXT_REQUEST)

        service.dispatch(message.id)

        assert store.messages[message.id].error_code == "whatsapp_api_error"

    def test_dispatch_unknown_message_does_not_raise(self, service, sender):
        service.dispatch("msg_missing")
        sender.send.assert_not_called()

    def test_dispatch_storage_failure_does_not_raise(self, sender):
        broken = MagicMock()
        broken.transaction.side_effect = DatabaseError()
        logger = MagicMock()

        service = OutboundService(broken, sender, from_number=BUSINESS_NUMBER, logger=logger)
        service.dispatch("msg_1")

        logger.error.assert_called_once()

    def test_dispatch_duplicate_wamid_does_not_raise(self, store, sender):
        logger = MagicMock()
        service = OutboundService(store, sender, from_number=BUSINESS_NUMBER, logger=logger)
        first = service.queue(TEXT_REQUEST)
        second = service.queue(TEXT_REQUEST)
        service.dispatch(first.id)

        service.dispatch(second.id)

        logger.error.assert_called_once()
        assert store.messages[first.id].whatsapp_message_id == "wamid.SENT"
        assert store.messages[second.id].status == "queued"
