from unittest.mock import MagicMock, Mock, patch

import httpx

from busybot.config import settings
from busybot.services.gateway_service import send_text


def gateway_client(mock_client_class, status_code=201):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_response = Mock(status_code=status_code, text="{}")
    mock_client.post.return_value = mock_response
    return mock_client


@patch("busybot.services.gateway_service.httpx.Client")
def test_posts_to_instance(mock_client_class):
    mock_client = gateway_client(mock_client_class)

    with patch.multiple(settings, evolution_api_url="http://evolution:8080/", evolution_api_key="secret"):
        ok = send_text("919876543210", "hey", instance="phone-1", delay_ms=500)

    assert ok is True
    call = mock_client.post.call_args
    assert call.args[0] == "http://evolution:8080/message/sendText/phone-1"
    assert call.kwargs["headers"]["apikey"] == "secret"
    assert call.kwargs["json"] == {"number": "919876543210", "text": "hey", "delay": 500}


@patch("busybot.services.gateway_service.httpx.Client")
def test_default_instance(mock_client_class):
    mock_client = gateway_client(mock_client_class)

    with patch.object(settings, "evolution_default_instance", "main"):
        send_text("919876543210", "hey")

    assert mock_client.post.call_args.args[0].endswith("/message/sendText/main")
    assert mock_client.post.call_args.kwargs["json"]["delay"] == 2000


@patch("busybot.services.gateway_service.httpx.Client")
def test_non_2xx_is_failure(mock_client_class):
    gateway_client(mock_client_class, status_code=500)

    assert send_text("919876543210", "hey") is False


@patch("busybot.services.gateway_service.httpx.Client")
def test_transport_error_is_failure(mock_client_class):
    mock_client = gateway_client(mock_client_class)
    mock_client.post.side_effect = httpx.ConnectError("refused")

    assert send_text("919876543210", "hey") is False


@patch("busybot.services.gateway_service.httpx.Client")
def test_blank_text_is_not_sent(mock_client_class):
    assert send_text("919876543210", "") is False
    mock_client_class.assert_not_called()
