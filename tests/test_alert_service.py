from unittest.mock import MagicMock, Mock, patch

import httpx

from busybot.config import settings
from busybot.services.alert_service import alert_error, alert_warning, send_alert


def configured():
    return patch.multiple(settings, alert_bot_token="test-token", alert_chat_id="test-chat")


def telegram_client(mock_client_class, status_code=200):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_client.post.return_value = mock_response
    return mock_client


class TestSendAlert:
    def test_returns_false_when_not_configured(self):
        with patch.multiple(settings, alert_bot_token="", alert_chat_id=""):
            assert send_alert("ERROR", "Test message") is False

    @patch("busybot.services.alert_service.httpx.Client")
    def test_sends_alert_to_telegram(self, mock_client_class):
        mock_client = telegram_client(mock_client_class)

        with configured():
            result = send_alert("ERROR", "Test error message")

        assert result is True
        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "BusyBot ERROR" in json_data["text"]
        assert "❌" in json_data["text"]

    @patch("busybot.services.alert_service.httpx.Client")
    def test_includes_context_in_message(self, mock_client_class):
        mock_client = telegram_client(mock_client_class)

        with configured():
            send_alert("ERROR", "Test message", {"tenant_id": "123", "error": "boom"})

        text = mock_client.post.call_args[1]["json"]["text"]
        assert "tenant_id: 123" in text
        assert "error: boom" in text

    @patch("busybot.services.alert_service.httpx.Client")
    def test_returns_false_on_telegram_error(self, mock_client_class):
        telegram_client(mock_client_class, status_code=400)

        with configured():
            assert send_alert("ERROR", "Test message") is False

    @patch("busybot.services.alert_service.httpx.Client")
    def test_returns_false_on_network_error(self, mock_client_class):
        mock_client_class.return_value.__enter__.side_effect = httpx.ConnectError("Network error")

        with configured():
            assert send_alert("ERROR", "Test message") is False


class TestAlertShortcuts:
    @patch("busybot.services.alert_service.send_alert")
    def test_alert_error(self, mock_send):
        mock_send.return_value = True

        result = alert_error("Test error", {"key": "value"})

        mock_send.assert_called_once_with("ERROR", "Test error", {"key": "value"})
        assert result is True

    @patch("busybot.services.alert_service.send_alert")
    def test_alert_warning(self, mock_send):
        mock_send.return_value = True

        alert_warning("Warning message")

        mock_send.assert_called_once_with("WARNING", "Warning message", None)
