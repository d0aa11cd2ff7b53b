from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest

from busybot.services.llm import GeminiProvider, LLMError, LLMErrorKind, OpenAIProvider


def mock_http(mock_client_class, status_code=200, payload=None, text=""):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    mock_client.post.return_value = response
    return mock_client


GEMINI_OK = {
    "candidates": [{"content": {"parts": [{"text": "haan, in a meeting"}]}}],
    "modelVersion": "gemini-2.0-flash",
}


class TestGeminiProvider:
    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_success(self, mock_client_class):
        mock_client = mock_http(mock_client_class, payload=GEMINI_OK)

        response = GeminiProvider(api_key="gk").generate(
            [{"role": "user", "content": "hello"}], temperature=0.9, max_tokens=150
        )

        assert response.content == "haan, in a meeting"
        url = mock_client.post.call_args[0][0]
        assert url.endswith("/gemini-2.0-flash:generateContent")
        kwargs = mock_client.post.call_args[1]
        assert kwargs["headers"]["x-goog-api-key"] == "gk"
        assert kwargs["json"]["contents"] == [{"role": "user", "parts": [{"text": "hello"}]}]
        assert kwargs["json"]["generationConfig"]["maxOutputTokens"] == 150

    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_timeout_is_passed_to_client(self, mock_client_class):
        mock_http(mock_client_class, payload=GEMINI_OK)
        GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}], timeout_seconds=7)
        assert mock_client_class.call_args.kwargs["timeout"] == 7

    @pytest.mark.parametrize(
        "status_code,kind,retryable",
        [
            (400, LLMErrorKind.INVALID_CREDENTIAL, False),
            (403, LLMErrorKind.INVALID_CREDENTIAL, False),
            (429, LLMErrorKind.RATE_LIMITED, True),
            (503, LLMErrorKind.TRANSPORT, True),
        ],
    )
    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_status_mapping(self, mock_client_class, status_code, kind, retryable):
        mock_http(mock_client_class, status_code=status_code, text="error body")

        with pytest.raises(LLMError) as exc_info:
            GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status_code
        assert exc_info.value.retryable is retryable

    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_httpx_timeout(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ReadTimeout("slow")

        with pytest.raises(LLMError) as exc_info:
            GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.TIMEOUT
        assert exc_info.value.retryable is True

    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_network_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("refused")

        with pytest.raises(LLMError) as exc_info:
            GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.TRANSPORT

    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_empty_candidates(self, mock_client_class):
        mock_http(mock_client_class, payload={"candidates": []})

        with pytest.raises(LLMError) as exc_info:
            GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.MALFORMED_OUTPUT

    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_null_part_text(self, mock_client_class):
        mock_http(mock_client_class, payload={"candidates": [{"content": {"parts": [{"text": None}]}}]})

        with pytest.raises(LLMError) as exc_info:
            GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.MALFORMED_OUTPUT

    @patch("busybot.services.llm.gemini_provider.httpx.Client")
    def test_non_json_body(self, mock_client_class):
        mock_client = mock_http(mock_client_class, text="<html>bad gateway</html>")
        mock_client.post.return_value.json.side_effect = ValueError("Expecting value")

        with pytest.raises(LLMError) as exc_info:
            GeminiProvider(api_key="gk").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.MALFORMED_OUTPUT


class TestOpenAIProvider:
    @patch("busybot.services.llm.openai_provider.httpx.Client")
    def test_success(self, mock_client_class):
        mock_client = mock_http(
            mock_client_class,
            payload={"choices": [{"message": {"content": "on my way"}}], "model": "gpt-4o-mini"},
        )

        response = OpenAIProvider(api_key="ok").generate([{"role": "user", "content": "where are you"}])

        assert response.content == "on my way"
        assert response.model == "gpt-4o-mini"
        headers = mock_client.post.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer ok"

    @patch("busybot.services.llm.openai_provider.httpx.Client")
    def test_unauthorized(self, mock_client_class):
        mock_http(mock_client_class, status_code=401, text="invalid api key")

        with pytest.raises(LLMError) as exc_info:
            OpenAIProvider(api_key="bad").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.INVALID_CREDENTIAL

    @patch("busybot.services.llm.openai_provider.httpx.Client")
    def test_empty_content(self, mock_client_class):
        mock_http(mock_client_class, payload={"choices": [{"message": {"content": None}}]})

        with pytest.raises(LLMError) as exc_info:
            OpenAIProvider(api_key="ok").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.MALFORMED_OUTPUT

    @patch("busybot.services.llm.openai_provider.httpx.Client")
    def test_non_json_body(self, mock_client_class):
        mock_client = mock_http(mock_client_class, text="<html>proxy error</html>")
        mock_client.post.return_value.json.side_effect = ValueError("Expecting value")

        with pytest.raises(LLMError) as exc_info:
            OpenAIProvider(api_key="ok").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.MALFORMED_OUTPUT
        assert exc_info.value.retryable is False

    @patch("busybot.services.llm.openai_provider.httpx.Client")
    def test_json_array_body(self, mock_client_class):
        mock_http(mock_client_class, payload=["not", "an", "object"])

        with pytest.raises(LLMError) as exc_info:
            OpenAIProvider(api_key="ok").generate([{"role": "user", "content": "x"}])

        assert exc_info.value.kind == LLMErrorKind.MALFORMED_OUTPUT
