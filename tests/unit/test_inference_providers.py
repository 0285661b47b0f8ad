"""Unit tests for text-understanding providers.

Tests cover:
- JSON response parsing and confidence estimation
- OpenAI function calling with mocked client
- Ollama generate endpoint with mocked HTTP calls
- Failure classification into transient and permanent errors
- Provider registry and factory
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from services.inference.base import (
    InferenceError,
    TransientServiceError,
    estimate_confidence,
    parse_json_response,
)
from services.inference.factory import ProviderRegistry, create_inference_provider
from services.inference.ollama_provider import OllamaInferenceProvider
from services.inference.openai_provider import OpenAIInferenceProvider
from services.shared.config import Settings

SCHEMA = {
    "type": "object",
    "properties": {
        "solicitation_number": {"type": ["string", "null"]},
        "agency": {"type": ["string", "null"]},
        "deadlines": {"type": "array", "items": {"type": "string"}},
        "items": {"type": "array"},
    },
}


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        inference_provider="openai",
        openai_model="gpt-4o-mini",
        ollama_base_url="http://localhost:11434",
        ollama_model="qwen2.5:7b",
    )


def _function_call_response(arguments: str) -> MagicMock:
    response = MagicMock()
    response.choices[0].message.function_call.arguments = arguments
    return response


class TestParseJsonResponse:
    """Test JSON extraction from raw model text."""

    def test_plain_json(self) -> None:
        """Should parse a bare JSON object."""
        assert parse_json_response('{"agency": "NASA"}') == {"agency": "NASA"}

    def test_markdown_code_block(self) -> None:
        """Should parse JSON inside a markdown code block."""
        text = 'Here you go:\n```json\n{"agency": "GSA"}\n```'
        assert parse_json_response(text) == {"agency": "GSA"}

    def test_json_with_surrounding_text(self) -> None:
        """Should find the JSON object inside prose."""
        text = 'Result: {"solicitation_number": "RFQ-1"} done.'
        assert parse_json_response(text) == {"solicitation_number": "RFQ-1"}

    def test_non_object_rejected(self) -> None:
        """A JSON array is not a valid extraction."""
        with pytest.raises(InferenceError, match="Expected a JSON object"):
            parse_json_response("[1, 2, 3]")

    def test_invalid_json(self) -> None:
        """Unparseable text raises JSONDecodeError."""
        with pytest.raises(json.JSONDecodeError):
            parse_json_response("no json here")


class TestEstimateConfidence:
    """Test confidence estimation from populated fields."""

    def test_all_populated(self) -> None:
        """Every declared property populated gives 1.0."""
        parsed = {
            "solicitation_number": "RFQ-1",
            "agency": "NASA",
            "deadlines": ["March 1"],
            "items": [{"name": "switch"}],
        }
        assert estimate_confidence(parsed, SCHEMA) == 1.0

    def test_empty_values_not_counted(self) -> None:
        """None and empty containers do not count as populated."""
        parsed = {"solicitation_number": "RFQ-1", "agency": None, "deadlines": [], "items": []}
        assert estimate_confidence(parsed, SCHEMA) == 0.25

    def test_no_properties(self) -> None:
        """A schema without properties gives 0.0."""
        assert estimate_confidence({"a": 1}, {"type": "object"}) == 0.0


class TestOpenAIInferenceProvider:
    """Test OpenAI provider with mocked client."""

    def test_provider_name(self, settings: Settings) -> None:
        """Provider name should be 'openai'."""
        assert OpenAIInferenceProvider(settings).provider_name == "openai"

    def test_is_available_without_key(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Should not be available without OPENAI_API_KEY."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert OpenAIInferenceProvider(settings).is_available() is False

    def test_infer_without_key_raises(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Missing credentials are a permanent failure."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(InferenceError, match="OPENAI_API_KEY"):
            OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)

    def test_infer_success_with_reported_confidence(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Should parse function call arguments and split off the confidence."""
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        mock_client = MagicMock()
        mock_client.api_key = "test-key"
        mock_client.chat.completions.create.return_value = _function_call_response(
            json.dumps({"solicitation_number": "RFQ-42", "agency": "NASA", "confidence": 0.9})
        )

        with patch("services.inference.openai_provider.OpenAI", return_value=mock_client):
            result = OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)

        assert result.parsed == {"solicitation_number": "RFQ-42", "agency": "NASA"}
        assert result.confidence == 0.9
        assert result.provider == "openai"

        call_kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["model"] == "gpt-4o-mini"
        assert call_kwargs["temperature"] == 0
        parameters = call_kwargs["functions"][0]["parameters"]
        assert "confidence" in parameters["properties"]
        assert "solicitation_number" in parameters["properties"]

    def test_infer_estimates_confidence_when_not_reported(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without a self-reported confidence, the populated share is used."""
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        mock_client = MagicMock()
        mock_client.api_key = "test-key"
        mock_client.chat.completions.create.return_value = _function_call_response(
            json.dumps({"solicitation_number": "RFQ-42", "agency": "NASA"})
        )

        with patch("services.inference.openai_provider.OpenAI", return_value=mock_client):
            result = OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)

        assert result.confidence == 0.5

    def test_timeout_is_transient(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Timeouts are classified as transient."""
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        mock_client = MagicMock()
        mock_client.api_key = "test-key"
        mock_client.chat.completions.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )

        with patch("services.inference.openai_provider.OpenAI", return_value=mock_client):
            with pytest.raises(TransientServiceError):
                OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)

    def test_bad_request_is_permanent(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Client errors are not retried."""
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_client = MagicMock()
        mock_client.api_key = "test-key"
        mock_client.chat.completions.create.side_effect = openai.BadRequestError(
            "bad request", response=httpx.Response(400, request=request), body=None
        )

        with patch("services.inference.openai_provider.OpenAI", return_value=mock_client):
            with pytest.raises(InferenceError) as exc_info:
                OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)

        assert not isinstance(exc_info.value, TransientServiceError)

    def test_invalid_arguments_json(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Malformed function arguments raise InferenceError."""
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        mock_client = MagicMock()
        mock_client.api_key = "test-key"
        mock_client.chat.completions.create.return_value = _function_call_response("{not json")

        with patch("services.inference.openai_provider.OpenAI", return_value=mock_client):
            with pytest.raises(InferenceError, match="JSON parsing failed"):
                OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)

    def test_empty_choices(self, settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
        """A completion without choices raises InferenceError."""
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        mock_client = MagicMock()
        mock_client.api_key = "test-key"
        mock_client.chat.completions.create.return_value = MagicMock(choices=[])

        with patch("services.inference.openai_provider.OpenAI", return_value=mock_client):
            with pytest.raises(InferenceError, match="no choices"):
                OpenAIInferenceProvider(settings).infer("prompt", SCHEMA)


class TestOllamaInferenceProvider:
    """Test Ollama provider with mocked HTTP calls."""

    @pytest.fixture
    def provider(self, settings: Settings) -> OllamaInferenceProvider:
        """Create Ollama provider instance."""
        return OllamaInferenceProvider(settings)

    def test_provider_name(self, provider: OllamaInferenceProvider) -> None:
        """Provider name should be 'ollama'."""
        assert provider.provider_name == "ollama"

    def test_is_available_when_model_loaded(self, provider: OllamaInferenceProvider) -> None:
        """Should return True when the server lists the configured model."""
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"models": [{"name": "qwen2.5:7b"}]}

        with patch.object(provider._client, "get", return_value=mock_response):
            assert provider.is_available() is True

    def test_is_available_when_server_down(self, provider: OllamaInferenceProvider) -> None:
        """Should return False when Ollama server is unreachable."""
        with patch.object(
            provider._client, "get", side_effect=httpx.ConnectError("Connection refused")
        ):
            assert provider.is_available() is False

    def test_infer_success(self, provider: OllamaInferenceProvider) -> None:
        """Should parse the generated JSON."""
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "response": json.dumps({"agency": "GSA", "confidence": 0.7})
        }
        mock_response.raise_for_status.return_value = None

        with patch.object(provider._client, "post", return_value=mock_response) as mock_post:
            result = provider.infer("prompt", SCHEMA)

        assert result.parsed == {"agency": "GSA"}
        assert result.confidence == 0.7
        assert result.provider == "ollama"
        payload = mock_post.call_args.kwargs["json"]
        assert payload["model"] == "qwen2.5:7b"
        assert payload["format"] == "json"
        assert "OUTPUT RULES" in payload["prompt"]

    def test_timeout_is_transient(self, provider: OllamaInferenceProvider) -> None:
        """Timeouts are classified as transient."""
        with patch.object(
            provider._client, "post", side_effect=httpx.ReadTimeout("timed out")
        ):
            with pytest.raises(TransientServiceError):
                provider.infer("prompt", SCHEMA)

    def test_server_error_is_transient(self, provider: OllamaInferenceProvider) -> None:
        """5xx responses are classified as transient."""
        request = httpx.Request("POST", "http://localhost:11434/api/generate")
        response = httpx.Response(503, request=request)

        with patch.object(provider._client, "post", return_value=response):
            with pytest.raises(TransientServiceError, match="503"):
                provider.infer("prompt", SCHEMA)

    def test_client_error_is_permanent(self, provider: OllamaInferenceProvider) -> None:
        """4xx responses other than 408/429 are not retried."""
        request = httpx.Request("POST", "http://localhost:11434/api/generate")
        response = httpx.Response(404, request=request)

        with patch.object(provider._client, "post", return_value=response):
            with pytest.raises(InferenceError) as exc_info:
                provider.infer("prompt", SCHEMA)

        assert not isinstance(exc_info.value, TransientServiceError)

    def test_unparseable_response(self, provider: OllamaInferenceProvider) -> None:
        """A response without JSON raises InferenceError."""
        mock_response = MagicMock()
        mock_response.json.return_value = {"response": "I cannot help with that"}
        mock_response.raise_for_status.return_value = None

        with patch.object(provider._client, "post", return_value=mock_response):
            with pytest.raises(InferenceError, match="JSON parsing failed"):
                provider.infer("prompt", SCHEMA)

    def test_non_json_body(self, provider: OllamaInferenceProvider) -> None:
        """A 200 response whose body is not JSON raises InferenceError."""
        provider._client = httpx.Client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>proxy</html>")
            )
        )

        with pytest.raises(InferenceError, match="non-JSON body") as exc_info:
            provider.infer("prompt", SCHEMA)

        assert not isinstance(exc_info.value, TransientServiceError)

    def test_json_list_body(self, provider: OllamaInferenceProvider) -> None:
        """A JSON body that is not an object raises InferenceError."""
        provider._client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[1, 2]))
        )

        with pytest.raises(InferenceError, match="not a JSON object"):
            provider.infer("prompt", SCHEMA)


class TestProviderFactory:
    """Test provider registry and factory function."""

    def test_registry_default_providers(self) -> None:
        """Registry contains OpenAI and Ollama."""
        providers = ProviderRegistry.list_providers()

        assert "openai" in providers
        assert "ollama" in providers

    def test_unknown_provider(self) -> None:
        """Unknown provider raises ValueError listing available providers."""
        with pytest.raises(ValueError, match="Available providers"):
            ProviderRegistry.get_provider_class("nonexistent")

    def test_create_openai_provider(self, settings: Settings) -> None:
        """Factory creates the configured provider."""
        provider = create_inference_provider(settings)

        assert isinstance(provider, OpenAIInferenceProvider)

    def test_create_ollama_provider(self) -> None:
        """Factory honors the inference_provider setting."""
        settings = Settings(_env_file=None, inference_provider="ollama")

        with patch.object(OllamaInferenceProvider, "is_available", return_value=False):
            provider = create_inference_provider(settings)

        assert isinstance(provider, OllamaInferenceProvider)

    def test_disabled_returns_none(self) -> None:
        """No provider when the model phase is disabled."""
        settings = Settings(_env_file=None, inference_enabled=False)

        assert create_inference_provider(settings) is None
