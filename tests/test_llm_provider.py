"""
Tests for provider configuration storage, resolution and the chat clients.
"""

import pytest
import requests

from slider_omni.backend.database import Database
from slider_omni.backend.errors import (
    NotFoundError, ProviderConfigurationError, UpstreamGenerationError
)
from slider_omni.backend.llm_provider import (
    AzureChatModel, AzureProviderConfig, InMemoryProviderRepository, OpenRouterChatModel,
    OpenRouterProviderConfig, ProviderResolver, SQLiteProviderRepository, describe_provider,
    mask_secret
)
from slider_omni.backend.models import ProviderKind


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryProviderRepository()
    return SQLiteProviderRepository(Database(str(tmp_path / "providers.db")))


@pytest.fixture
def resolver(repository):
    return ProviderResolver(repository, timeout=5)


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


# ---------------------------------------------------------------------------
# storage and activation
# ---------------------------------------------------------------------------

class TestProviderRepository:
    def test_nothing_active_initially(self, resolver):
        assert resolver.resolve_active_provider() is None

    def test_upsert_replaces_per_kind(self, resolver, repository):
        resolver.upsert_openrouter("key-1", "model-a")
        resolver.upsert_openrouter("key-2", "model-b")
        configs = repository.list()
        assert len(configs) == 1
        assert configs[0].api_key == "key-2"
        assert configs[0].model == "model-b"

    def test_set_active_is_exclusive(self, resolver):
        resolver.upsert_azure("az-key", "https://example.openai.azure.com", "gpt4")
        resolver.upsert_openrouter("or-key", "model-a")

        resolver.set_active(ProviderKind.AZURE)
        assert resolver.resolve_active_provider().kind == ProviderKind.AZURE

        configs = resolver.set_active(ProviderKind.OPENROUTER)
        assert [c.kind for c in configs if c.is_active] == [ProviderKind.OPENROUTER]
        assert resolver.resolve_active_provider().kind == ProviderKind.OPENROUTER

    def test_upsert_keeps_active_flag(self, resolver):
        resolver.upsert_openrouter("or-key", "model-a")
        resolver.set_active(ProviderKind.OPENROUTER)
        resolver.upsert_openrouter("or-key-2", "model-b")
        active = resolver.resolve_active_provider()
        assert active.api_key == "or-key-2"

    def test_activating_unconfigured_kind(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.set_active(ProviderKind.AZURE)

    def test_default_openrouter_base_url(self, resolver):
        config = resolver.upsert_openrouter("or-key", "model-a")
        assert config.base_url == "https://openrouter.ai/api/v1"


def test_listing_masks_keys():
    config = OpenRouterProviderConfig(api_key="sk-or-1234567890", model="m")
    described = describe_provider(config)
    assert described["apiKey"] == "sk-o...7890"
    assert "1234567890" not in described["apiKey"]
    assert mask_secret("short") == "*****"


# ---------------------------------------------------------------------------
# resolution
# ---------------------------------------------------------------------------

class TestResolver:
    def test_no_active_provider(self, resolver):
        with pytest.raises(ProviderConfigurationError):
            resolver.active_model()

    def test_builds_openrouter_client(self, resolver):
        resolver.upsert_openrouter("or-key", "model-a")
        resolver.set_active(ProviderKind.OPENROUTER)
        assert isinstance(resolver.active_model(), OpenRouterChatModel)

    def test_builds_azure_client(self, resolver):
        resolver.upsert_azure("az-key", "https://example.openai.azure.com", "gpt4")
        resolver.set_active(ProviderKind.AZURE)
        assert isinstance(resolver.active_model(), AzureChatModel)

    def test_missing_required_field(self, resolver):
        config = AzureProviderConfig(api_key="az-key", endpoint="https://x.example.com", deployment_name="")
        with pytest.raises(ProviderConfigurationError) as excinfo:
            resolver.build_model(config)
        assert "deployment_name" in str(excinfo.value)

    def test_invalid_azure_endpoint(self, resolver):
        config = AzureProviderConfig(api_key="az-key", endpoint="not a url", deployment_name="gpt4")
        with pytest.raises(ProviderConfigurationError):
            resolver.build_model(config)


# ---------------------------------------------------------------------------
# http clients
# ---------------------------------------------------------------------------

class TestChatClients:
    def test_azure_request_shape(self, monkeypatch):
        model = AzureChatModel(AzureProviderConfig(
            api_key="az-key", endpoint="https://res.openai.azure.com/", deployment_name="gpt4"
        ))
        calls = []

        def fake_post(url, headers=None, json=None, timeout=None):
            calls.append((url, headers, json))
            return FakeResponse(body=completion("  hello  "))

        monkeypatch.setattr(model.session, "post", fake_post)
        assert model.generate_text("hi") == "hello"

        url, headers, payload = calls[0]
        assert url == (
            "https://res.openai.azure.com/openai/deployments/gpt4/chat/completions"
            "?api-version=2024-02-15-preview"
        )
        assert headers["api-key"] == "az-key"
        assert payload["messages"] == [{"role": "user", "content": "hi"}]
        assert "model" not in payload

    def test_openrouter_request_shape(self, monkeypatch):
        model = OpenRouterChatModel(OpenRouterProviderConfig(api_key="or-key", model="test/model"))
        calls = []

        def fake_post(url, headers=None, json=None, timeout=None):
            calls.append((url, headers, json))
            return FakeResponse(body=completion("ok"))

        monkeypatch.setattr(model.session, "post", fake_post)
        model.generate_text("hi", max_tokens=10, temperature=0.1)

        url, headers, payload = calls[0]
        assert url == "https://openrouter.ai/api/v1/chat/completions"
        assert headers["Authorization"] == "Bearer or-key"
        assert payload["model"] == "test/model"
        assert payload["max_tokens"] == 10

    @pytest.mark.parametrize("response", [
        FakeResponse(status_code=500, text="boom"),
        FakeResponse(status_code=401, text="bad key"),
        FakeResponse(body={"unexpected": True}),
        FakeResponse(body=None),
        FakeResponse(body={"choices": []}),
    ])
    def test_bad_responses_are_upstream_errors(self, monkeypatch, response):
        model = OpenRouterChatModel(OpenRouterProviderConfig(api_key="or-key", model="m"))
        monkeypatch.setattr(model.session, "post", lambda *a, **kw: response)
        with pytest.raises(UpstreamGenerationError):
            model.generate_text("hi")

    @pytest.mark.parametrize("exc", [requests.exceptions.Timeout, requests.exceptions.ConnectionError])
    def test_transport_failures_are_upstream_errors(self, monkeypatch, exc):
        model = OpenRouterChatModel(OpenRouterProviderConfig(api_key="or-key", model="m"))

        def fake_post(*args, **kwargs):
            raise exc("down")

        monkeypatch.setattr(model.session, "post", fake_post)
        with pytest.raises(UpstreamGenerationError):
            model.generate_text("hi")

    def test_connection_check(self, monkeypatch):
        model = OpenRouterChatModel(OpenRouterProviderConfig(api_key="or-key", model="m"))
        monkeypatch.setattr(model.session, "post", lambda *a, **kw: FakeResponse(status_code=503))
        assert model.test_connection() is False


def test_resolver_shares_one_session(resolver):
    resolver.upsert_openrouter("or-key", "model-a")
    resolver.upsert_azure("az-key", "https://example.openai.azure.com", "gpt4")
    first = resolver.build_model(resolver.repository.list()[0])
    second = resolver.build_model(resolver.repository.list()[1])
    assert first.session is resolver.session
    assert second.session is resolver.session

    # closing a borrowed session is left to the resolver
    closed = []
    resolver.session.close = lambda: closed.append(True)
    first.close()
    assert closed == []
    resolver.close()
    assert closed == [True]


def test_standalone_client_owns_its_session(monkeypatch):
    model = OpenRouterChatModel(OpenRouterProviderConfig(api_key="or-key", model="m"))
    closed = []
    monkeypatch.setattr(model.session, "close", lambda: closed.append(True))
    model.close()
    assert closed == [True]
