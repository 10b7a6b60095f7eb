# llm provider configuration and the chat-completion clients built from it
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import ClassVar, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

import requests

from .database import Database, utcnow, to_db_time
from .errors import NotFoundError, ProviderConfigurationError, UpstreamGenerationError
from .models import ProviderKind

logger = logging.getLogger(__name__)

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "openrouter/auto"
DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"


# azure openai deployment
@dataclass(frozen=True)
class AzureProviderConfig:
    kind: ClassVar[ProviderKind] = ProviderKind.AZURE
    required_fields: ClassVar[Tuple[str, ...]] = ("api_key", "endpoint", "deployment_name")

    api_key: str
    endpoint: str
    deployment_name: str
    api_version: str = DEFAULT_AZURE_API_VERSION
    is_active: bool = False


# openrouter (openai-compatible) endpoint
@dataclass(frozen=True)
class OpenRouterProviderConfig:
    kind: ClassVar[ProviderKind] = ProviderKind.OPENROUTER
    required_fields: ClassVar[Tuple[str, ...]] = ("api_key", "model")

    api_key: str
    model: str = DEFAULT_OPENROUTER_MODEL
    base_url: str = DEFAULT_OPENROUTER_BASE_URL
    is_active: bool = False


ProviderConfig = Union[AzureProviderConfig, OpenRouterProviderConfig]


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


def describe_provider(config: ProviderConfig) -> Dict:
    """Provider fields for admin listings, api key masked"""
    data = {
        "provider": config.kind.value,
        "apiKey": mask_secret(config.api_key),
        "isActive": config.is_active,
    }
    if isinstance(config, AzureProviderConfig):
        data.update({
            "endpoint": config.endpoint,
            "deploymentName": config.deployment_name,
            "apiVersion": config.api_version,
        })
    else:
        data.update({"baseUrl": config.base_url, "model": config.model})
    return data


# ---------------------------------------------------------------------------
# storage
# ---------------------------------------------------------------------------

class ProviderRepository(ABC):
    """At most one configuration per kind; at most one active overall"""

    @abstractmethod
    def upsert(self, config: ProviderConfig) -> ProviderConfig:
        """Insert or replace the configuration of config.kind, keeping its active flag"""

    @abstractmethod
    def list(self) -> List[ProviderConfig]:
        ...

    @abstractmethod
    def get_active(self) -> Optional[ProviderConfig]:
        ...

    @abstractmethod
    def set_active(self, kind: ProviderKind) -> List[ProviderConfig]:
        """Deactivate every provider and activate one, as one transition"""


class SQLiteProviderRepository(ProviderRepository):
    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _row_to_config(row) -> ProviderConfig:
        kind = ProviderKind(row["provider"])
        if kind == ProviderKind.AZURE:
            return AzureProviderConfig(
                api_key=row["api_key"],
                endpoint=row["azure_endpoint"] or "",
                deployment_name=row["azure_deployment_name"] or "",
                api_version=row["azure_api_version"] or DEFAULT_AZURE_API_VERSION,
                is_active=bool(row["is_active"]),
            )
        return OpenRouterProviderConfig(
            api_key=row["api_key"],
            model=row["model"] or "",
            base_url=row["base_url"] or DEFAULT_OPENROUTER_BASE_URL,
            is_active=bool(row["is_active"]),
        )

    def upsert(self, config: ProviderConfig) -> ProviderConfig:
        if isinstance(config, AzureProviderConfig):
            columns = {
                "api_key": config.api_key,
                "azure_endpoint": config.endpoint,
                "azure_deployment_name": config.deployment_name,
                "azure_api_version": config.api_version,
            }
        else:
            columns = {
                "api_key": config.api_key,
                "base_url": config.base_url,
                "model": config.model,
            }
        now = to_db_time(utcnow())
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{name} = excluded.{name}" for name in columns)
        with self.database.transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO llm_providers (provider, {names}, created_at)
                VALUES (?, {placeholders}, ?)
                ON CONFLICT(provider) DO UPDATE SET {updates}, updated_at = ?
                """,
                (config.kind.value, *columns.values(), now, now),
            )
            row = conn.execute(
                "SELECT * FROM llm_providers WHERE provider = ?", (config.kind.value,)
            ).fetchone()
        return self._row_to_config(row)

    def list(self) -> List[ProviderConfig]:
        with self.database.connect() as conn:
            rows = conn.execute("SELECT * FROM llm_providers ORDER BY provider").fetchall()
        return [self._row_to_config(row) for row in rows]

    def get_active(self) -> Optional[ProviderConfig]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM llm_providers WHERE is_active = 1 ORDER BY provider LIMIT 1"
            ).fetchone()
        return self._row_to_config(row) if row else None

    def set_active(self, kind: ProviderKind) -> List[ProviderConfig]:
        kind = ProviderKind(kind)
        with self.database.transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM llm_providers WHERE provider = ?", (kind.value,)
            ).fetchone()
            if not exists:
                raise NotFoundError(f"provider '{kind.value}' is not configured")
            conn.execute("UPDATE llm_providers SET is_active = 0")
            conn.execute("UPDATE llm_providers SET is_active = 1 WHERE provider = ?", (kind.value,))
        logger.info(f"Active LLM provider is now {kind.value}")
        return self.list()


class InMemoryProviderRepository(ProviderRepository):
    def __init__(self):
        self._configs: Dict[ProviderKind, ProviderConfig] = {}
        self._lock = threading.Lock()

    def upsert(self, config: ProviderConfig) -> ProviderConfig:
        with self._lock:
            current = self._configs.get(config.kind)
            stored = replace(config, is_active=current.is_active if current else False)
            self._configs[config.kind] = stored
        return stored

    def list(self) -> List[ProviderConfig]:
        with self._lock:
            return [self._configs[k] for k in sorted(self._configs, key=lambda k: k.value)]

    def get_active(self) -> Optional[ProviderConfig]:
        with self._lock:
            for kind in sorted(self._configs, key=lambda k: k.value):
                if self._configs[kind].is_active:
                    return self._configs[kind]
        return None

    def set_active(self, kind: ProviderKind) -> List[ProviderConfig]:
        kind = ProviderKind(kind)
        with self._lock:
            if kind not in self._configs:
                raise NotFoundError(f"provider '{kind.value}' is not configured")
            self._configs = {
                k: replace(c, is_active=(k == kind)) for k, c in self._configs.items()
            }
        logger.info(f"Active LLM provider is now {kind.value}")
        return self.list()


# ---------------------------------------------------------------------------
# model handles
# ---------------------------------------------------------------------------

# common chat-completions client over requests
class ChatCompletionModel(ABC):
    """Text generation against an OpenAI-style chat completions endpoint"""

    def __init__(self, timeout: float = 120, session: Optional[requests.Session] = None):
        self.timeout = timeout
        # a shared session belongs to whoever passed it in
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self):
        if self._owns_session:
            self.session.close()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def _url(self) -> str:
        ...

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        ...

    def _payload(self, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> Dict:
        return {
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

    # generate text from a single prompt
    def generate_text(self, prompt: str, max_tokens: int = 4000, temperature: float = 0.7) -> str:
        """Generate text for one user prompt"""
        return self.generate_chat_completion(
            [{"role": "user", "content": prompt}], max_tokens, temperature
        )

    # generate chat completion from message history
    def generate_chat_completion(
        self, messages: List[Dict[str, str]], max_tokens: int = 4000, temperature: float = 0.7
    ) -> str:
        """Call the provider; every failure becomes UpstreamGenerationError"""
        try:
            response = self.session.post(
                self._url(),
                headers=self._headers(),
                json=self._payload(messages, max_tokens, temperature),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"{self.name} request timed out after {self.timeout}s")
            raise UpstreamGenerationError("Request timed out. The model might be too slow or overloaded.", cause=e)
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.name} request failed: {str(e)}")
            raise UpstreamGenerationError(f"Could not reach {self.name}", cause=e)

        if not 200 <= response.status_code < 300:
            logger.error(f"{self.name} API error: {response.status_code} - {response.text[:500]}")
            raise UpstreamGenerationError(
                f"{self.name} API error: {response.status_code}",
                context={"status_code": response.status_code},
            )

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamGenerationError(f"Malformed response from {self.name}", cause=e)

        if not isinstance(content, str):
            raise UpstreamGenerationError(f"Malformed response from {self.name}")
        return content.strip()

    # test if the provider answers at all
    def test_connection(self) -> bool:
        """Test if the LLM service is working"""
        try:
            response = self.generate_text("Hello! Please respond with just 'OK' to confirm you're working.", max_tokens=10)
            logger.info(f"✓ LLM test successful. Response: {response}")
            return True
        except UpstreamGenerationError as e:
            logger.error(f"✗ LLM test failed: {str(e)}")
            return False


class AzureChatModel(ChatCompletionModel):
    def __init__(self, config: AzureProviderConfig, timeout: float = 120,
                 session: Optional[requests.Session] = None):
        super().__init__(timeout, session)
        self.config = config

    @property
    def name(self) -> str:
        return f"Azure OpenAI ({self.config.deployment_name})"

    def _url(self) -> str:
        endpoint = self.config.endpoint.rstrip("/")
        return (
            f"{endpoint}/openai/deployments/{self.config.deployment_name}"
            f"/chat/completions?api-version={self.config.api_version}"
        )

    def _headers(self) -> Dict[str, str]:
        return {"api-key": self.config.api_key, "Content-Type": "application/json"}


class OpenRouterChatModel(ChatCompletionModel):
    def __init__(self, config: OpenRouterProviderConfig, timeout: float = 120,
                 session: Optional[requests.Session] = None):
        super().__init__(timeout, session)
        self.config = config

    @property
    def name(self) -> str:
        return f"OpenRouter ({self.config.model})"

    def _url(self) -> str:
        return f"{(self.config.base_url or DEFAULT_OPENROUTER_BASE_URL).rstrip('/')}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}", "Content-Type": "application/json"}

    def _payload(self, messages, max_tokens, temperature) -> Dict:
        payload = super()._payload(messages, max_tokens, temperature)
        payload["model"] = self.config.model
        return payload


# ---------------------------------------------------------------------------
# resolver
# ---------------------------------------------------------------------------

class ProviderResolver:
    def __init__(self, repository: ProviderRepository, timeout: float = 120):
        self.repository = repository
        self.timeout = timeout
        # one connection pool for every model this resolver builds
        self.session = requests.Session()

    def close(self):
        self.session.close()

    def resolve_active_provider(self) -> Optional[ProviderConfig]:
        return self.repository.get_active()

    def build_model(self, config: ProviderConfig) -> ChatCompletionModel:
        """Validate the kind's required fields and build its client"""
        missing = [f for f in config.required_fields if not (getattr(config, f, None) or "").strip()]
        if missing:
            raise ProviderConfigurationError(
                f"{config.kind.value} configuration incomplete: missing {', '.join(missing)}",
                context={"provider": config.kind.value, "missing": missing},
            )

        if isinstance(config, AzureProviderConfig):
            parsed = urlparse(config.endpoint)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ProviderConfigurationError(
                    f"azure endpoint is not a valid URL: {config.endpoint}",
                    context={"provider": config.kind.value},
                )
            return AzureChatModel(config, timeout=self.timeout, session=self.session)

        if isinstance(config, OpenRouterProviderConfig):
            return OpenRouterChatModel(config, timeout=self.timeout, session=self.session)

        raise ProviderConfigurationError(f"unsupported provider {config!r}")

    def active_model(self) -> ChatCompletionModel:
        config = self.resolve_active_provider()
        if config is None:
            raise ProviderConfigurationError("No active LLM provider configured. Configure one in the admin panel.")
        logger.info(f"  ✓ Using provider: {config.kind.value}")
        return self.build_model(config)

    # admin operations
    def upsert_azure(self, api_key: str, endpoint: str, deployment_name: str,
                     api_version: str = DEFAULT_AZURE_API_VERSION) -> ProviderConfig:
        return self.repository.upsert(AzureProviderConfig(
            api_key=api_key,
            endpoint=endpoint,
            deployment_name=deployment_name,
            api_version=api_version or DEFAULT_AZURE_API_VERSION,
        ))

    def upsert_openrouter(self, api_key: str, model: str, base_url: Optional[str] = None) -> ProviderConfig:
        return self.repository.upsert(OpenRouterProviderConfig(
            api_key=api_key,
            model=model,
            base_url=base_url or DEFAULT_OPENROUTER_BASE_URL,
        ))

    def set_active(self, kind: ProviderKind) -> List[ProviderConfig]:
        return self.repository.set_active(kind)

    def list_providers(self) -> List[Dict]:
        return [describe_provider(c) for c in self.repository.list()]
