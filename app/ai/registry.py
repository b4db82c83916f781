from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping

from app.ai.errors import MissingCredentialsError
from app.ai.providers.claude_provider import ClaudeProvider
from app.ai.providers.gemini_provider import GeminiProvider
from app.ai.providers.openai_provider import OpenAIProvider
from app.ai.types import ModelHandle, ModelReference, Provider, TextGenerator
from app.core.config import settings

logger = logging.getLogger(__name__)

CredentialLookup = Callable[[Provider], "str | None"]
AdapterFactory = Callable[[str], TextGenerator]


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def provider_api_key(provider: Provider) -> str | None:
    key = {
        Provider.OPENAI: settings.openai_api_key,
        Provider.ANTHROPIC: settings.anthropic_api_key,
        Provider.GOOGLE: settings.google_ai_api_key,
    }.get(provider)
    key = (key or "").strip()
    if not key or _looks_like_placeholder(key):
        return None
    return key


def _openai(api_key: str) -> TextGenerator:
    return OpenAIProvider(
        api_key=api_key,
        base_url=settings.openai_base_url,
        timeout_s=settings.ai_call_timeout_s,
        max_retries=settings.ai_sdk_max_retries,
    )


def _anthropic(api_key: str) -> TextGenerator:
    return ClaudeProvider(
        api_key=api_key,
        timeout_s=settings.ai_call_timeout_s,
        max_retries=settings.ai_sdk_max_retries,
    )


def _google(api_key: str) -> TextGenerator:
    return GeminiProvider(api_key=api_key, timeout_s=settings.ai_call_timeout_s)


ADAPTER_FACTORIES: Mapping[Provider, AdapterFactory] = {
    Provider.OPENAI: _openai,
    Provider.ANTHROPIC: _anthropic,
    Provider.GOOGLE: _google,
}


class ProviderRegistry:
    """Provider clients created lazily on first use and shared read-only afterwards."""

    def __init__(
        self,
        credentials: CredentialLookup | None = None,
        factories: Mapping[Provider, AdapterFactory] | None = None,
    ):
        self._credentials = credentials or provider_api_key
        self._factories = dict(factories or ADAPTER_FACTORIES)
        self._clients: dict[Provider, TextGenerator] = {}
        self._lock = threading.Lock()

    def client(self, provider: Provider) -> TextGenerator:
        cached = self._clients.get(provider)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._clients.get(provider)
            if cached is not None:
                return cached

            api_key = self._credentials(provider)
            if not api_key:
                raise MissingCredentialsError(provider)
            factory = self._factories.get(provider)
            if factory is None:
                raise ValueError(f"Unsupported AI provider '{provider}'")

            client = factory(api_key)
            self._clients[provider] = client
            logger.info("ai_provider_client_created provider=%s", provider.value)
            return client

    def model(self, reference: ModelReference) -> ModelHandle:
        return ModelHandle(reference=reference, client=self.client(reference.provider))

    def override(self, provider: Provider, client: TextGenerator) -> None:
        with self._lock:
            self._clients[provider] = client

    def reset(self) -> None:
        with self._lock:
            self._clients.clear()

    async def aclose(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            close = getattr(client, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as exc:  # noqa: BLE001 - shutdown must not fail on one client
                logger.warning("ai_provider_client_close_failed client=%s: %s", type(client).__name__, exc)
