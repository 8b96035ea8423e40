"""Routing helpers for selecting the upstream text-generation provider.

The router does not couple to concrete clients; it returns a provider
configuration that :mod:`llm_client` turns into a client. This keeps the
selection policy unit-testable without network access.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Set


@dataclass(frozen=True)
class ProviderSelection:
    """Returned details about the provider that should handle a task."""

    name: str
    model: str
    api_key_env: Optional[str]
    base_url_env: Optional[str] = None
    default_base_url: Optional[str] = None
    requires_api_key: bool = True


class ModelRouter:
    """Policy-based provider selection for generation and suggestion tasks."""

    PROVIDER_CONFIG: Dict[str, Dict[str, Optional[str] | bool]] = {
        "local": {
            "api_key_env": "LOCAL_API_KEY",
            "base_url_env": "LOCAL_BASE_URL",
            "model_env": "LOCAL_MODEL",
            "default_model": "llama3.2",
            "default_base_url": "http://127.0.0.1:11434",
            "requires_api_key": False,
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url_env": "OPENAI_BASE_URL",
            "model_env": "OPENAI_MODEL",
            "default_model": "gpt-4o-mini",
            "default_base_url": "https://api.openai.com/v1",
        },
    }

    ROUTING_POLICY: Dict[str, tuple[str, ...]] = {
        # Streaming answers: a local model first, hosted as a backup.
        "generation": ("local", "openai"),
        "suggestions": ("local", "openai"),
    }

    def __init__(
        self,
        env: Optional[Dict[str, str]] = None,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        self._allowed: Optional[Set[str]] = set(allowed_providers) if allowed_providers else None
        preferred = (self._env.get("THINKSTREAM_MODEL_PROVIDER") or "").strip().lower()
        self._preferred_provider = preferred or None

    def provider_available(self, provider: str) -> bool:
        """Whether a provider is configured; reachability is probed by the client."""
        cfg = self.PROVIDER_CONFIG.get(provider)
        if not cfg:
            return False
        if self._allowed is not None and provider not in self._allowed:
            return False
        if provider == "local":
            return (self._env.get("THINKSTREAM_DISABLE_LOCAL_LLM") or "").strip() != "1"
        if bool(cfg.get("requires_api_key", True)):
            api_key_env = cfg.get("api_key_env")
            return bool(api_key_env and self._env.get(str(api_key_env)))
        return True

    def resolve_provider(self, provider: str) -> ProviderSelection:
        cfg = self.PROVIDER_CONFIG[provider]
        model_env = str(cfg.get("model_env") or "")
        model = self._env.get(model_env) or str(cfg.get("default_model") or "")
        return ProviderSelection(
            name=provider,
            model=model,
            api_key_env=cfg.get("api_key_env"),  # type: ignore[arg-type]
            base_url_env=cfg.get("base_url_env"),  # type: ignore[arg-type]
            default_base_url=cfg.get("default_base_url"),  # type: ignore[arg-type]
            requires_api_key=bool(cfg.get("requires_api_key", True)),
        )

    def select_provider(self, purpose: str) -> ProviderSelection:
        """Return the provider selected for the supplied purpose.

        Raises
        ------
        RuntimeError
            If no provider configured for the purpose is available.
        """

        priority = list(self.ROUTING_POLICY.get(purpose, self.ROUTING_POLICY["generation"]))
        if self._preferred_provider and self._preferred_provider in self.PROVIDER_CONFIG:
            priority = [self._preferred_provider] + [p for p in priority if p != self._preferred_provider]
        for provider in priority:
            if self.provider_available(provider):
                return self.resolve_provider(provider)
        raise RuntimeError("No active model provider available for this task.")

    def maybe_select_provider(self, purpose: str) -> Optional[ProviderSelection]:
        """Like :meth:`select_provider` but returns ``None`` on failure."""

        try:
            return self.select_provider(purpose)
        except RuntimeError:
            return None
