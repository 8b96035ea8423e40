from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Protocol
import json
import logging
import os
import time

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..domain.errors import UpstreamStreamFailure, UpstreamUnavailable
from .model_router import ModelRouter, ProviderSelection

# Optional import: langchain-openai
try:
    from langchain_openai import ChatOpenAI  # type: ignore
except Exception:  # pragma: no cover - optional import
    ChatOpenAI = None  # type: ignore


LOG = logging.getLogger("thinkstream.llm")


_BREAKER_STATE = {"fails": 0, "opened_at": 0.0}
_BREAKER_THRESHOLD = int(os.getenv("THINKSTREAM_LLM_BREAKER_THRESHOLD", "2"))
_BREAKER_COOLDOWN = float(os.getenv("THINKSTREAM_LLM_BREAKER_COOLDOWN", "30.0"))
_STREAM_TIMEOUT = (
    int(os.getenv("THINKSTREAM_LLM_CONNECT_TIMEOUT", "3")),
    int(os.getenv("THINKSTREAM_LLM_READ_TIMEOUT", "60")),
)
_PROBE_TIMEOUT = (1, 2)

TEMPERATURE = 0.7
TOP_P = 0.9

GENERATION_SYSTEM_PROMPT = """You are a helpful AI assistant that shows its reasoning process.
When answering questions, first show your thinking steps, then provide the answer.

Format your response EXACTLY like this:
THINKING:
- [First thing you need to consider]
- [Second aspect to analyze]
- [Third point to evaluate]
- [Continue as needed]

ANSWER:
[Your detailed answer here]

Important: Always start with "THINKING:" and list your reasoning steps with bullet points, then write "ANSWER:" before your final response."""


class TextGenerator(Protocol):
    """Upstream text generation: an availability probe plus streaming and one-shot calls."""

    def available(self) -> bool: ...

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]: ...

    def invoke(self, messages: List[Dict[str, str]]) -> str: ...


def build_generation_messages(question: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
        {"role": "user", "content": question},
    ]


def _breaker_open() -> bool:
    opened = _BREAKER_STATE["opened_at"]
    if opened == 0.0:
        return False
    if time.time() - opened < _BREAKER_COOLDOWN:
        return True
    _BREAKER_STATE["fails"] = 0
    _BREAKER_STATE["opened_at"] = 0.0
    return False


def _record_fail() -> None:
    _BREAKER_STATE["fails"] += 1
    if _BREAKER_STATE["fails"] >= _BREAKER_THRESHOLD and _BREAKER_STATE["opened_at"] == 0.0:
        _BREAKER_STATE["opened_at"] = time.time()
        LOG.warning(
            "llm_breaker_opened",
            extra={"fails": _BREAKER_STATE["fails"], "cooldown_s": _BREAKER_COOLDOWN},
        )


def _record_success() -> None:
    if _BREAKER_STATE["fails"] or _BREAKER_STATE["opened_at"]:
        LOG.info("llm_breaker_closed")
    _BREAKER_STATE["fails"] = 0
    _BREAKER_STATE["opened_at"] = 0.0


def breaker_snapshot() -> Dict[str, Any]:
    """Read-only view of the upstream circuit breaker."""
    return {
        "open": _breaker_open(),
        "fails": _BREAKER_STATE["fails"],
        "cooldown_s": _BREAKER_COOLDOWN,
    }


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["POST", "GET"]),
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class LocalLLMClient:
    """Client for a self-hosted model server speaking the Ollama or OpenAI-compatible API."""

    def __init__(self, base_url: str, model: str, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = _STREAM_TIMEOUT
        self._session = session or _build_session()
        self.api_style = (os.getenv("THINKSTREAM_LLM_LOCAL_API") or "auto").lower()

    def available(self) -> bool:
        if _breaker_open():
            LOG.info("llm_skipped_due_to_breaker", extra={"cooldown_s": _BREAKER_COOLDOWN})
            return False
        styles = [self.api_style] if self.api_style in ("ollama", "openai") else ["ollama", "openai"]
        for style in styles:
            path = "/api/tags" if style == "ollama" else "/v1/models"
            try:
                resp = self._session.get(f"{self.base_url}{path}", timeout=_PROBE_TIMEOUT)
                resp.raise_for_status()
            except requests.exceptions.RequestException as exc:
                LOG.debug("local_llm_probe_failed", extra={"style": style, "err": str(exc)})
                continue
            self.api_style = style
            _record_success()
            return True
        _record_fail()
        return False

    def invoke(self, messages: List[Dict[str, str]]) -> str:
        if self.api_style == "ollama":
            return self._invoke_ollama(messages)
        if self.api_style == "openai":
            return self._invoke_openai(messages)
        try:
            return self._invoke_openai(messages)
        except requests.exceptions.RequestException as exc:
            LOG.warning(
                "local_llm_openai_failed_switching_to_ollama",
                extra={"base_url": self.base_url, "model": self.model, "err": str(exc)},
            )
            self.api_style = "ollama"
            return self._invoke_ollama(messages)

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]:
        try:
            if self.api_style == "openai":
                yield from self._stream_openai(messages)
            else:
                yield from self._stream_ollama(messages)
        except requests.exceptions.RequestException as exc:
            _record_fail()
            raise UpstreamStreamFailure(str(exc)) from exc
        except Exception:
            _record_fail()
            raise

    def _options(self) -> Dict[str, float]:
        return {"temperature": TEMPERATURE, "top_p": TOP_P}

    def _invoke_openai(self, messages: List[Dict[str, str]]) -> str:
        LOG.debug("local_llm_invoke", extra={"model": self.model, "base_url": self.base_url})
        resp = self._session.post(
            f"{self.base_url}/v1/chat/completions",
            json={"model": self.model, "messages": messages, "stream": False, **self._options()},
            timeout=(2, 90),
        )
        resp.raise_for_status()
        data = resp.json()
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
            if content:
                return content
        return data.get("response") or data.get("text") or ""

    def _stream_openai(self, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]:
        LOG.debug(
            "local_llm_stream",
            extra={"model": self.model, "base_url": self.base_url, "timeout": self._timeout},
        )
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            **self._options(),
        }
        with self._session.post(
            f"{self.base_url}/v1/chat/completions",
            json=payload,
            timeout=self._timeout,
            stream=True,
        ) as resp:
            resp.raise_for_status()
            for raw_line in resp.iter_lines():
                if not raw_line:
                    continue
                line = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line
                if not line.startswith("data: "):
                    continue
                data = line[6:].strip()
                if data == "[DONE]":
                    break
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    continue
                delta = (parsed.get("choices") or [{}])[0].get("delta") or {}
                token = delta.get("content") or ""
                if token:
                    yield {"token": token}

    def _invoke_ollama(self, messages: List[Dict[str, str]]) -> str:
        resp = self._session.post(
            f"{self.base_url}/api/chat",
            json={"model": self.model, "messages": messages, "stream": False, "options": self._options()},
            timeout=(2, 90),
        )
        resp.raise_for_status()
        data = resp.json()
        message = data.get("message") or {}
        return message.get("content") or data.get("response") or ""

    def _stream_ollama(self, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]:
        LOG.debug("local_llm_stream_ollama", extra={"model": self.model, "base_url": self.base_url})
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "options": self._options(),
        }
        with self._session.post(
            f"{self.base_url}/api/chat",
            json=payload,
            timeout=self._timeout,
            stream=True,
        ) as resp:
            resp.raise_for_status()
            for raw_line in resp.iter_lines():
                if not raw_line:
                    continue
                try:
                    data = json.loads(raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line)
                except json.JSONDecodeError:
                    continue
                token = (data.get("message") or {}).get("content") or ""
                if token:
                    yield {"token": token}
                if data.get("done"):
                    break


class HostedLLMClient:
    """Hosted OpenAI-compatible provider through ``langchain_openai.ChatOpenAI``."""

    def __init__(self, api_key: Optional[str], base_url: Optional[str], model: str) -> None:
        self.model = model
        self.base_url = base_url
        self._api_key = api_key
        self._llm = None
        if ChatOpenAI is not None and api_key:
            self._llm = ChatOpenAI(
                api_key=api_key,
                base_url=base_url,
                model=model,
                temperature=TEMPERATURE,
                top_p=TOP_P,
            )

    def available(self) -> bool:
        if self._llm is None:
            return False
        return not _breaker_open()

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[Dict[str, Any]]:
        if self._llm is None:
            raise UpstreamUnavailable("LLM client not available")
        try:
            for chunk in self._llm.stream(messages):
                token = chunk.content if hasattr(chunk, "content") else str(chunk)
                if token:
                    yield {"token": token}
        except Exception:
            _record_fail()
            raise

    def invoke(self, messages: List[Dict[str, str]]) -> str:
        if self._llm is None:
            raise UpstreamUnavailable("LLM client not available")
        res = self._llm.invoke(messages)
        return res.content if hasattr(res, "content") else str(res)


def base_url_for(selection: ProviderSelection) -> Optional[str]:
    if selection.base_url_env:
        return os.getenv(selection.base_url_env) or selection.default_base_url
    return selection.default_base_url


def build_client(selection: ProviderSelection) -> TextGenerator:
    base_url = base_url_for(selection)
    if selection.name == "local":
        LOG.info("llm_provider_selected", extra={"provider": "local", "base_url": base_url, "model": selection.model})
        return LocalLLMClient(base_url=base_url or "http://127.0.0.1:11434", model=selection.model)
    api_key = os.getenv(selection.api_key_env) if selection.api_key_env else None
    LOG.info(
        "llm_provider_selected",
        extra={"provider": selection.name, "base_url": base_url, "model": selection.model},
    )
    return HostedLLMClient(api_key=api_key, base_url=base_url, model=selection.model)


def get_upstream(purpose: str = "generation", router: Optional[ModelRouter] = None) -> Optional[TextGenerator]:
    """Return an upstream client for ``purpose`` or ``None`` when nothing is configured."""
    selection = (router or ModelRouter()).maybe_select_provider(purpose)
    if selection is None:
        LOG.info("llm_no_provider_configured", extra={"purpose": purpose})
        return None
    return build_client(selection)
