"""OpenRouter-compatible chat completion client.

The pipeline treats a missing API key as the normal "not configured" state
and routes straight to the fallback policy without touching the network.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from questline.agent.task_queue import TaskKind

logger = logging.getLogger("uvicorn.error")
LLM_LOG_MAX_CHARS = max(100, int(os.getenv("QUESTLINE_LLM_LOG_MAX_CHARS", "1024")))

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

DEFAULT_MODELS: Dict[TaskKind, str] = {
    TaskKind.NARRATION: "llama-3.1-8b-instant",
    TaskKind.PLAYER_DECISION: "mixtral-8x7b-32768",
    TaskKind.HINT: "llama-3.1-8b-instant",
}


@dataclass(frozen=True, slots=True)
class ModelDefaults:
    max_tokens: int
    temperature: float


MODEL_DEFAULTS: Dict[TaskKind, ModelDefaults] = {
    TaskKind.NARRATION: ModelDefaults(max_tokens=200, temperature=0.8),
    TaskKind.PLAYER_DECISION: ModelDefaults(max_tokens=150, temperature=0.4),
    TaskKind.HINT: ModelDefaults(max_tokens=100, temperature=0.6),
}


def _clip_text(text: str, limit: int = LLM_LOG_MAX_CHARS) -> str:
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + f" ...[truncated {len(text) - limit} chars]"


class ProviderNotConfigured(RuntimeError):
    pass


class ProviderError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class ProviderConfig:
    api_url: str = OPENROUTER_URL
    api_key: str = ""
    timeout_sec: float = 20.0
    models: Dict[TaskKind, str] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    referer: str = "https://questline.app"
    title: str = "questLine - Werewolf Pomodoro"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def model_for(self, kind: TaskKind) -> str:
        return self.models.get(kind) or DEFAULT_MODELS[kind]

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        models = dict(DEFAULT_MODELS)
        overrides = {
            TaskKind.NARRATION: os.getenv("QUESTLINE_MODEL_NARRATION"),
            TaskKind.PLAYER_DECISION: os.getenv("QUESTLINE_MODEL_DECISION"),
            TaskKind.HINT: os.getenv("QUESTLINE_MODEL_HINT"),
        }
        for kind, value in overrides.items():
            if value and value.strip():
                models[kind] = value.strip()
        return cls(
            api_url=os.getenv("QUESTLINE_PROVIDER_URL", OPENROUTER_URL).strip() or OPENROUTER_URL,
            api_key=os.getenv("OPENROUTER_API_KEY", "").strip(),
            timeout_sec=max(1.0, float(os.getenv("QUESTLINE_PROVIDER_TIMEOUT_SEC", "20"))),
            models=models,
        )


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    content: str
    model: str
    tokens_used: int = 0
    finish_reason: str = "unknown"


class ReasoningProvider:
    def __init__(self, config: Optional[ProviderConfig] = None) -> None:
        self.config = config or ProviderConfig.from_env()

    @property
    def configured(self) -> bool:
        return self.config.configured

    async def complete(
        self,
        kind: TaskKind,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
    ) -> ProviderResponse:
        cfg = self.config
        if not cfg.configured:
            raise ProviderNotConfigured("reasoning provider not configured (OPENROUTER_API_KEY missing)")

        defaults = MODEL_DEFAULTS[kind]
        model_name = model or cfg.model_for(kind)
        headers = {
            "Authorization": f"Bearer {cfg.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": cfg.referer,
            "X-Title": cfg.title,
        }
        body = {
            "model": model_name,
            "messages": messages,
            "max_tokens": defaults.max_tokens,
            "temperature": defaults.temperature,
        }
        logger.info(
            "[Provider][request] kind=%s model=%s prompt=%s",
            kind.value,
            model_name,
            _clip_text(messages[-1]["content"] if messages else ""),
        )

        async with httpx.AsyncClient(timeout=cfg.timeout_sec) as client:
            resp = await client.post(cfg.api_url, headers=headers, json=body)
        if resp.status_code >= 400:
            raise ProviderError(
                f"provider error ({resp.status_code}): {_clip_text(resp.text, 300)}",
                status_code=resp.status_code,
            )

        data = resp.json()
        choices = data.get("choices") or [{}]
        choice = choices[0] or {}
        message = choice.get("message") or {}
        usage = data.get("usage") or {}
        result = ProviderResponse(
            content=message.get("content") or "",
            model=data.get("model") or model_name,
            tokens_used=int(usage.get("total_tokens") or 0),
            finish_reason=choice.get("finish_reason") or "unknown",
        )
        logger.info(
            "[Provider][response] kind=%s model=%s tokens=%s content=%s",
            kind.value,
            result.model,
            result.tokens_used,
            _clip_text(result.content),
        )
        return result
