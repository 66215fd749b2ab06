"""AI service configuration: providers, models and validation."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .config import Settings

# OpenAI-compatible chat-completions endpoints.
PROVIDERS: dict[str, dict] = {
    "openai": {
        "name": "OpenAI",
        "base_url": None,  # client default
        "models": ["gpt-4o-mini", "gpt-4o", "gpt-4.1-mini"],
        "cost_per_1k_tokens": 0.0006,
    },
    "siliconflow": {
        "name": "SiliconFlow",
        "base_url": "https://api.siliconflow.cn/v1",
        "models": [
            "Qwen/Qwen2.5-7B-Instruct",
            "Qwen/Qwen2.5-72B-Instruct",
            "deepseek-ai/DeepSeek-V3",
        ],
        "cost_per_1k_tokens": 0.0002,
    },
}


class AIConfig(BaseModel):
    """Settings for the external generative text service."""

    model_config = ConfigDict(frozen=True)

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str = Field(default="", repr=False)
    base_url: str | None = None
    temperature: float = 0.1
    max_tokens: int = 2000
    enabled: bool = True
    timeout: float | None = None
    cost_per_1k_tokens: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIConfig":
        return cls(
            provider=settings.ai_provider,
            model=settings.ai_model,
            api_key=settings.ai_api_key,
            base_url=settings.ai_base_url,
            temperature=settings.ai_temperature,
            max_tokens=settings.ai_max_tokens,
            enabled=settings.ai_enabled,
            timeout=settings.ai_timeout,
        )

    @property
    def resolved_base_url(self) -> str | None:
        if self.base_url:
            return self.base_url
        return PROVIDERS.get(self.provider, {}).get("base_url")

    @property
    def resolved_cost_per_1k(self) -> float:
        if self.cost_per_1k_tokens is not None:
            return self.cost_per_1k_tokens
        return PROVIDERS.get(self.provider, {}).get("cost_per_1k_tokens", 0.001)


def validate_ai_config(config: AIConfig | None) -> List[str]:
    """Return a list of problems; empty means the service can be called."""
    if config is None:
        return ["AI service is not configured."]
    problems: list[str] = []
    if not config.enabled:
        problems.append("AI service is disabled.")
    if config.provider not in PROVIDERS and not config.base_url:
        problems.append(f"Unknown AI provider '{config.provider}' and no base URL given.")
    if not config.api_key.strip():
        problems.append("AI API key is missing.")
    if not config.model.strip():
        problems.append("AI model is missing.")
    if not 0.0 <= config.temperature <= 2.0:
        problems.append("AI temperature must be within [0, 2].")
    if config.max_tokens <= 0:
        problems.append("AI max_tokens must be positive.")
    return problems


def is_configured(config: AIConfig | None) -> bool:
    return not validate_ai_config(config)
