import logging
from typing import Dict, List, Optional

import requests
from fastapi import Request
from pydantic import BaseModel

import persona
from errors import UpstreamError
from schemas import ApiModel, Tier

logger = logging.getLogger(__name__)

# ------------------------
# Model aliasing
# ------------------------

DEFAULT_MODEL = "openai/gpt-4o"

# Public model ids mapped to upstream model ids (never shown to clients)
MODEL_ALIASES: Dict[str, str] = {
    "zlma-pro": "openai/gpt-4o",
    "zlma-fast": "openai/gpt-4o-mini",
    "zlma-creative": "anthropic/claude-3.5-sonnet",
    "zlma-research": "google/gemini-pro-1.5",
    "zlma-open": "meta-llama/llama-3.1-70b-instruct",
    # raw ids still accepted from older clients
    "openai/gpt-4o": "openai/gpt-4o",
    "openai/gpt-4o-mini": "openai/gpt-4o-mini",
}

# Model used by the mobile chat endpoint, picked by tier
TIER_MODELS: Dict[Tier, str] = {
    Tier.FREE: "openai/gpt-4o-mini",
    Tier.PRO: "openai/gpt-4o-mini",
    Tier.ENTERPRISE: "openai/gpt-4o",
}


class AvailableModel(ApiModel):
    id: str
    name: str
    description: str
    context_length: int


AVAILABLE_MODELS: List[AvailableModel] = [
    AvailableModel(id="zlma-pro", name="Zlma Pro", description="Our most capable model", context_length=128000),
    AvailableModel(id="zlma-fast", name="Zlma Fast", description="Fast and efficient", context_length=128000),
    AvailableModel(id="zlma-creative", name="Zlma Creative", description="Best for creative tasks", context_length=200000),
    AvailableModel(
        id="zlma-research", name="Zlma Research", description="Extended context for research", context_length=1000000
    ),
    AvailableModel(id="zlma-open", name="Zlma Open", description="Open and versatile", context_length=131072),
]


def resolve_model(alias: Optional[str]) -> str:
    return MODEL_ALIASES.get(alias or "", DEFAULT_MODEL)


def model_for_tier(tier: str) -> str:
    return TIER_MODELS[Tier(tier)]


# ------------------------
# Upstream client
# ------------------------

class TokenUsage(ApiModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Completion(BaseModel):
    id: str
    role: str = "assistant"
    content: str
    usage: Optional[TokenUsage] = None


class ChatClient:
    """OpenRouter chat-completions client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: Optional[str] = None,
        title: Optional[str] = None,
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"})
        if referer:
            self.session.headers["HTTP-Referer"] = referer
        if title:
            self.session.headers["X-Title"] = title

    def close(self) -> None:
        self.session.close()

    def complete(self, model: str, messages: List[Dict[str, str]]) -> Completion:
        """Send ``messages`` (role/content dicts) with the persona prompt prepended."""
        payload = {
            "model": model,
            "messages": [{"role": "system", "content": persona.system_prompt()}] + list(messages),
        }
        try:
            r = self.session.post(f"{self.base_url}/chat/completions", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Chat completion request failed for %s: %s", model, e)
            raise UpstreamError("AI service unavailable")

        if r.status_code != 200:
            logger.error("Chat completion for %s returned %s: %s", model, r.status_code, r.text[:200])
            raise UpstreamError("AI service error")

        try:
            data = r.json()
        except ValueError:
            raise UpstreamError("Malformed response from AI service")
        choices = data.get("choices") or []
        message = (choices[0] or {}).get("message") if choices else None
        if not message or message.get("content") is None:
            raise UpstreamError("No response from AI")

        usage = data.get("usage")
        return Completion(
            id=data.get("id") or "",
            role=message.get("role") or "assistant",
            content=message["content"],
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            )
            if usage
            else None,
        )


def get_chat_client(request: Request) -> ChatClient:
    return request.app.state.chat_client
