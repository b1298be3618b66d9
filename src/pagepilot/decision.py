# src/pagepilot/decision.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from openai import AsyncOpenAI
from openai import APIConnectionError, APIStatusError

from .errors import MissingCredentialError, TransportError, is_retryable_status

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.0-flash"

PREFERRED_MODELS = (
    "gemini-2.0-flash",
    "gemini-1.5-flash-latest",
    "gemini-1.5-flash",
    "gemini-1.5-pro-latest",
    "gemini-1.5-pro",
)

MAX_ATTEMPTS = 3
INITIAL_BACKOFF = 0.3

SYSTEM_INSTRUCTION = """
You are an agent controlling a web browser. Respond ONLY with JSON describing the next actions.
Use normalized coordinates (0-1000) matching the screenshot: 0,0 is the top-left corner, 1000,1000 the bottom-right.
Supported actions: navigate(url), click_at(x,y), scroll(deltaY), type(text), wait(ms), complete.
Return the shape: {"actions":[{"type":"click_at","x":100,"y":200}],"done":false}.
type(text) appends to the focused field, so click the field first.
Mark done/complete when the goal is finished.
""".strip()


@dataclass(frozen=True)
class ModelInfo:
    name: str
    supports_generation: bool


def _model_name(model_id: str) -> str:
    return model_id.split("/", 1)[1] if model_id.startswith("models/") else model_id


def _supports_generation(name: str, extra: dict) -> bool:
    methods = extra.get("supported_generation_methods") or extra.get("supportedGenerationMethods")
    if methods is not None:
        return "generateContent" in methods
    return "embed" not in name.lower()


def pick_default_model(models: Sequence[ModelInfo], preferred: Sequence[str] = PREFERRED_MODELS) -> Optional[str]:
    """First preferred name present, else first generation-capable model, else first listed."""
    if not models:
        return None
    capable = [m.name for m in models if m.supports_generation]
    for pref in preferred:
        if pref in capable:
            return pref
    if capable:
        return capable[0]
    return models[0].name


def _message_text(resp: Any) -> str:
    choices = getattr(resp, "choices", None) or []
    if not choices:
        return ""
    content = choices[0].message.content
    if isinstance(content, list):
        return "\n".join(p.get("text", "") for p in content if isinstance(p, dict))
    return content or ""


class DecisionEngine:
    """
    Asks the model for the next actions given (goal, context, screenshot).

    Transport is the OpenAI SDK aimed at Gemini's OpenAI-compatible endpoint.
    SDK-level retries are off; this class owns the retry policy:
    MAX_ATTEMPTS tries, only on 429/5xx, backoff INITIAL_BACKOFF doubling.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        *,
        base_url: str = GEMINI_OPENAI_BASE_URL,
        client: Optional[AsyncOpenAI] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.model = model
        self.base_url = base_url
        self._api_key = api_key or None
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    @api_key.setter
    def api_key(self, value: Optional[str]) -> None:
        value = value or None
        if value != self._api_key and self._owns_client:
            self._client = None
        self._api_key = value

    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise MissingCredentialError()
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self.base_url, max_retries=0)
        return self._client

    async def _create_with_retry(self, **kwargs):
        delay = INITIAL_BACKOFF
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await self.client().chat.completions.create(**kwargs)
            except APIStatusError as e:
                status = e.status_code
                if not is_retryable_status(status):
                    raise TransportError(f"Model request failed ({status}): {e.message}", status=status) from e
                if attempt == MAX_ATTEMPTS:
                    raise TransportError(
                        f"Model request still failing after {MAX_ATTEMPTS} attempts ({status}): {e.message}",
                        status=status,
                        retryable=True,
                    ) from e
                logger.info("model request got %s, retry %d in %.1fs", status, attempt, delay)
                await self._sleep(delay)
                delay *= 2
            except APIConnectionError as e:
                raise TransportError(f"Model request failed: {e}") from e

    async def generate_actions(self, goal: str, context: str, image_b64: str) -> str:
        model = self.model
        prompt = f"Goal: {goal}\nContext:\n{context or '(none)'}"
        resp = await self._create_with_retry(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{image_b64}"}},
                    ],
                },
            ],
        )
        return _message_text(resp)

    async def fetch_models(self) -> List[ModelInfo]:
        out: List[ModelInfo] = []
        try:
            async for m in self.client().models.list():
                name = _model_name(m.id)
                extra = getattr(m, "model_extra", None) or {}
                out.append(ModelInfo(name=name, supports_generation=_supports_generation(name, extra)))
        except APIStatusError as e:
            raise TransportError(f"Listing models failed ({e.status_code}): {e.message}", status=e.status_code) from e
        except APIConnectionError as e:
            raise TransportError(f"Listing models failed: {e}") from e
        return out

    async def list_models(self) -> List[str]:
        return [m.name for m in await self.fetch_models() if m.supports_generation]

    async def select_default_model(self) -> Optional[str]:
        choice = pick_default_model(await self.fetch_models())
        if choice:
            self.model = choice
        return choice
