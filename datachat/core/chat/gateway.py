"""
MODEL GATEWAY - (message, history, instructions) -> (reply text, token cost)

The pipeline only depends on the ModelGateway protocol; OllamaGateway talks to
an Ollama server's /api/chat endpoint. No retries: a failure ends the message.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import httpx

from datachat.core.config import settings
from datachat.core.chat.errors import ModelGatewayError

logger = logging.getLogger(__name__)


class ModelGateway(Protocol):
    async def generate(
        self,
        user_message: str,
        history: Sequence[Tuple[str, str]],
        instructions: Optional[str],
    ) -> Tuple[str, int]: ...


def build_messages(
    user_message: str,
    history: Sequence[Tuple[str, str]],
    instructions: Optional[str],
) -> List[dict]:
    """Chat payload in order: system instructions, prior turns, new message."""
    messages = []
    if instructions:
        messages.append({"role": "system", "content": instructions})
    for role, content in history:
        messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": user_message})
    return messages


class OllamaGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = timeout or settings.OLLAMA_TIMEOUT_SECONDS
        # Lets tests swap in httpx.MockTransport
        self.transport = transport

    async def generate(
        self,
        user_message: str,
        history: Sequence[Tuple[str, str]],
        instructions: Optional[str],
    ) -> Tuple[str, int]:
        payload = {
            "model": self.model,
            "messages": build_messages(user_message, history, instructions),
            "stream": False,
            "options": {
                "temperature": settings.OLLAMA_TEMPERATURE,
                "num_predict": settings.OLLAMA_NUM_PREDICT,
                "num_ctx": settings.OLLAMA_NUM_CTX,
            },
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()

            content = data["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as error:
            logger.error(f"Error communicating with model service at {self.base_url}: {error}")
            raise ModelGatewayError("Failed to get response from AI service") from error

        tokens_used = int(data.get("prompt_eval_count") or 0) + int(
            data.get("eval_count") or 0
        )
        return content or "", tokens_used


def get_gateway() -> ModelGateway:
    """FastAPI dependency; overridden in tests."""
    return OllamaGateway()
