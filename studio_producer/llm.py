"""
Chat model boundary for the reasoning loops.

OpenAIChatModel talks to any OpenAI-compatible endpoint with native tool
calling. Transient failures are retried here with exponential backoff +
jitter; stage-level retries live in agent/recovery.py.
"""

import asyncio
import json
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from studio_producer import config
from studio_producer.models import ToolCall

logger = logging.getLogger(__name__)

Message = Dict[str, Any]

TRANSIENT_LLM_ERRORS = (
    ConnectionError, TimeoutError, OSError,
    openai.APIConnectionError, openai.APITimeoutError,
    openai.InternalServerError, openai.RateLimitError,
)


@dataclass
class ModelTurn:
    """One assistant reply: free text and/or requested tool calls."""
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


def assistant_message(turn: ModelTurn) -> Message:
    """Render a ModelTurn back into an OpenAI chat message."""
    msg: Message = {"role": "assistant", "content": turn.content or ""}
    if turn.tool_calls:
        msg["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in turn.tool_calls
        ]
    return msg


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Unparsable tool arguments, raw: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ChatModel(ABC):
    """Anything that can answer a message history, optionally requesting tools."""

    @abstractmethod
    async def complete(self, messages: List[Message], tools: List[Dict[str, Any]]) -> ModelTurn:
        ...


class OpenAIChatModel(ChatModel):

    def __init__(
        self,
        model: str = "",
        base_url: str = "",
        api_key: str = "",
        temperature: float = 0.2,
        timeout: float = 0,
        max_retries: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model or config.MODEL_NAME
        self.temperature = temperature
        self.timeout = timeout or config.LLM_TIMEOUT
        self.max_retries = config.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.client = client or AsyncOpenAI(
            base_url=base_url or config.LLM_BASE_URL,
            api_key=api_key or config.LLM_API_KEY,
        )

    async def complete(self, messages: List[Message], tools: List[Dict[str, Any]]) -> ModelTurn:
        """Call the model. Returns the parsed turn.

        Retries up to max_retries times with exponential backoff + jitter.
        Fast-fails on non-transient errors (BadRequestError, AuthenticationError).
        """
        create_kwargs = dict(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            timeout=self.timeout,
        )
        if tools:
            create_kwargs["tools"] = tools
            create_kwargs["tool_choice"] = "auto"

        for attempt in range(self.max_retries + 1):
            try:
                resp = await self.client.chat.completions.create(**create_kwargs)
                break
            except (openai.BadRequestError, openai.AuthenticationError):
                # Non-transient errors: fast-fail, no retry
                raise
            except TRANSIENT_LLM_ERRORS as e:
                if attempt < self.max_retries:
                    base_wait = 2 * (2 ** attempt)  # 2, 4, 8
                    jitter = random.uniform(-base_wait * 0.3, base_wait * 0.3)
                    wait = base_wait + jitter
                    logger.warning(
                        f"  WARNING: chat completion attempt {attempt+1}/{self.max_retries+1} "
                        f"failed ({type(e).__name__}), retrying in {wait:.1f}s..."
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error(f"  ERROR: chat completion failed after {self.max_retries+1} attempts: {e}")
                    raise

        message = resp.choices[0].message
        calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=_parse_arguments(tc.function.arguments))
            for tc in (message.tool_calls or [])
        ]
        return ModelTurn(content=(message.content or "").strip(), tool_calls=calls)
