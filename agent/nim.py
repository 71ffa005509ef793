"""
NVIDIA NIM reply agent.

Streams a chat completion from an OpenAI-compatible endpoint with direct
httpx calls and turns it into reply events.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from config.settings import Settings, get_settings
from delivery.models import (
    DispatchContext,
    FinalReply,
    ModelSelected,
    PartialReply,
    ReplyEvent,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "nvidia_nim"
_DATA_PREFIX = "data:"
_DONE = "[DONE]"


def parse_sse_data(line: str) -> Optional[Dict[str, Any]]:
    """
    Decode one server-sent-events line of a completion stream.

    Returns None for keep-alives, comments, the terminal ``[DONE]`` marker
    and undecodable payloads.
    """
    line = line.strip()
    if not line.startswith(_DATA_PREFIX):
        return None
    payload = line[len(_DATA_PREFIX) :].strip()
    if not payload or payload == _DONE:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        logger.warning(f"Skipping undecodable stream line: {payload[:200]}")
        return None


def extract_delta(chunk: Dict[str, Any]) -> str:
    choices = chunk.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    return delta.get("content") or ""


class NimReplyAgent:
    """Reply agent backed by a NIM ``/chat/completions`` stream."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.nvidia_nim_base_url.rstrip("/"),
            timeout=httpx.Timeout(self.settings.nvidia_nim_timeout, connect=10.0),
        )

    def build_request(self, ctx: DispatchContext) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if self.settings.system_prompt:
            messages.append({"role": "system", "content": self.settings.system_prompt})
        messages.append({"role": "user", "content": ctx.body})
        return {
            "model": self.settings.model,
            "messages": messages,
            "temperature": self.settings.nvidia_nim_temperature,
            "max_tokens": self.settings.nvidia_nim_max_tokens,
            "stream": True,
        }

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.nvidia_nim_api_key}",
            "Accept": "text/event-stream",
        }

    async def stream_reply(self, ctx: DispatchContext) -> AsyncIterator[ReplyEvent]:
        """
        Yield ``ModelSelected``, cumulative ``PartialReply`` revisions and
        one ``FinalReply``.

        Raises:
            httpx.HTTPStatusError: on a non-2xx response
            httpx.HTTPError: on transport failures
        """
        body = self.build_request(ctx)
        logger.info(
            f"NIM request: model={body['model']}, session={ctx.session_key}, length={len(ctx.body)}"
        )
        yield ModelSelected(provider=PROVIDER_NAME, model=self.settings.model)

        text = ""
        async with self._client.stream(
            "POST", "/chat/completions", json=body, headers=self._headers()
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                logger.error(f"NIM error {response.status_code}: {response.text[:500]}")
            response.raise_for_status()

            async for line in response.aiter_lines():
                chunk = parse_sse_data(line)
                if chunk is None:
                    continue
                delta = extract_delta(chunk)
                if not delta:
                    continue
                text += delta
                yield PartialReply(text=text)

        logger.info(f"NIM reply complete: {len(text)} chars")
        yield FinalReply(text=text)

    async def aclose(self) -> None:
        await self._client.aclose()
