import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .chat.chunks import Chunk, DoneChunk, TextChunk, ToolChunk
from .errors import UpstreamProviderError
from .logging_config import logger


def _usage_tokens(payload: Dict[str, Any]) -> Optional[int]:
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None
    total = usage.get("total_tokens")
    if isinstance(total, int):
        return total
    prompt = usage.get("prompt_tokens") or 0
    completion = usage.get("completion_tokens") or 0
    if isinstance(prompt, int) and isinstance(completion, int) and (prompt or completion):
        return prompt + completion
    return None


def parse_stream_payload(payload: Dict[str, Any]) -> List[Chunk]:
    """
    Translate one OpenAI-style streaming payload into chunks.

    Content deltas become TextChunk, tool call deltas become ToolChunk and an
    inline `error` object becomes a ToolChunk carrying that error.
    """
    if payload.get("error"):
        return [ToolChunk(name="error", payload={"error": payload["error"]})]

    chunks: List[Chunk] = []
    for choice in payload.get("choices") or []:
        delta = choice.get("delta") or {}
        content = delta.get("content")
        if isinstance(content, str) and content:
            chunks.append(TextChunk(content))
        for call in delta.get("tool_calls") or []:
            function = call.get("function") or {}
            chunks.append(
                ToolChunk(
                    name=function.get("name") or "tool",
                    payload={"id": call.get("id"), "function": function},
                )
            )
    return chunks


async def _lines_until(lines: AsyncIterator[str], deadline: float) -> AsyncIterator[str]:
    """
    Re-yield `lines`, raising asyncio.TimeoutError once the loop clock passes
    `deadline`. Per-read timeouts alone never fire while keep-alive lines
    keep arriving.
    """
    loop = asyncio.get_running_loop()
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise asyncio.TimeoutError
        try:
            line = await asyncio.wait_for(lines.__anext__(), remaining)
        except StopAsyncIteration:
            return
        yield line


class OpenAICompatibleProvider:
    """
    Streams chat completions from any OpenAI-compatible `/chat/completions`
    endpoint (Gemini's OpenAI surface, OpenAI, local gateways).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: Optional[str],
        model: str,
        temperature: float = 0.7,
        timeout: float = 60.0,
        total_timeout: float = 180.0,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.total_timeout = total_timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[Chunk]:
        url = f"{self.base_url}/chat/completions"
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        usage_tokens: Optional[int] = None
        logger.info("upstream: opening stream to %s (model=%s)", url, self.model)
        deadline = asyncio.get_running_loop().time() + self.total_timeout
        try:
            async with self.client.stream(
                "POST",
                url,
                headers=self._headers(),
                json=body,
                timeout=httpx.Timeout(self.timeout),
            ) as resp:
                if resp.status_code >= 400:
                    text = (await resp.aread()).decode("utf-8", errors="ignore")
                    logger.warning(
                        "upstream: HTTP error %s from %s; response=%s",
                        resp.status_code,
                        url,
                        text[:500],
                    )
                    raise UpstreamProviderError(
                        f"Upstream HTTP error {resp.status_code}", status=resp.status_code
                    )

                async for line in _lines_until(resp.aiter_lines(), deadline):
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        break
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("upstream: skipping non-JSON frame from %s", url)
                        continue
                    if not isinstance(payload, dict):
                        continue
                    usage_tokens = _usage_tokens(payload) or usage_tokens
                    for chunk in parse_stream_payload(payload):
                        yield chunk
                        if isinstance(chunk, ToolChunk) and chunk.error is not None:
                            return
        except asyncio.TimeoutError as exc:
            logger.warning(
                "upstream: stream to %s exceeded %ss total deadline", url, self.total_timeout
            )
            raise UpstreamProviderError("Upstream provider timed out") from exc
        except httpx.TimeoutException as exc:
            logger.warning("upstream: timeout talking to %s: %s", url, exc)
            raise UpstreamProviderError("Upstream provider timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("upstream: transport error talking to %s: %s", url, exc)
            raise UpstreamProviderError(f"Upstream transport error: {exc}") from exc

        yield DoneChunk(usage_tokens=usage_tokens)


__all__ = ["OpenAICompatibleProvider", "parse_stream_payload"]
