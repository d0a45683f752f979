"""
Streaming relay to the upstream chat-completion endpoint (DeepSeek compatible).

Sends a two-message payload (system then user) with ``stream: true`` and
decodes the server-sent-event body incrementally. Each ``data:`` frame
carries a JSON object whose ``choices[0].delta.content`` is the next text
delta; a literal ``data: [DONE]`` ends the stream.

Decoding is best effort: a frame that is not valid JSON is skipped and
counted, never retried or surfaced.
"""

import json
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import httpx
import structlog

from api.composer.prompts import build_system_prompt
from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

DONE_SENTINEL = "[DONE]"


class CompletionConfigError(RuntimeError):
    """The relay is missing configuration (API key). Raised before any I/O."""


class UpstreamCompletionError(RuntimeError):
    """Non-2xx status or empty body from the completion endpoint."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Completion endpoint error: {status_code} {body}".strip())
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class CompletionChunk:
    content: str = ""
    done: bool = False


class SSEFrameDecoder:
    """
    Incremental decoder for ``data: ...`` frames separated by blank lines.

    ``feed`` accepts arbitrary slices of the body and returns the chunks of
    every frame completed so far. ``malformed_frames`` counts frames whose
    payload was not valid JSON.
    """

    def __init__(self):
        self._buffer = ""
        self.malformed_frames = 0
        self.finished = False

    def decode_frame(self, raw: str) -> Optional[CompletionChunk]:
        frame = raw.strip()
        if not frame.startswith("data:"):
            return None
        data = frame[5:].strip()
        if not data:
            return None
        if data == DONE_SENTINEL:
            return CompletionChunk(done=True)

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            self.malformed_frames += 1
            logger.debug("Skipping malformed SSE frame", malformed_frames=self.malformed_frames)
            return None

        try:
            content = payload["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            return None
        if not content:
            return None
        return CompletionChunk(content=content)

    def _drain(self, frames: List[str]) -> List[CompletionChunk]:
        chunks: List[CompletionChunk] = []
        for frame in frames:
            if self.finished:
                break
            chunk = self.decode_frame(frame)
            if chunk is None:
                continue
            chunks.append(chunk)
            if chunk.done:
                self.finished = True
        return chunks

    def feed(self, text: str) -> List[CompletionChunk]:
        self._buffer += text.replace("\r\n", "\n")
        frames = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            frames.append(frame)
        return self._drain(frames)

    def flush(self) -> List[CompletionChunk]:
        """Decode whatever is left once the body ends."""
        remainder, self._buffer = self._buffer, ""
        return self._drain([remainder]) if remainder.strip() else []


class CompletionRelay:
    """
    Relays streamed completions from the upstream endpoint.

    Usage:
        relay = CompletionRelay.from_settings()
        async for chunk in relay.stream(system, user, 0.2, 1800, "es"):
            if not chunk.done:
                send(chunk.content)
    """

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str = "deepseek-chat",
        timeout_seconds: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.api_url = api_url
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> "CompletionRelay":
        settings = settings or get_settings()
        return cls(
            api_key=settings.completion_api_key,
            api_url=settings.completion_api_url,
            model=settings.completion_model,
            timeout_seconds=settings.completion_timeout_seconds,
            client=client,
        )

    def build_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        language: Optional[str],
    ) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(system_prompt, language)},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True,
        }

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1800,
        language: Optional[str] = "es",
    ) -> AsyncIterator[CompletionChunk]:
        """
        Stream completion deltas; the last chunk always has ``done=True``.

        Raises:
            CompletionConfigError: API key not configured (before any request)
            UpstreamCompletionError: Non-2xx status or empty body
        """
        if not self.api_key:
            raise CompletionConfigError("Completion API key is not configured")

        payload = self.build_payload(system_prompt, user_prompt, temperature, max_tokens, language)
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}
        decoder = SSEFrameDecoder()

        client = self._client or httpx.AsyncClient(timeout=self.timeout_seconds)
        try:
            async with client.stream("POST", self.api_url, json=payload, headers=headers) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error("Completion endpoint rejected request", status_code=response.status_code)
                    raise UpstreamCompletionError(response.status_code, body)

                received = False
                async for text in response.aiter_text():
                    if text:
                        received = True
                    for chunk in decoder.feed(text):
                        yield chunk
                        if chunk.done:
                            return

                if not received:
                    raise UpstreamCompletionError(response.status_code, "")

                for chunk in decoder.flush():
                    yield chunk
                    if chunk.done:
                        return
                yield CompletionChunk(done=True)
        finally:
            if decoder.malformed_frames:
                logger.debug("Completion stream had malformed frames", malformed_frames=decoder.malformed_frames)
            if self._client is None:
                await client.aclose()

    async def collect(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1800,
        language: Optional[str] = "es",
    ) -> str:
        """Accumulate the whole streamed response."""
        parts = []
        async for chunk in self.stream(system_prompt, user_prompt, temperature, max_tokens, language):
            if not chunk.done:
                parts.append(chunk.content)
        return "".join(parts)
