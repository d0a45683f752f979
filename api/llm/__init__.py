"""LLM module for the upstream streaming chat-completion endpoint."""

from .completion_relay import (
    CompletionChunk,
    CompletionConfigError,
    CompletionRelay,
    SSEFrameDecoder,
    UpstreamCompletionError,
)

__all__ = [
    "CompletionChunk",
    "CompletionConfigError",
    "CompletionRelay",
    "SSEFrameDecoder",
    "UpstreamCompletionError",
]
