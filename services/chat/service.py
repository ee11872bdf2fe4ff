"""Conversational assistant over the processed invoices.

The assistant itself is a hosted chat model; this module shapes the prompt,
streams the reply and keeps the session transcript.

Streaming protocol (Server-Sent Events), one event per text chunk::

    data: {"text": "..."}

Failures after the stream has started are reported as a final
``data: {"error": "..."}`` event.
"""

import json
import logging
import os
import threading
import weakref
from abc import ABC, abstractmethod
from collections.abc import Callable, Generator, Iterator, Sequence
from typing import Any, Literal

from openai import OpenAI
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.schema import InvoiceRecord
from services.shared.config import Settings

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """You are an expert assistant on a financial optimization platform. \
Your purpose is twofold:
1. Answer general questions about the service, its features, technologies and benefits. \
Be clear, concise and professional.
2. Analyze the invoice data provided to you as JSON inside the conversation. Use it to \
answer specific questions about spend, providers, dates, totals, etc. If the user asks \
about the data and the JSON does not contain enough information, say so clearly. \
Do not make up data.

Keep a helpful, analytical tone."""

GREETING = (
    "Hello. I am the analysis assistant. You can ask me about this service "
    "or about the invoices you have processed."
)

FALLBACK_REPLY = "Sorry, I could not process your request."


class ChatBusyError(RuntimeError):
    """Raised when a message is sent while another reply is still streaming."""


class ChatServiceError(RuntimeError):
    """Raised by chat providers when the assistant service fails."""


class ChatMessage(BaseModel):
    """One transcript entry."""

    role: Literal["user", "model"]
    text: str


def build_prompt(message: str, context: Sequence[InvoiceRecord] | None = None) -> str:
    """Prefix the user's question with the invoice data it should be answered from.

    Args:
        message: User question
        context: Aggregable records to expose to the assistant

    Returns:
        Final prompt text
    """
    if not context:
        return message

    data = [record.model_dump(mode="json", by_alias=True, exclude={"id"}) for record in context]
    context_string = json.dumps(data, indent=2, ensure_ascii=False)
    return (
        f"Based on the following invoice data:\n\n```json\n{context_string}\n```\n\n"
        f"Answer the following question: {message}"
    )


def format_sse(payload: dict[str, Any]) -> str:
    """Encode one Server-Sent Event carrying a JSON payload."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def parse_sse_events(raw: str) -> list[str]:
    """Read the text chunks out of a block of Server-Sent Events.

    Malformed events are logged and skipped; the rest of the block is still read.

    Args:
        raw: Decoded stream content, possibly holding several events

    Returns:
        Text chunks in stream order
    """
    chunks: list[str] = []
    for event in raw.split("\n\n"):
        line = event.strip()
        if not line.startswith("data: "):
            continue
        try:
            data = json.loads(line[len("data: ") :])
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse stream chunk: {e}")
            continue
        if isinstance(data, dict) and isinstance(data.get("text"), str) and data["text"]:
            chunks.append(data["text"])
    return chunks


class ChatProvider(ABC):
    """Streaming chat completion backend."""

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def stream_reply(self, history: Sequence[ChatMessage], prompt: str) -> Iterator[str]:
        """Stream the assistant reply as text chunks.

        Args:
            history: Transcript before the current question
            prompt: Current question, with any data context already attached

        Yields:
            Text chunks

        Raises:
            ChatServiceError: If the service fails before or during the stream
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the chat backend is configured."""


class OpenAIChatProvider(ChatProvider):
    """Chat provider backed by OpenAI streaming chat completions.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI chat provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    def is_available(self) -> bool:
        return os.getenv("OPENAI_API_KEY") is not None

    def stream_reply(self, history: Sequence[ChatMessage], prompt: str) -> Iterator[str]:
        if not self.is_available():
            raise ChatServiceError("OPENAI_API_KEY environment variable not set")

        api_key = os.getenv("OPENAI_API_KEY")
        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(api_key=api_key)

        messages: list[dict[str, str]] = [{"role": "system", "content": SYSTEM_INSTRUCTION}]
        for message in history:
            role = "assistant" if message.role == "model" else "user"
            messages.append({"role": role, "content": message.text})
        messages.append({"role": "user", "content": prompt})

        try:
            stream = self._open_stream_with_retry(messages)
        except Exception as e:
            raise ChatServiceError(f"Chat request failed: {str(e)}") from e

        try:
            for chunk in stream:
                try:
                    text = chunk.choices[0].delta.content if chunk.choices else None
                except (AttributeError, IndexError) as e:
                    logger.warning(f"Skipping malformed chat chunk: {e}")
                    continue
                if text:
                    yield text
        except Exception as e:
            raise ChatServiceError(f"Chat stream interrupted: {str(e)}") from e

    @retry(
        retry=retry_if_exception_type((Exception,)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _open_stream_with_retry(self, messages: list[dict[str, str]]) -> Any:
        """Open the completion stream, retrying transient failures.

        Only the request is retried; a stream that breaks midway is not replayed.
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(  # type: ignore[call-overload]
            model=self.settings.chat_model,
            messages=messages,
            stream=True,
        )


def _end_reply(chunks: Generator[str, None, None], release: Callable[[], None]) -> None:
    chunks.close()
    release()


class ReplyStream(Iterator[str]):
    """Reply chunks that free the session even if never consumed.

    The in-flight slot is released once: when the chunks run out, on
    ``close()``, or when the stream is garbage collected unconsumed.
    """

    def __init__(self, chunks: Generator[str, None, None], release: Callable[[], None]) -> None:
        self._chunks = chunks
        # Must not reference self, or the stream would never be collected
        self._finalizer = weakref.finalize(self, _end_reply, chunks, release)

    def __next__(self) -> str:
        try:
            return next(self._chunks)
        except StopIteration:
            self._finalizer()
            raise

    def close(self) -> None:
        self._finalizer()


class ChatSession:
    """Transcript of one conversation with at most one reply in flight.

    Attributes:
        transcript: Messages so far, starting with the assistant greeting
        error: Message of the last failure, cleared on the next request
    """

    def __init__(self, provider: ChatProvider) -> None:
        """Initialize session.

        Args:
            provider: Streaming chat backend
        """
        self.provider = provider
        self.transcript: list[ChatMessage] = [ChatMessage(role="model", text=GREETING)]
        self.error: str | None = None
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def send(
        self, message: str, context: Sequence[InvoiceRecord] | None = None
    ) -> Iterator[str]:
        """Post a question and return the stream of reply chunks.

        The busy check and the user message happen immediately; the reply is
        produced as the returned iterator is consumed.

        Args:
            message: User question
            context: Records to expose to the assistant

        Returns:
            Iterator of reply text chunks; closing it early ends the request

        Raises:
            ValueError: If the message is empty
            ChatBusyError: If another reply is still streaming
        """
        if not message or not message.strip():
            raise ValueError("Message is required.")
        if not self._lock.acquire(blocking=False):
            raise ChatBusyError("A reply is already in progress.")

        self.error = None
        history = list(self.transcript)
        self.transcript.append(ChatMessage(role="user", text=message))
        prompt = build_prompt(message, context)
        return ReplyStream(self._stream(history, prompt), self._release)

    def _release(self) -> None:
        self._lock.release()

    def _stream(self, history: list[ChatMessage], prompt: str) -> Generator[str, None, None]:
        reply = ChatMessage(role="model", text="")
        self.transcript.append(reply)
        try:
            for chunk in self.provider.stream_reply(history, prompt):
                reply.text += chunk
                yield chunk
        except Exception as e:
            logger.error(f"Chat reply failed: {e}")
            self.error = str(e)
            fallback = f"{FALLBACK_REPLY} {self.error}"
            if reply.text:
                self.transcript.append(ChatMessage(role="model", text=fallback))
            else:
                reply.text = fallback

    def reset(self) -> None:
        """Start a new conversation."""
        if self.busy:
            raise ChatBusyError("A reply is already in progress.")
        self.transcript = [ChatMessage(role="model", text=GREETING)]
        self.error = None
