"""
OpenAI-compatible chat-completion client.

Works with any endpoint that speaks the ``/chat/completions`` wire
protocol -- OpenAI, OpenRouter, vLLM, LM Studio, Ollama's ``/v1`` API, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.

There are no retries: a failure surfaces immediately and the caller
decides whether to retry the whole turn.
"""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from codr.errors import DecodeError, RemoteError, TransportError
from codr.llm.stream import EventStream
from codr.llm.types import ChatCompletion, Message, ToolDefinition

logger = logging.getLogger(__name__)


class ChatClient:
    """
    Buffered and streaming access to one chat-completions endpoint.

    Parameters
    ----------
    base_url:
        Base URL of the API, e.g. ``"https://openrouter.ai/api/v1"``.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    model:
        Model identifier sent in the ``model`` field.
    timeout:
        HTTP timeout in seconds for connect and for each read.
    http_client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one backed by
        ``httpx.MockTransport``).  When omitted the client owns its own.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        *,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self, stream: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if stream:
            headers["Accept"] = "text/event-stream"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition] | None,
        stream: bool,
    ) -> dict:
        body: dict = {
            "model": self._model,
            "messages": [msg.to_wire() for msg in messages],
        }
        if tools:
            body["tools"] = [t.to_wire() for t in tools]
        if stream:
            body["stream"] = True
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s",
            self._model,
            len(tools) if tools else 0,
            len(messages),
            stream,
        )
        return body

    # ------------------------------------------------------------------
    # Buffered request
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> ChatCompletion:
        """Send the conversation and wait for the whole completion."""
        url = f"{self._url}/chat/completions"
        body = self._build_body(messages, tools, stream=False)

        try:
            resp = await self._http.post(url, json=body, headers=self._build_headers(False))
        except httpx.TransportError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if not resp.is_success:
            raise RemoteError(resp.status_code, resp.text)

        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodeError(f"Response is not valid JSON: {exc}") from exc

        return ChatCompletion.from_wire(data)

    # ------------------------------------------------------------------
    # Streaming request
    # ------------------------------------------------------------------

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> EventStream:
        """
        Open a streaming completion.

        Returns as soon as the response headers have arrived.  The returned
        ``EventStream`` yields events as chunks come in and must be closed
        (``async with`` or ``aclose()``) to release the connection.
        """
        url = f"{self._url}/chat/completions"
        body = self._build_body(messages, tools, stream=True)
        request = self._http.build_request(
            "POST", url, json=body, headers=self._build_headers(True)
        )

        try:
            response = await self._http.send(request, stream=True)
        except httpx.TransportError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            try:
                await response.aread()
            except httpx.TransportError as exc:
                raise TransportError(f"Reading error body failed: {exc}") from exc
            finally:
                await response.aclose()
            raise RemoteError(response.status_code, response.text)

        return EventStream(response.aiter_bytes(), close=response.aclose)
