"""HTTP chat transport implementation.

This module provides the httpx implementation of the ChatTransport
interface. Requests are sent as a JSON POST; the response is either a
single JSON document or a Server-Sent-Event stream that is reassembled
into complete lines across arbitrarily sized network reads.

Features:
- Streaming (SSE) and non-streaming (JSON) responses
- Line reassembly with a carry-over buffer, flushed at stream end
- Cooperative abort that ends in-flight reads quietly
- OpenTelemetry tracing and metrics
"""

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator

import httpx
from opentelemetry import trace

from copilot_core.application.services.stream_parser import parse_line
from copilot_core.application.transport import (
    ChatRequest,
    ChatResponse,
    ChatTransport,
    TransportConfig,
    TransportConnectionError,
    TransportHttpError,
    TransportProtocolError,
    TransportResult,
    TransportTimeoutError,
)
from copilot_core.domain.models import StreamChunk
from copilot_core.observability import chat_stream_chunks

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class HttpChatTransport(ChatTransport):
    """HTTP implementation of the chat transport.

    Usage:
        transport = HttpChatTransport(TransportConfig(url="http://localhost:3000/api/chat"))
        result = await transport.send(ChatRequest(messages=[...]))
        async for chunk in result:
            ...
        await transport.close()

    An ``httpx.AsyncClient`` may be injected (e.g. one built on
    ``httpx.MockTransport``); otherwise one is created lazily and owned by
    the transport.
    """

    def __init__(self, config: TransportConfig, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the transport.

        Args:
            config: Transport configuration
            client: Optional pre-configured HTTP client
        """
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._response: httpx.Response | None = None
        self._aborted = False
        self._streaming = False
        self._close_task: asyncio.Task | None = None

    @property
    def config(self) -> TransportConfig:
        return self._config

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._config.timeout)
            self._owns_client = True
        return self._client

    async def send(self, request: ChatRequest) -> TransportResult:
        """Send a chat request to the runtime.

        Args:
            request: The chat request

        Returns:
            A ChatResponse for JSON responses, otherwise an async iterator of chunks

        Raises:
            TransportHttpError: On a non-2xx status
            TransportConnectionError: If the runtime cannot be reached
            TransportTimeoutError: If the runtime does not answer in time
        """
        self._aborted = False
        client = await self._get_client()

        body = request.to_wire()
        body["streaming"] = self._config.streaming
        headers = {"Content-Type": "application/json", **self._config.headers}

        with tracer.start_as_current_span("chat_transport.send") as span:
            span.set_attribute("chat.url", self._config.url)
            span.set_attribute("chat.message_count", len(request.messages))
            span.set_attribute("chat.tool_count", len(request.tools or []))
            span.set_attribute("chat.streaming", self._config.streaming)

            logger.debug(f"Sending chat request: messages={len(request.messages)}, tools={len(request.tools or [])}")

            try:
                http_request = client.build_request("POST", self._config.url, json=body, headers=headers)
                response = await client.send(http_request, stream=True)
            except httpx.ConnectError as e:
                span.set_attribute("error", True)
                logger.error(f"Cannot connect to chat runtime at {self._config.url}: {e}")
                raise TransportConnectionError(f"Cannot connect to chat runtime: {e}", details={"url": self._config.url}) from e
            except httpx.TimeoutException as e:
                span.set_attribute("error", True)
                logger.error(f"Chat request timed out: {e}")
                raise TransportTimeoutError(f"Chat request timed out: {e}", details={"url": self._config.url}) from e

            span.set_attribute("http.status_code", response.status_code)

            if not response.is_success:
                error_content = await response.aread()
                await response.aclose()
                error_text = error_content.decode("utf-8", errors="replace")
                span.set_attribute("error", True)
                logger.error(f"Chat runtime HTTP error: {response.status_code} - {error_text[:200]}")
                raise TransportHttpError(response.status_code, error_text)

            content_type = response.headers.get("content-type", "")
            if "application/json" in content_type:
                try:
                    raw = await response.aread()
                finally:
                    await response.aclose()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise TransportProtocolError(f"Invalid JSON response: {e}") from e
                if not isinstance(data, dict):
                    raise TransportProtocolError("JSON response is not an object")
                span.set_attribute("chat.response_mode", "json")
                return ChatResponse.from_dict(data)

            span.set_attribute("chat.response_mode", "stream")
            self._response = response
            self._streaming = True
            return self._iterate_stream(response)

    async def _iterate_stream(self, response: httpx.Response) -> AsyncIterator[StreamChunk]:
        """Yield chunks from an SSE body, one complete line at a time.

        Each network read may hold zero, one or many lines; the trailing
        partial line stays in the buffer until the next read or stream end.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        chunk_count = 0
        self._streaming = True
        byte_stream = response.aiter_bytes()

        try:
            while not self._aborted:
                try:
                    data = await anext(byte_stream)
                except StopAsyncIteration:
                    break
                except (httpx.HTTPError, httpx.StreamError) as e:
                    if self._aborted:
                        logger.debug("Stream read ended by abort")
                        return
                    if isinstance(e, httpx.TimeoutException):
                        raise TransportTimeoutError(f"Stream read timed out: {e}") from e
                    raise TransportConnectionError(f"Stream interrupted: {e}") from e

                buffer += decoder.decode(data)
                lines = buffer.split("\n")
                buffer = lines.pop()

                for line in lines:
                    chunk = parse_line(line)
                    if chunk is None:
                        continue
                    chunk_count += 1
                    yield chunk
                    if self._aborted:
                        logger.debug(f"Stream aborted after {chunk_count} chunks")
                        return

            if not self._aborted:
                buffer += decoder.decode(b"", final=True)
                chunk = parse_line(buffer) if buffer else None
                if chunk is not None:
                    chunk_count += 1
                    yield chunk
        finally:
            self._streaming = False
            self._response = None
            chat_stream_chunks.add(chunk_count)
            if not response.is_closed:
                await response.aclose()
            logger.debug(f"Stream finished: {chunk_count} chunks")

    def abort(self) -> None:
        """Cancel the in-flight request; pending reads end quietly."""
        self._aborted = True
        response = self._response
        if response is None or response.is_closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._close_task = loop.create_task(response.aclose())
        logger.info("Chat stream aborted")

    def is_streaming(self) -> bool:
        return self._streaming

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
