"""Async chat completion client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, TypeVar

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncAzureOpenAI,
    AsyncOpenAI,
    RateLimitError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.retry import retry_base

from ..utils.text_format import minify_text, remove_sequences

__all__ = [
    "REQUEST_TIMEOUT_SECONDS",
    "ChatClient",
    "ChatClientError",
    "RequestCancelledError",
    "CancellationToken",
    "ClientSettings",
    "ConversationSession",
    "GenerationParams",
    "TransportHandle",
    "TransportKind",
    "TransportRegistry",
    "TransportTarget",
    "build_transport",
]

LOGGER = logging.getLogger(__name__)
REQUEST_TIMEOUT_SECONDS = 120.0
_DEFAULT_AZURE_API_VERSION = "2024-02-01"
_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)

T = TypeVar("T")
IncrementHandler = Callable[[str], "Awaitable[None] | None"]


class ChatClientError(RuntimeError):
    """Base class for errors raised by :class:`ChatClient`."""


class RequestCancelledError(ChatClientError):
    """Raised when the caller's cancellation signal fired before the exchange settled."""


class TransportKind(Enum):
    DIRECT = "direct"
    GATEWAY = "gateway"


class CancellationToken:
    """Cooperative cancellation signal owned by the caller.

    :meth:`cancel` must be called from the thread running the event loop.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError("Request cancelled")


@dataclass(slots=True, frozen=True)
class TransportTarget:
    """Resolved endpoint configuration a session is bound to."""

    kind: TransportKind
    api_key: str
    base_url: str | None = None
    organization: str | None = None
    deployment_id: str | None = None
    resource_name: str | None = None
    api_version: str | None = None
    proxy: str | None = None
    request_timeout: float | None = None

    @property
    def endpoint(self) -> tuple[Any, ...]:
        """Everything that identifies the endpoint except the credential."""

        return (
            self.kind,
            self.base_url,
            self.organization,
            self.deployment_id,
            self.resource_name,
            self.api_version,
            self.proxy,
            self.request_timeout,
        )


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the chat client."""

    api_key: str
    model: str
    service: str = "openai"
    base_url: str | None = None
    organization: str | None = None
    proxy: str | None = None
    azure_resource_name: str | None = None
    azure_deployment_id: str | None = None
    azure_api_version: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    minify_requests: bool = False
    characters_to_remove: Sequence[str] = ()
    request_timeout: float | None = None
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    debug_logging: bool = False

    @property
    def transport_kind(self) -> TransportKind:
        if self.service == "azure" and (self.azure_deployment_id or "").strip():
            return TransportKind.GATEWAY
        return TransportKind.DIRECT

    def transport_target(self) -> TransportTarget:
        kind = self.transport_kind
        if kind is TransportKind.GATEWAY:
            return TransportTarget(
                kind=kind,
                api_key=self.api_key,
                deployment_id=(self.azure_deployment_id or "").strip(),
                resource_name=self.azure_resource_name,
                api_version=self.azure_api_version or _DEFAULT_AZURE_API_VERSION,
                proxy=self.proxy or None,
                request_timeout=self.request_timeout,
            )
        return TransportTarget(
            kind=kind,
            api_key=self.api_key,
            base_url=self.base_url or None,
            organization=self.organization or None,
            proxy=self.proxy or None,
            request_timeout=self.request_timeout,
        )


@dataclass(slots=True)
class GenerationParams:
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop: tuple[str, ...] = ()


@dataclass(slots=True)
class ConversationSession:
    """A single outgoing exchange, permanently bound to one transport kind."""

    system_message: str
    params: GenerationParams
    transport: TransportKind
    turns: List[Dict[str, str]] = field(default_factory=list)

    def append_user_input(self, text: str) -> None:
        self.turns.append({"role": "user", "content": text})

    def messages(self) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.system_message}]
        messages.extend(dict(turn) for turn in self.turns)
        return messages

    def to_payload(self) -> Dict[str, Any]:
        params = self.params
        payload: Dict[str, Any] = {"model": params.model, "messages": self.messages()}
        optional = {
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "top_p": params.top_p,
            "frequency_penalty": params.frequency_penalty,
            "presence_penalty": params.presence_penalty,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        if params.stop:
            payload["stop"] = list(params.stop)
        return payload


@dataclass(slots=True)
class TransportHandle:
    """A reusable SDK client for one transport kind."""

    kind: TransportKind
    client: AsyncOpenAI
    endpoint: tuple[Any, ...]
    api_key: str

    def patch_credential(self, api_key: str) -> None:
        self.client.api_key = api_key
        self.api_key = api_key


TransportFactory = Callable[[TransportTarget], AsyncOpenAI]


def build_transport(target: TransportTarget) -> AsyncOpenAI:
    """Create the SDK client for ``target``."""

    options: Dict[str, Any] = {"api_key": target.api_key}
    if target.request_timeout is not None:
        options["timeout"] = target.request_timeout
    if target.proxy:
        options["http_client"] = httpx.AsyncClient(proxy=target.proxy)
    if target.kind is TransportKind.GATEWAY:
        return AsyncAzureOpenAI(
            azure_endpoint=f"https://{target.resource_name}.openai.azure.com",
            azure_deployment=target.deployment_id,
            api_version=target.api_version or _DEFAULT_AZURE_API_VERSION,
            **options,
        )
    return AsyncOpenAI(base_url=target.base_url, organization=target.organization, **options)


class TransportRegistry:
    """Owns one transport handle per transport kind.

    A handle is reused while its endpoint configuration is unchanged. A
    credential-only change patches the handle in place; any other change, or
    an explicit :meth:`invalidate`, builds a fresh handle.
    """

    def __init__(self, factory: TransportFactory | None = None) -> None:
        self._factory = factory or build_transport
        self._handles: dict[TransportKind, TransportHandle] = {}
        self._retired: list[AsyncOpenAI] = []

    def acquire(self, target: TransportTarget) -> TransportHandle:
        handle = self._handles.get(target.kind)
        if handle is not None and handle.endpoint == target.endpoint:
            if handle.api_key != target.api_key:
                LOGGER.debug("Patching credential on %s transport", target.kind.value)
                handle.patch_credential(target.api_key)
            return handle
        if handle is not None:
            # In-flight exchanges may still hold the old client; it is closed with the registry.
            self._retired.append(handle.client)
        LOGGER.debug("Building %s transport", target.kind.value)
        handle = TransportHandle(
            kind=target.kind,
            client=self._factory(target),
            endpoint=target.endpoint,
            api_key=target.api_key,
        )
        self._handles[target.kind] = handle
        return handle

    def invalidate(self, kind: TransportKind | None = None) -> None:
        kinds = [kind] if kind is not None else list(self._handles)
        for item in kinds:
            handle = self._handles.pop(item, None)
            if handle is not None:
                self._retired.append(handle.client)

    async def aclose(self) -> None:
        clients = [handle.client for handle in self._handles.values()] + self._retired
        self._handles.clear()
        self._retired = []
        for client in clients:
            close = getattr(client, "close", None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result


@dataclass(slots=True)
class _StreamProgress:
    delivered: int = 0


class ChatClient:
    """Sends one system message and one user input, single-shot or streamed.

    Every exchange races a fixed timer against the caller's cancellation
    token. Cancellation always wins and raises :class:`RequestCancelledError`.
    The timer elapsing on its own does not abort anything: the client logs a
    warning and keeps waiting for the exchange to finish while still honouring
    a later cancellation. An abandoned exchange is not torn down; its late
    result is discarded.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        registry: TransportRegistry | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._settings = settings
        self._registry = registry or TransportRegistry()
        self._timeout = timeout

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def registry(self) -> TransportRegistry:
        return self._registry

    def update_settings(self, settings: ClientSettings) -> None:
        self._settings = settings

    def prepare_input(self, user_input: str) -> str:
        """Apply minification (when enabled) and then strip the configured sequences."""

        if self._settings.minify_requests:
            user_input = minify_text(user_input)
        return remove_sequences(user_input, self._settings.characters_to_remove)

    def create_session(
        self,
        system_message: str,
        user_input: str | None = None,
        stop_sequences: Sequence[str] | None = None,
    ) -> ConversationSession:
        settings = self._settings
        kind = settings.transport_kind
        model = settings.model
        if kind is TransportKind.GATEWAY:
            model = (settings.azure_deployment_id or "").strip() or model
        session = ConversationSession(
            system_message=system_message,
            params=GenerationParams(
                model=model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                top_p=settings.top_p,
                frequency_penalty=settings.frequency_penalty,
                presence_penalty=settings.presence_penalty,
                stop=tuple(stop_sequences or ()),
            ),
            transport=kind,
        )
        if user_input is not None:
            session.append_user_input(self.prepare_input(user_input))
        return session

    async def get_response(
        self,
        system_message: str,
        user_input: str,
        stop_sequences: Sequence[str] | None = None,
        *,
        cancellation: CancellationToken,
    ) -> str:
        """Return the complete response text."""

        cancellation.raise_if_cancelled()
        session = self.create_session(system_message, user_input, stop_sequences)
        handle = self._registry.acquire(self._settings.transport_target())
        return await self._race(self._complete(handle, session), cancellation)

    async def stream_response(
        self,
        system_message: str,
        user_input: str,
        stop_sequences: Sequence[str] | None,
        handler: IncrementHandler,
        *,
        cancellation: CancellationToken,
    ) -> None:
        """Forward each response increment to ``handler`` in arrival order."""

        cancellation.raise_if_cancelled()
        session = self.create_session(system_message, user_input, stop_sequences)
        handle = self._registry.acquire(self._settings.transport_target())
        await self._race(self._stream(handle, session, handler, cancellation), cancellation)

    async def aclose(self) -> None:
        """Close every transport owned by the registry."""

        await self._registry.aclose()

    async def _complete(self, handle: TransportHandle, session: ConversationSession) -> str:
        payload = session.to_payload()
        self._log_request(session, payload, streaming=False)
        text = ""
        async for attempt in self._retrying():
            with attempt:
                response = await handle.client.chat.completions.create(**payload)
                text = _first_choice_text(response)
                break
        return text

    async def _stream(
        self,
        handle: TransportHandle,
        session: ConversationSession,
        handler: IncrementHandler,
        cancellation: CancellationToken,
    ) -> None:
        payload = session.to_payload()
        self._log_request(session, payload, streaming=True)
        progress = _StreamProgress()
        # Once an increment reached the handler a retry would deliver it twice.
        retry_policy = retry_if_exception(
            lambda exc: progress.delivered == 0 and isinstance(exc, _RETRYABLE_ERRORS)
        )
        async for attempt in self._retrying(retry_policy):
            with attempt:
                async with handle.client.chat.completions.stream(**payload) as stream:
                    async for event in stream:
                        if getattr(event, "type", None) != "content.delta":
                            continue
                        delta = getattr(event, "delta", None)
                        if not delta:
                            continue
                        if cancellation.is_cancelled:
                            LOGGER.debug("Dropping increments after cancellation")
                            return
                        await _deliver(handler, str(delta))
                        progress.delivered += 1
                break

    async def _race(self, exchange: Awaitable[T], cancellation: CancellationToken) -> T:
        task = asyncio.ensure_future(exchange)
        try:
            settled = await _first_of(task, self._timer(cancellation))
            if not settled and not cancellation.is_cancelled:
                LOGGER.warning(
                    "Chat request still pending after %.0fs; waiting for it to finish",
                    self._timeout,
                )
                await _first_of(task, cancellation.wait())
        except asyncio.CancelledError:
            task.cancel()
            raise
        if cancellation.is_cancelled:
            task.add_done_callback(_discard_result)
            raise RequestCancelledError("Request cancelled")
        return task.result()

    async def _timer(self, cancellation: CancellationToken) -> None:
        try:
            await asyncio.wait_for(cancellation.wait(), timeout=self._timeout)
        except asyncio.TimeoutError:
            return

    def _retrying(self, retry: retry_base | None = None) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry or retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    def _log_request(self, session: ConversationSession, payload: Mapping[str, Any], *, streaming: bool) -> None:
        LOGGER.debug(
            "Starting %s chat request via %s transport (model=%s)",
            "streamed" if streaming else "single-shot",
            session.transport.value,
            session.params.model,
        )
        if not self._settings.debug_logging:
            return
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)


async def _first_of(task: asyncio.Future[Any], other: Awaitable[Any]) -> bool:
    """Wait until ``task`` or ``other`` finishes; return whether ``task`` is done."""

    waiter = asyncio.ensure_future(other)
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    return task.done()


async def _deliver(handler: IncrementHandler, text: str) -> None:
    result = handler(text)
    if inspect.isawaitable(result):
        await result


def _discard_result(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("Abandoned chat request finished with %s", type(exc).__name__)


def _first_choice_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""
