"""Coordinates outgoing chat requests for a request editor or tool window."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from ..ai.client import (
    CancellationToken,
    ChatClient,
    ChatClientError,
    ClientSettings,
    RequestCancelledError,
)
from ..completion.resolver import PlaceholderResolver
from ..services.settings import Settings
from ..utils.text_format import is_line_break, split_option_list

__all__ = ["MissingCredentialError", "RequestCoordinator", "client_settings_from"]

_LOGGER = logging.getLogger(__name__)


class MissingCredentialError(ChatClientError):
    """Raised when a request is attempted without an API key."""


def client_settings_from(settings: Settings) -> ClientSettings:
    """Project user settings onto the options the chat client understands."""

    return ClientSettings(
        api_key=settings.api_key,
        model=settings.model,
        service=settings.service,
        base_url=settings.base_url,
        organization=settings.organization,
        proxy=settings.proxy,
        azure_resource_name=settings.azure_resource_name,
        azure_deployment_id=settings.azure_deployment_id,
        azure_api_version=settings.azure_api_version,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        top_p=settings.top_p,
        frequency_penalty=settings.frequency_penalty,
        presence_penalty=settings.presence_penalty,
        minify_requests=settings.minify_requests,
        characters_to_remove=tuple(split_option_list(settings.characters_to_remove_from_requests)),
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        debug_logging=settings.debug_logging,
    )


class _LeadingBreakFilter:
    """Drops line-break-only increments until real content has arrived."""

    def __init__(self, sink: Callable[[str], None]) -> None:
        self._sink = sink
        self._started = False
        self.parts: list[str] = []

    def __call__(self, text: str) -> None:
        if not self._started:
            if not text or is_line_break(text):
                return
            self._started = True
        self.parts.append(text)
        self._sink(text)

    @property
    def text(self) -> str:
        return "".join(self.parts)


@dataclass(slots=True)
class RequestCoordinator:
    """Owns the busy/idle state around one request at a time.

    Entering the busy state disables sending and enables cancelling; leaving
    it does the opposite. A cancelled request returns quietly to idle, any
    other failure is logged and handed to ``failure_handler`` first.
    """

    client: ChatClient
    resolver: PlaceholderResolver
    settings_resolver: Callable[[], Settings]
    status_updater: Callable[[str], None]
    failure_handler: Callable[[Exception], None]
    response_finalizer: Callable[[str], None]
    increment_handler: Callable[[str], None]
    control_state_setter: Callable[[bool, bool], None]
    request_presenter: Callable[[str], None] | None = None

    _token: CancellationToken | None = field(default=None, repr=False)

    @property
    def is_busy(self) -> bool:
        return self._token is not None

    async def send_request(self, text: str, *, streaming: bool = False) -> str | None:
        """Resolve placeholders in ``text`` and send it with the configured system message.

        Requests go out single-shot unless ``streaming`` is set.
        """

        settings = self._prepare()
        if settings is None:
            return None
        if not text or not text.strip():
            self.status_updater("Nothing to send")
            return None
        token = self._enter_busy()
        if token is None:
            return None
        try:
            resolved = await asyncio.to_thread(self.resolver.resolve, text)
            response = await self._exchange(
                settings.system_message,
                resolved,
                split_option_list(settings.stop_sequences),
                token,
                streaming=streaming,
            )
        except RequestCancelledError:
            _LOGGER.debug("Request cancelled by user")
            self.status_updater("Request cancelled")
            return None
        except Exception as exc:
            _LOGGER.exception("Chat request failed")
            self.failure_handler(exc)
            return None
        finally:
            self._leave_busy(token)
        self.response_finalizer(response)
        self.status_updater("Response ready")
        return response

    async def request_with_command(self, command_text: str, selected_text: str) -> str | None:
        """Run ``command_text`` against ``selected_text`` from an editor selection.

        The command is sent as the system message and the selection as user
        input; ``single_response`` picks between one final text and a stream
        of increments.
        """

        settings = self._prepare()
        if settings is None:
            return None
        if not selected_text or not selected_text.strip():
            self.status_updater("Nothing selected")
            return None
        if self.request_presenter is not None:
            self.request_presenter(f"{command_text}\n\n{selected_text}")
        token = self._enter_busy()
        if token is None:
            return None
        try:
            response = await self._exchange(
                command_text,
                selected_text,
                split_option_list(settings.stop_sequences),
                token,
                streaming=not settings.single_response,
            )
        except RequestCancelledError:
            _LOGGER.debug("Command request cancelled by user")
            self.status_updater("Request cancelled")
            return None
        except Exception as exc:
            _LOGGER.exception("Command request failed")
            self.failure_handler(exc)
            return None
        finally:
            self._leave_busy(token)
        self.response_finalizer(response)
        self.status_updater("Response ready")
        return response

    def cancel(self) -> None:
        token = self._token
        if token is None:
            return
        self.control_state_setter(False, False)
        self.status_updater("Cancelling…")
        token.cancel()

    async def _exchange(
        self,
        system_message: str,
        user_input: str,
        stop_sequences: list[str],
        token: CancellationToken,
        *,
        streaming: bool,
    ) -> str:
        if not streaming:
            return await self.client.get_response(
                system_message, user_input, stop_sequences, cancellation=token
            )
        collector = _LeadingBreakFilter(self.increment_handler)
        await self.client.stream_response(
            system_message, user_input, stop_sequences, collector, cancellation=token
        )
        return collector.text

    def _prepare(self) -> Settings | None:
        if self.is_busy:
            _LOGGER.debug("Ignoring request while another one is in flight")
            return None
        settings = self.settings_resolver()
        if not (settings.api_key or "").strip():
            self.failure_handler(
                MissingCredentialError("An API key is required. Add one to the settings before sending.")
            )
            return None
        self.client.update_settings(client_settings_from(settings))
        return settings

    def _enter_busy(self) -> CancellationToken | None:
        if self._token is not None:
            _LOGGER.debug("Ignoring request while another one is in flight")
            return None
        token = CancellationToken()
        self._token = token
        self.control_state_setter(False, True)
        self.status_updater("Waiting for response…")
        return token

    def _leave_busy(self, token: CancellationToken) -> None:
        if self._token is token:
            self._token = None
        self.control_state_setter(True, False)
