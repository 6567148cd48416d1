"""Gemini provider implementation (google-genai chats API)."""

from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import TYPE_CHECKING, Any

from chatrelay.errors import ConfigurationError, TransportError
from chatrelay.formatting import ChatFormatter, FileUpload
from chatrelay.providers._errors import wrap_provider_error
from chatrelay.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chatrelay.formatting import FormattedMessage, MessagePart
    from chatrelay.providers.models import ProviderRequest

logger = logging.getLogger(__name__)

# Files above this size go through the Files API instead of inline bytes.
INLINE_UPLOAD_LIMIT_BYTES = 16 * 1024 * 1024

_PERMISSIVE_CATEGORIES = (
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class GeminiProvider:
    """Google Gemini provider with multi-part (file) messages and streaming."""

    name = "gemini"

    def __init__(
        self,
        *,
        inline_limit_bytes: int = INLINE_UPLOAD_LIMIT_BYTES,
        upload_timeout_s: float = 300.0,
    ) -> None:
        self.inline_limit_bytes = inline_limit_bytes
        self.upload_timeout_s = upload_timeout_s
        self._formatter = ChatFormatter(model_role="model")

    @property
    def formatter(self) -> ChatFormatter:
        """Formatter using Gemini's ``user``/``model`` roles."""
        return self._formatter

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(streaming=True, uploads=True)

    def _create_client(self, credential: str | None) -> Any:
        """Create a client bound to one API key."""
        try:
            from google import genai
        except ImportError as e:
            raise ConfigurationError(
                "google-genai package not installed",
                hint="uv pip install google-genai",
            ) from e
        return genai.Client(api_key=credential)

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        """Send the query on a fresh chat and return the full answer."""
        client = self._create_client(credential)
        try:
            chat, query = await self._open_chat(client, request)
            response = await chat.send_message(query)
            return _response_text(response)
        except asyncio.CancelledError:
            raise
        except (ConfigurationError, TransportError):
            raise
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, phase="generate", message="Gemini generate failed"
            ) from e
        finally:
            await _close_client(client)

    async def stream(
        self, request: ProviderRequest, *, credential: str | None
    ) -> AsyncIterator[str]:
        """Send the query on a fresh chat and yield text deltas."""
        client = self._create_client(credential)
        try:
            chat, query = await self._open_chat(client, request)
            async for chunk in await chat.send_message_stream(query):
                text = _response_text(chunk)
                if text:
                    yield text
        except asyncio.CancelledError:
            raise
        except (ConfigurationError, TransportError):
            raise
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, phase="stream", message="Gemini stream failed"
            ) from e
        finally:
            await _close_client(client)

    async def _open_chat(
        self, client: Any, request: ProviderRequest
    ) -> tuple[Any, list[Any]]:
        """Create a chat seeded with history; return it with the query parts."""
        history = [await self._to_content(client, m) for m in request.history]
        query = await self._to_parts(client, request.query)
        chat = client.aio.chats.create(
            model=request.model,
            config=self._build_config(request),
            history=history,
        )
        return chat, query

    def _build_config(self, request: ProviderRequest) -> Any:
        """Generation config with the most lenient safety thresholds."""
        from google.genai import types

        return types.GenerateContentConfig(
            max_output_tokens=request.max_output_tokens,
            temperature=request.effective_temperature,
            safety_settings=[
                types.SafetySetting(
                    category=getattr(types.HarmCategory, category),
                    threshold=types.HarmBlockThreshold.BLOCK_NONE,
                )
                for category in _PERMISSIVE_CATEGORIES
            ],
        )

    async def _to_content(self, client: Any, message: FormattedMessage) -> Any:
        from google.genai import types

        return types.Content(
            role=message.role, parts=await self._to_parts(client, message)
        )

    async def _to_parts(self, client: Any, message: FormattedMessage) -> list[Any]:
        """Convert logical parts to SDK parts, uploading large files."""
        parts: list[MessagePart] = list(message.parts)
        if message.uploads and not message.text:
            # Gemini rejects empty text parts next to file data.
            parts = list(message.uploads)
        return [await self._to_part(client, p) for p in parts]

    async def _to_part(self, client: Any, part: MessagePart) -> Any:
        from google.genai import types

        if not isinstance(part, FileUpload):
            return types.Part.from_text(text=part)
        if len(part.data) <= self.inline_limit_bytes:
            return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
        uri = await self._upload(client, part)
        return types.Part.from_uri(file_uri=uri, mime_type=part.mime_type)

    async def _upload(self, client: Any, upload: FileUpload) -> str:
        """Upload a file through the Files API and return its URI."""
        from google.genai import types

        logger.debug(
            "Uploading %s (%d bytes) via Files API", upload.name, len(upload.data)
        )
        try:
            result = await client.aio.files.upload(
                file=io.BytesIO(upload.data),
                config=types.UploadFileConfig(
                    mime_type=upload.mime_type, display_name=upload.name
                ),
            )

            file_name = getattr(result, "name", None)
            if not isinstance(file_name, str) or not file_name:
                raise TransportError("Gemini upload did not return a file name")

            state = _file_state_name(result)
            if state == "FAILED":
                raise TransportError(
                    f"File processing failed: {_file_error_message(result)}"
                )
            if state != "ACTIVE":
                result = await self._wait_for_file_active(client, file_name)

            file_uri = getattr(result, "uri", None)
            if not isinstance(file_uri, str) or not file_uri:
                raise TransportError("Gemini upload did not return a file uri")
            return file_uri
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, phase="upload", message="Gemini upload failed"
            ) from e

    async def _wait_for_file_active(
        self,
        client: Any,
        file_name: str,
        *,
        poll_interval: float = 2.0,
    ) -> Any:
        """Poll file status until it becomes ACTIVE or errors out."""
        deadline = time.monotonic() + self.upload_timeout_s
        last_state = "STATE_UNSPECIFIED"

        while time.monotonic() < deadline:
            file_obj = await client.aio.files.get(name=file_name)
            state = _file_state_name(file_obj)
            last_state = state

            if state == "ACTIVE":
                return file_obj
            if state == "FAILED":
                raise TransportError(
                    f"File processing failed: {_file_error_message(file_obj)}"
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval, remaining))

        raise TransportError(
            "File did not become active within "
            f"{self.upload_timeout_s}s (stuck in {last_state})",
            retryable=True,
        )


def _response_text(response: Any) -> str:
    """Read ``.text`` from a response or stream chunk; empty when absent."""
    try:
        return response.text or ""
    except (AttributeError, TypeError, ValueError):
        return ""


def _file_state_name(file_obj: Any) -> str:
    """Extract a stable string state from Gemini file objects."""
    state = getattr(file_obj, "state", None)
    if isinstance(state, str) and state:
        return state

    for attr in ("name", "value"):
        value = getattr(state, attr, None)
        if isinstance(value, str) and value:
            return value

    return "STATE_UNSPECIFIED"


def _file_error_message(file_obj: Any) -> str:
    """Extract a human-readable processing error message."""
    error = getattr(file_obj, "error", None)
    if isinstance(error, str) and error:
        return error

    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message

    return "Unknown error"


async def _close_client(client: Any) -> None:
    """Release the client's async transport, if the SDK exposes one."""
    aio = getattr(client, "aio", None)
    aclose = getattr(aio, "aclose", None)
    if not callable(aclose):
        return
    try:
        await aclose()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        # Cleanup should never mask the primary outcome.
        logger.warning("Gemini client cleanup failed: %s", exc)
