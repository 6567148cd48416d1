"""Conversation formatting: turns → provider-neutral messages.

Each adapter owns a ``ChatFormatter`` configured with its role vocabulary. The
formatter assembles the logical parts of every message (turn text, then raw
file uploads) and splits the result into history and the final query. Turning
those parts into SDK objects, including any upload protocol, is left to the
adapter.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING

from chatrelay.conversation import USER_ROLE, Turn
from chatrelay.errors import FileReadError

if TYPE_CHECKING:
    from chatrelay.conversation import Conversation

logger = logging.getLogger(__name__)

_DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileUpload:
    """Raw bytes of an attached file, keyed by its path as a filename hint."""

    path: str
    data: bytes = field(repr=False)

    @property
    def name(self) -> str:
        """Base filename used as a display name by upload APIs."""
        return Path(self.path).name

    @property
    def mime_type(self) -> str:
        """MIME type guessed from the path extension."""
        guessed, _ = mimetypes.guess_type(self.path)
        return guessed or _DEFAULT_MIME_TYPE


MessagePart = str | FileUpload


@dataclass(frozen=True)
class FormattedMessage:
    """A message in the backend's two-role vocabulary."""

    role: str
    parts: tuple[MessagePart, ...]

    @property
    def text(self) -> str:
        """The turn text (always the first part)."""
        first = self.parts[0] if self.parts else ""
        return first if isinstance(first, str) else ""

    @property
    def uploads(self) -> tuple[FileUpload, ...]:
        """File parts following the text."""
        return tuple(p for p in self.parts if isinstance(p, FileUpload))


@dataclass(frozen=True)
class FormattedRequest:
    """Conversation split into prior history and the query to answer."""

    history: tuple[FormattedMessage, ...]
    query: FormattedMessage


class ChatFormatter:
    """Format conversations for a backend with a ``user``/<model role> vocabulary."""

    def __init__(self, *, model_role: str, user_role: str = USER_ROLE) -> None:
        self.user_role = user_role
        self.model_role = model_role

    def map_role(self, role: str | None) -> str:
        """Map a turn role onto the backend's two roles; non-user means model."""
        return self.user_role if role == USER_ROLE else self.model_role

    async def format_turn(self, turn: Turn) -> FormattedMessage:
        """Format a single turn, reading any attachments into memory."""
        role = self.map_role(turn.role)
        if not turn.files:
            return FormattedMessage(role=role, parts=(turn.content,))

        parts: list[MessagePart] = [turn.content]
        for path in turn.files:
            data = await read_file(path)
            parts.append(FileUpload(path=path, data=data))
        return FormattedMessage(role=role, parts=tuple(parts))

    async def format(self, conversation: Conversation) -> FormattedRequest:
        """Return ``(history, query)`` for *conversation*.

        The last formatted message is detached as the query; everything before
        it is history, in the original order. Raises ``FileReadError`` when an
        attachment cannot be read, which aborts the whole attempt.
        """
        formatted = [await self.format_turn(turn) for turn in conversation]
        if not formatted:
            raise ValueError("cannot format an empty conversation")
        query = formatted.pop()
        return FormattedRequest(history=tuple(formatted), query=query)


async def read_file(path: str) -> bytes:
    """Read a whole file off the event loop, mapping OS errors to ``FileReadError``."""
    try:
        data = await asyncio.to_thread(Path(path).read_bytes)
    except OSError as e:
        raise FileReadError(
            f"Could not read attached file {path!r}: {e.strerror or e}",
            path=path,
            hint="Check that the file exists and is readable.",
        ) from e
    logger.debug("Read attachment %s (%d bytes)", path, len(data))
    return data
