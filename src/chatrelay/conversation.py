"""Conversation types: role-tagged turns with optional file attachments."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import os
from typing import Any

from chatrelay.errors import ConversationError

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation.

    ``role`` is normally ``"user"`` or ``"assistant"``. Any other value,
    including the empty default, is treated as a non-user turn by every
    formatter.
    """

    role: str = ""
    content: str = ""
    #: Paths read in full and attached after ``content``. Upload-capable providers only.
    files: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Normalize attachments to an immutable tuple of path strings."""
        if not isinstance(self.content, str):
            raise ConversationError(
                f"Turn content must be a string, got {type(self.content).__name__}",
                hint="Pass Turn(role='user', content='...').",
            )
        files = self.files
        if isinstance(files, (str, os.PathLike)):
            files = (files,)
        object.__setattr__(self, "files", tuple(os.fspath(f) for f in files or ()))

    @property
    def has_files(self) -> bool:
        """Whether this turn carries file attachments."""
        return bool(self.files)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Turn:
        """Build a turn from a ``{"role", "content", "files"}`` mapping."""
        role = data.get("role")
        return cls(
            role=role if isinstance(role, str) else "",
            content=data.get("content") or "",
            files=tuple(data.get("files") or ()),
        )


Conversation = Sequence[Turn]


def coerce_conversation(items: Sequence[Turn | Mapping[str, Any]]) -> tuple[Turn, ...]:
    """Return *items* as a tuple of turns, validating the non-empty invariant.

    The last turn is always the query, so a conversation needs at least one.
    """
    if isinstance(items, (str, bytes)):
        raise ConversationError(
            "conversation must be a sequence of turns, not a string",
            hint="Wrap the prompt: [Turn(role='user', content=prompt)].",
        )

    turns: list[Turn] = []
    for idx, item in enumerate(items):
        if isinstance(item, Turn):
            turns.append(item)
        elif isinstance(item, Mapping):
            turns.append(Turn.from_mapping(item))
        else:
            raise ConversationError(
                f"conversation[{idx}] is a {type(item).__name__}, expected Turn or mapping"
            )

    if not turns:
        raise ConversationError(
            "conversation must contain at least one turn",
            hint="The last turn is the query to answer.",
        )
    return tuple(turns)


def has_attachments(conversation: Conversation) -> bool:
    """Return True when any turn carries file attachments."""
    return any(turn.has_files for turn in conversation)
