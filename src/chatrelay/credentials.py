"""Credential parsing and per-traversal rotation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chatrelay.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

Credential = str | None


def parse_credentials(
    raw: str | None, *, required: bool, provider: str = "provider"
) -> tuple[Credential, ...]:
    """Split a comma-separated credential string into an ordered tuple.

    Whitespace around each entry is trimmed and empty entries are dropped.
    Providers that need no key get a single ``None`` placeholder when nothing
    is configured.

    Example:
        parse_credentials("a, b ,c", required=True) == ("a", "b", "c")
    """
    keys = tuple(k.strip() for k in (raw or "").split(",") if k.strip())
    if keys:
        return keys
    if required:
        raise ConfigurationError(
            f"No API key configured for {provider}",
            hint="Provide one or more comma-separated keys in Settings.credentials.",
        )
    return (None,)


class CredentialRotator:
    """Hand out credentials one at a time, strictly in order.

    A rotator lives for one credential-loop traversal; nothing is remembered
    about failing keys once it is discarded.
    """

    def __init__(self, credentials: Iterable[Credential]) -> None:
        self._credentials = tuple(credentials)
        self._index = 0

    def __len__(self) -> int:
        return len(self._credentials)

    def __iter__(self) -> Iterator[Credential]:
        while self._index < len(self._credentials):
            credential = self._credentials[self._index]
            self._index += 1
            yield credential

    @property
    def position(self) -> int:
        """1-based position of the credential most recently handed out."""
        return self._index
