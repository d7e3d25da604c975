from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from ...core.batch import WriteOutcome


@runtime_checkable
class BaseSink(Protocol):
    """Async batch sink interface used by the batching transport.

    A sink owns one connection to a persistent store, opened in ``start()``
    and released in ``stop()``. ``write()`` receives the documents of one
    flush and must report every failure through the returned outcome rather
    than raising, so the transport's drop-and-report policy applies uniformly.
    """

    name: str

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def write(self, documents: Sequence[dict[str, Any]]) -> WriteOutcome:
        """Write one batch of documents and describe what landed."""
        ...


__all__ = ["BaseSink", "WriteOutcome"]
