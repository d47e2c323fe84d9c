"""Response of an executed batch or pool launch."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Iterator

from .result import Result

if TYPE_CHECKING:
    from .query import QueryBatch


class Response:
    """Ordered queue of Results, one per submitted statement.

    Results come out in the order statements were queued; a statement's
    ``SHOW META`` result is merged into it and never appears on its own.
    """

    __slots__ = ("_results",)

    def __init__(self) -> None:
        self._results: deque[Result] = deque()

    def __repr__(self) -> str:
        return f"<Response pending={len(self._results)}>"

    async def fill(self, batch: QueryBatch) -> None:
        """Pull the results of every statement queued on ``batch``."""
        for statement in batch.statements:
            result = await batch.next_result()
            if statement.wants_meta:
                result.attach_meta(await batch.next_result())
            self._results.append(result)

    def next(self) -> Result | None:
        """Return the oldest remaining Result, ``None`` once drained."""
        if not self._results:
            return None
        return self._results.popleft()

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[Result]:
        while self._results:
            yield self._results.popleft()
