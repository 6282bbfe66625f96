"""Declarative fallback chains.

A chain is an ordered list of candidates tried one after another until the
first one produces a result. Keeping the list explicit makes the order easy
to inspect and to test on its own.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, TypeVar

C = TypeVar("C")
R = TypeVar("R")


@dataclass(frozen=True)
class QueryTemplate:
    """One free-text query against the Locatieserver ``free`` endpoint."""

    q: str
    fq: str
    rows: int
    note: str

    def params(self, fields: str) -> dict[str, str | int]:
        return {"q": self.q, "fq": self.fq, "rows": self.rows, "fl": fields}


def candidate_pairs(
    templates: Iterable[QueryTemplate], base_urls: Iterable[str]
) -> list[tuple[QueryTemplate, str]]:
    """Template-major pairs: every base URL is tried before the next template."""
    bases = list(base_urls)
    return [(template, base) for template in templates for base in bases]


async def first_success(
    candidates: Iterable[C],
    attempt: Callable[[C], Awaitable[R | None]],
) -> R | None:
    """Run ``attempt`` over candidates in order; return the first non-None result.

    Exceptions raised by ``attempt`` propagate; attempts that want to skip a
    candidate return None.
    """
    for candidate in candidates:
        result = await attempt(candidate)
        if result is not None:
            return result
    return None
