"""Active-span tracking for implicit parenting.

The active span lives in a :class:`~contextvars.ContextVar`, so every asyncio
task (and thread) sees its own value. Concurrent root operations started in
separate tasks therefore never adopt each other's spans as parents.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from craftlocal_tracing._span import Span

_current_span: ContextVar[Span | None] = ContextVar("_current_span", default=None)


def get_current_span() -> Span | None:
    """Return the active span in the current context, or None."""
    return _current_span.get()


def set_current_span(span: Span | None) -> Token[Span | None]:
    """Set the active span and return a token for later restoration."""
    return _current_span.set(span)


def restore_current_span(
    token: Token[Span | None],
    span: Span,
    fallback: Span | None,
) -> None:
    """Undo the :func:`set_current_span` call that activated ``span``.

    Tokens only reset inside the context that created them. A span ended from
    another task hands the slot to ``fallback``, but only if it still holds
    ``span`` there.
    """
    try:
        _current_span.reset(token)
    except ValueError:
        if _current_span.get() is span:
            _current_span.set(fallback)
