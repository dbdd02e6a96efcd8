"""Process-scoped cache for the reusable remote extraction template."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from ..utils.logging_utils import structured_log

LOG = logging.getLogger(__name__)

TemplateFactory = Callable[[Sequence[str]], Awaitable[str]]


def _retrieve_outcome(task: asyncio.Future[str]) -> None:
    # Every waiter may have been cancelled; the failure is already logged.
    if not task.cancelled():
        task.exception()


class SharedTemplateCache:
    """Creates the extraction template once and shares it across documents.

    Concurrent first callers await the same in-flight creation. A failed
    creation is reported to every waiter and clears the in-flight marker, so
    the next call starts a fresh attempt.
    """

    def __init__(self, factory: TemplateFactory) -> None:
        self._factory = factory
        self._template_id: str | None = None
        self._inflight: asyncio.Task[str] | None = None

    @property
    def template_id(self) -> str | None:
        return self._template_id

    async def get_or_create(self, field_names: Sequence[str]) -> str:
        if self._template_id is not None:
            return self._template_id
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._create(tuple(field_names)))
            self._inflight.add_done_callback(_retrieve_outcome)
        # Shielded so a cancelled waiter does not abort creation for the others.
        return await asyncio.shield(self._inflight)

    async def _create(self, field_names: tuple[str, ...]) -> str:
        try:
            template_id = await self._factory(field_names)
        except BaseException as exc:
            structured_log(
                LOG,
                logging.ERROR,
                "template_creation_failed",
                fields=len(field_names),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        finally:
            self._inflight = None
        self._template_id = template_id
        structured_log(
            LOG,
            logging.INFO,
            "template_created",
            template_id=template_id,
            fields=len(field_names),
        )
        return template_id

    def reset(self) -> None:
        """Forget the cached template (the remote object is left untouched)."""
        self._template_id = None


__all__ = ["SharedTemplateCache", "TemplateFactory"]
