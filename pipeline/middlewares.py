"""
Outbound middleware pipeline.

Handlers run in ascending `order`. Each one is called as
`await handler(event, next)` and returns a MiddlewareOutcome:

  PASS_THROUGH  — not mine, continue with the next handler
  TERMINAL      — event accepted and swallowed, stop here
  ERROR         — handler reported an error through next(error), stop here

Calling `next(error)` always stops the chain and records the error.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = structlog.get_logger()


class MiddlewareOutcome(str, Enum):
    PASS_THROUGH = "pass_through"
    TERMINAL = "terminal"
    ERROR = "error"


Handler = Callable[[Any, Callable[..., None]], Awaitable[MiddlewareOutcome]]


@dataclass
class Middleware:
    name: str
    order: int
    handler: Handler
    description: str = ""
    module: str = ""


@dataclass
class PipelineResult:
    """What happened to an event after it went through the chain."""
    swallowed_by: Optional[str] = None
    error: Optional[BaseException] = None
    visited: tuple[str, ...] = ()

    @property
    def handled(self) -> bool:
        return self.swallowed_by is not None and self.error is None


class _Continuation:
    """The `next` callable handed to a handler."""

    def __init__(self):
        self.called = False
        self.error: Optional[BaseException] = None

    def __call__(self, error: Optional[BaseException] = None):
        self.called = True
        if error is not None:
            self.error = error


class MiddlewareRegistry:
    def __init__(self):
        self._middlewares: list[Middleware] = []

    def register(
        self,
        name: str,
        order: int,
        handler: Handler,
        description: str = "",
        module: str = "",
    ) -> Middleware:
        if any(m.name == name for m in self._middlewares):
            raise ValueError(f"Middleware already registered: {name}")
        mw = Middleware(name=name, order=order, handler=handler, description=description, module=module)
        self._middlewares.append(mw)
        self._middlewares.sort(key=lambda m: m.order)
        logger.debug("middleware_registered", name=name, order=order)
        return mw

    def list(self) -> list[Middleware]:
        return list(self._middlewares)

    async def send_outgoing(self, event: Any) -> PipelineResult:
        visited: list[str] = []
        for mw in self._middlewares:
            visited.append(mw.name)
            nxt = _Continuation()
            outcome = await mw.handler(event, nxt)

            if nxt.error is not None or outcome == MiddlewareOutcome.ERROR:
                error = nxt.error or RuntimeError(f"{mw.name} rejected the event")
                logger.error("outgoing_middleware_error", middleware=mw.name, error=str(error))
                return PipelineResult(error=error, visited=tuple(visited))

            if outcome == MiddlewareOutcome.TERMINAL:
                return PipelineResult(swallowed_by=mw.name, visited=tuple(visited))

        logger.warning("outgoing_event_unhandled",
                       event_type=getattr(event, "type", None),
                       platform=getattr(event, "platform", None))
        return PipelineResult(visited=tuple(visited))
