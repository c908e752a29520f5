"""FastAPI dependency providers.

Route handlers never import the application context directly; they receive
it (or one of its parts) through these dependencies, which read
``request.app.state.context``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from snippet_harvester.core.context import AppContext
from snippet_harvester.scraper.scheduler import Scheduler


def get_app_context(request: Request) -> AppContext:
    """Return the context built by the lifespan handler.

    Raises:
        HTTPException: 503 if the application has not finished starting.
    """
    context: AppContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is still starting up.",
        )
    return context


def get_scheduler(context: Annotated[AppContext, Depends(get_app_context)]) -> Scheduler:
    return context.scheduler


AppContextDep = Annotated[AppContext, Depends(get_app_context)]
SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]
