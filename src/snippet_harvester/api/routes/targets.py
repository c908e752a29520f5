"""CRUD routes for scrape targets.

Routes:
    GET    /api/targets          list all targets, newest first
    POST   /api/targets          create a target
    GET    /api/targets/{id}     target detail
    PUT    /api/targets/{id}     partial update
    DELETE /api/targets/{id}     delete a target and its results

Validation failures raised by the store (empty URL or selector, unknown
mode) surface as 422 through the application's exception handlers.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Response, status

from snippet_harvester.api.dependencies import AppContextDep
from snippet_harvester.core.schemas.targets import TargetCreate, TargetRead, TargetUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/targets", tags=["targets"])


def _not_found(target_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Target '{target_id}' not found.",
    )


@router.get("", response_model=list[TargetRead])
async def list_targets(context: AppContextDep) -> list[TargetRead]:
    targets = await context.target_store.list_all()
    return [TargetRead.model_validate(t) for t in targets]


@router.post("", response_model=TargetRead, status_code=status.HTTP_201_CREATED)
async def create_target(payload: TargetCreate, context: AppContextDep) -> TargetRead:
    target = await context.target_store.create(
        name=payload.name,
        url=payload.url,
        selector=payload.selector,
        mode=payload.mode,
        category=payload.category,
        active=payload.active,
    )
    logger.info("target_created", target_id=target.id, mode=target.mode.value)
    return TargetRead.model_validate(target)


@router.get("/{target_id}", response_model=TargetRead)
async def get_target(target_id: int, context: AppContextDep) -> TargetRead:
    target = await context.target_store.get(target_id)
    if target is None:
        raise _not_found(target_id)
    return TargetRead.model_validate(target)


@router.put("/{target_id}", response_model=TargetRead)
async def update_target(target_id: int, payload: TargetUpdate, context: AppContextDep) -> TargetRead:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    target = await context.target_store.update(target_id, **changes)
    if target is None:
        raise _not_found(target_id)
    logger.info("target_updated", target_id=target_id, fields=sorted(changes))
    return TargetRead.model_validate(target)


@router.delete("/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_target(target_id: int, context: AppContextDep) -> Response:
    if not await context.target_store.delete(target_id):
        raise _not_found(target_id)
    logger.info("target_deleted", target_id=target_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
