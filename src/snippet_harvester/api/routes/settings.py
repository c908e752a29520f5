"""Configuration surface routes.

``PUT /api/settings`` validates the merged policy, persists it, and then
reconfigures the live scheduler.  A batch already running keeps the policy
it started with.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from snippet_harvester.api.dependencies import AppContextDep
from snippet_harvester.core.context import AppContext
from snippet_harvester.core.schemas.settings import SettingsRead, SettingsUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _read(context: AppContext) -> SettingsRead:
    return SettingsRead.from_policy(
        context.scheduler.policy,
        timezone=context.settings.timezone,
        next_fire_at=context.scheduler.upcoming_fire(),
    )


@router.get("", response_model=SettingsRead)
async def get_settings_values(context: AppContextDep) -> SettingsRead:
    return _read(context)


@router.put("", response_model=SettingsRead)
async def update_settings_values(payload: SettingsUpdate, context: AppContextDep) -> SettingsRead:
    policy = payload.apply(context.scheduler.policy)
    await context.settings_store.save_policy(policy)
    context.scheduler.reconfigure(policy)
    logger.info("settings_updated", fields=sorted(payload.model_dump(exclude_none=True)))
    return _read(context)
