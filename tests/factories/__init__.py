"""Factory Boy factories for test data generation.

Available factories
-------------------
TargetFactory          active static Target value
DynamicTargetFactory   active dynamic Target value
TargetPayloadFactory   request body dict for ``POST /api/targets``
"""

from __future__ import annotations

from tests.factories.targets import DynamicTargetFactory, TargetFactory, TargetPayloadFactory

__all__ = [
    "DynamicTargetFactory",
    "TargetFactory",
    "TargetPayloadFactory",
]
