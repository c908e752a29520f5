"""ORM models.

Importing this package registers every table on ``Base.metadata``, which is
what Alembic autogenerate and ``create_schema`` rely on.
"""

from __future__ import annotations

from snippet_harvester.core.models.base import Base
from snippet_harvester.core.models.results import ExtractionResultRecord
from snippet_harvester.core.models.settings import SettingRecord
from snippet_harvester.core.models.targets import TargetRecord

__all__ = [
    "Base",
    "ExtractionResultRecord",
    "SettingRecord",
    "TargetRecord",
]
