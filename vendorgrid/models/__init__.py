"""Pydantic models for scorecards, comments, templates and users."""

from .comment import Comment, MigratedScorecard
from .master import MasterCell, MasterScorecard
from .scorecard import (
    DEFAULT_TITLE,
    LOCAL_ID_PREFIX,
    Column,
    Contact,
    Scorecard,
    ScorecardRecord,
    SubGrid,
    is_local_id,
    new_local_id,
    utc_now,
)
from .template import Template
from .user import CurrentUser, Role

__all__ = [
    "Column",
    "Comment",
    "Contact",
    "CurrentUser",
    "DEFAULT_TITLE",
    "LOCAL_ID_PREFIX",
    "MasterCell",
    "MasterScorecard",
    "MigratedScorecard",
    "Role",
    "Scorecard",
    "ScorecardRecord",
    "SubGrid",
    "Template",
    "is_local_id",
    "new_local_id",
    "utc_now",
]
