"""Expose ORM models at package level.

Importing the package registers every table on ``Base.metadata`` so
migrations and test fixtures can create the full schema.
"""

from .analysis_checkpoints import AnalysisCheckpoint  # noqa: F401
from .base import Base  # noqa: F401
from .model_configs import AnalysisModelConfig  # noqa: F401
