"""CRUD operations for analysis model configuration."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.model_configs import AnalysisModelConfig


async def get_active_model_config(db: AsyncSession) -> AnalysisModelConfig | None:
    """Return the most recently updated active model configuration, if any."""
    query = (
        select(AnalysisModelConfig)
        .where(AnalysisModelConfig.is_active.is_(True))
        .order_by(AnalysisModelConfig.updated_at.desc(), AnalysisModelConfig.id.desc())
        .limit(1)
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()
