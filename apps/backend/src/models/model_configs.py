"""Model configuration rows: the runtime source of sampling parameters."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AnalysisModelConfig(Base):
    """Provider and sampling parameters for document analysis.

    Operators switch models by flipping `is_active`; the most recently updated
    active row wins.
    """

    __tablename__ = "analysis_model_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="openai | azure_openai | gemini"
    )
    model_name: Mapped[str] = mapped_column(String(128), nullable=False)
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.1)
    max_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=4000)
    top_p: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    streaming: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<AnalysisModelConfig(id={self.id}, provider={self.provider}, "
            f"model_name={self.model_name}, is_active={self.is_active})>"
        )
