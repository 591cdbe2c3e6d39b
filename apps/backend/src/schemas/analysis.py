"""Document analysis schemas.

`AnalysisResult` is the object the model is instructed to produce. Partial
results seen while streaming are plain dicts holding a subset of these
fields; only a finished response is validated against the full model.

Every model allows extra keys: the prompt asks for more fields than the
engine depends on and models routinely add their own.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


SCORE_CATEGORIES: tuple[str, ...] = ("Critical", "Needs Work", "Good", "Excellent")

# Key of the repeated section array; the extractor surfaces its finished
# elements one by one while the array is still open.
SECTIONS_FIELD = "resume_sections"
SECTION_NAME_FIELD = "section_name"


class SectionTip(BaseModel):
    """A concrete fix for one issue in a section."""

    issue: str
    tip: str
    example: str = ""

    model_config = ConfigDict(extra="allow")


class ResumeSection(BaseModel):
    """Assessment of one section found (or expected) in the document."""

    section_name: str = Field(..., min_length=1)
    found: bool = True
    score: int = Field(..., ge=0, le=100)
    roast: str = ""
    issues: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    tips: list[SectionTip] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class MissingSection(BaseModel):
    section_name: str
    importance: str = ""
    roast: str = ""
    recommendation: str = ""

    model_config = ConfigDict(extra="allow")


class ImprovementPotential(BaseModel):
    points_possible: int = Field(0, ge=0, le=100)
    headline: str = ""

    model_config = ConfigDict(extra="allow")


class AnalysisResult(BaseModel):
    """The full structured analysis of one document.

    `score_category` is free text because the model answers in the document's
    language; `SCORE_CATEGORIES` lists the English values it is asked for.
    """

    overall_score: int = Field(..., ge=0, le=100)
    ats_score: int = Field(..., ge=0, le=100)
    main_roast: str
    score_category: str
    improvement_potential: ImprovementPotential | None = None
    resume_sections: list[ResumeSection] = Field(default_factory=list)
    missing_sections: list[MissingSection] = Field(default_factory=list)
    good_stuff: list[dict[str, Any]] = Field(default_factory=list)
    needs_work: list[dict[str, Any]] = Field(default_factory=list)
    critical_issues: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")
