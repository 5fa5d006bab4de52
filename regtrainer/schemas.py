from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeedbackKind(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class Source(str, Enum):
    PROVIDER = "provider"
    LOCAL = "local"


class Submission(BaseModel):
    """The three text fields a trainee submits for review."""

    model_config = ConfigDict(frozen=True)

    summary: str
    impacts: str
    structure: str = ""


class FeedbackItem(BaseModel):
    # The wire format (and the provider's JSON) calls this field "type".
    model_config = ConfigDict(populate_by_name=True)

    kind: FeedbackKind = Field(alias="type")
    text: str


class Feedback(BaseModel):
    items: List[FeedbackItem] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)


class ProfessionalExample(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    impact_analysis: str = Field(alias="impactAnalysis", min_length=1)


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score: int
    feedback: Feedback
    professional_example: ProfessionalExample = Field(alias="professionalExample")
    source: Source
    enhanced: bool = True
    message: Optional[str] = None
    # Diagnostic copy of an unparseable provider reply; never serialised.
    raw_response: Optional[str] = Field(default=None, exclude=True)

    @field_validator("score")
    @classmethod
    def clamp_score(cls, v: int) -> int:
        return max(0, min(100, v))

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
