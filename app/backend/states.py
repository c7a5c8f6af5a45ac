from enum import Enum
from typing import TypedDict, Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator


# Catalog models
class ExamType(BaseModel):
    exam_name: str = Field(..., description="Machine name of the exam, e.g. 'IELTS'")
    display_name: Optional[str] = Field(None, description="Human readable exam name")

class SkillType(BaseModel):
    skill_name: str = Field(..., description="Machine name of the skill, e.g. 'writing'")
    display_name: Optional[str] = Field(None, description="Human readable skill name")

class ExamPart(BaseModel):
    part_name: str = Field(..., description="Machine name of the part, e.g. 'task2'")
    display_name: Optional[str] = Field(None, description="Human readable part name")
    description: Optional[str] = Field(None, description="Part description")


class PromptTemplate(BaseModel):
    id: int = Field(..., description="Template row ID")
    template_name: str = Field(..., description="Human readable template name")
    version: str = Field(..., description="Published version string, e.g. '1.2'")
    description: Optional[str] = Field(None, description="What the template is for")
    is_active: bool = Field(True, description="Only active templates are resolvable")
    exam_type: ExamType
    skill_type: SkillType
    test_part: Optional[ExamPart] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PromptTemplate":
        """Build a template from a PostgREST row with embedded exam/skill/part resources."""
        exam = row.get("exam_types")
        skill = row.get("skill_types")
        part = row.get("test_parts")
        # Embedded to-one resources may arrive as single-element lists
        if isinstance(exam, list):
            exam = exam[0] if exam else None
        if isinstance(skill, list):
            skill = skill[0] if skill else None
        if isinstance(part, list):
            part = part[0] if part else None
        if not exam or not skill:
            raise ValueError(f"Template row {row.get('id')} has no exam/skill identity")
        return cls(
            id=row["id"],
            template_name=row.get("template_name") or "",
            version=str(row["version"]),
            description=row.get("description"),
            is_active=row.get("is_active", True),
            exam_type=ExamType(**exam),
            skill_type=SkillType(**skill),
            test_part=ExamPart(**part) if part else None,
        )


# Prompt composition models
class SectionRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    INSTRUCTION = "instruction"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "SectionRole":
        """Map a stored content_type onto a role; only exact lowercase names match, anything else is an instruction."""
        try:
            return cls(value)
        except ValueError:
            return cls.INSTRUCTION

class SectionContent(BaseModel):
    order_index: int = Field(..., description="Composition order within the template")
    role: SectionRole = Field(SectionRole.INSTRUCTION, description="Destination bucket of the text")
    content: str = Field("", description="Template text with {key} placeholders")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Section-local default variables")
    section_name: Optional[str] = Field(None, description="Name of the reusable prompt section")

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value):
        if isinstance(value, SectionRole):
            return value
        return SectionRole.from_value(value)

    @field_validator("content", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

    @field_validator("variables", mode="before")
    @classmethod
    def _none_to_dict(cls, value):
        return value or {}

class ComposedSections(BaseModel):
    system: str = ""
    user: str = ""
    instruction: str = ""

class BuiltPrompt(BaseModel):
    system_prompt: str = Field(..., description="Composed system-role text")
    user_prompt: str = Field(..., description="Composed user-role text")
    instructions: str = Field(..., description="Composed instruction-role text")

class PromptPair(BaseModel):
    system_prompt: str
    user_prompt: str


# Calibration models
class ScoringExample(BaseModel):
    id: Optional[int] = None
    score_level: float = Field(..., description="Band / level the example was scored at")
    example_response: str = Field(..., description="The scored response text")
    example_question: Optional[str] = Field(None, description="Question the response answered")
    score_justification: str = Field("", description="Why the response earned this level")
    criteria_breakdown: Dict[str, Any] = Field(default_factory=dict, description="Per-criterion scores or score details")
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)

    @field_validator("criteria_breakdown", mode="before")
    @classmethod
    def _none_to_dict(cls, value):
        return value or {}

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("score_justification", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

class ScoreBenchmark(BaseModel):
    id: Optional[int] = None
    criterion_name: str = Field(..., description="Scoring criterion, e.g. 'Lexical Resource'")
    score_level: float = Field(..., description="Band / level the descriptor applies to")
    description: str = Field("", description="Descriptor text for this criterion and level")
    key_features: List[str] = Field(default_factory=list)
    typical_errors: List[str] = Field(default_factory=list)
    improvement_tips: List[str] = Field(default_factory=list)

    @field_validator("key_features", "typical_errors", "improvement_tips", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

class AnalysisPrompt(BaseModel):
    template_id: int = Field(..., description="Template the prompt was composed from")
    system_prompt: str
    user_prompt: str
    examples: List[ScoringExample] = Field(default_factory=list)
    benchmarks: List[ScoreBenchmark] = Field(default_factory=list)


# Usage analytics
class UsageAnalyticsRecord(BaseModel):
    id: Optional[int] = None
    prompt_template_id: int
    usage_count: int = Field(0, ge=0)
    avg_processing_time: float = Field(0.0, ge=0)
    success_rate: float = Field(0.0, ge=0, le=100)
    last_used_at: Optional[str] = None


# Feedback-related models
class CriterionFeedback(BaseModel):
    name: str = Field(..., description="Criterion name")
    score: float = Field(..., description="Score awarded for the criterion")
    feedback: str = Field(..., description="Examiner comment for the criterion")
    suggestions: List[str] = Field(default_factory=list, description="Concrete improvement suggestions")

class AnalysisFeedback(BaseModel):
    overall_score: float = Field(..., description="Overall band / score")
    criteria: List[CriterionFeedback] = Field(default_factory=list, description="Per-criterion assessment")
    strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)
    corrected_version: Optional[str] = Field(None, description="Improved version of the response")

class AnalysisFeedbackState(TypedDict, total=False):
    exam_name: str
    skill_name: str
    part_name: str
    student_response: str
    question: Optional[str]
    template_id: Optional[int]
    system_prompt: str
    user_prompt: str
    used_fallback: bool
    feedback: Optional[Dict[str, Any]]
    processing_time_ms: float
    success: bool
    error: Optional[str]
    usage_recorded: bool
