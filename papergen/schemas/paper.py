"""
Pydantic schemas for paper configuration, generated papers and status
"""
from datetime import datetime
from enum import Enum
from pydantic import Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from papergen.schemas.extraction import CamelModel, ExtractedTopic


class QuestionType(str, Enum):
    MIXED = "Mixed"
    MULTIPLE_CHOICE = "Multiple Choice"
    TRUE_FALSE = "True/False"
    FILL_BLANK = "Fill in the Blank"
    SHORT_ANSWER = "Short Answer"
    LONG_ANSWER = "Long Answer"
    PROBLEM_SOLVING = "Problem Solving"
    CONCEPTUAL = "Conceptual"
    THEORETICAL = "Theoretical"
    NUMERICAL = "Numerical"


# Loose spellings seen from the UI and from model output
_QUESTION_TYPE_ALIASES = {
    "mcq": QuestionType.MULTIPLE_CHOICE,
    "multiplechoice": QuestionType.MULTIPLE_CHOICE,
    "truefalse": QuestionType.TRUE_FALSE,
    "tf": QuestionType.TRUE_FALSE,
    "fillblank": QuestionType.FILL_BLANK,
    "fillintheblank": QuestionType.FILL_BLANK,
    "fillintheblanks": QuestionType.FILL_BLANK,
    "shortanswer": QuestionType.SHORT_ANSWER,
    "short": QuestionType.SHORT_ANSWER,
    "longanswer": QuestionType.LONG_ANSWER,
    "long": QuestionType.LONG_ANSWER,
    "problemsolving": QuestionType.PROBLEM_SOLVING,
    "conceptual": QuestionType.CONCEPTUAL,
    "theoretical": QuestionType.THEORETICAL,
    "theory": QuestionType.THEORETICAL,
    "numerical": QuestionType.NUMERICAL,
    "mixed": QuestionType.MIXED,
}


def normalize_question_type(value: Any) -> Optional[QuestionType]:
    """Map a free-form type label onto QuestionType, or None if unknown"""
    if isinstance(value, QuestionType):
        return value
    if not isinstance(value, str):
        return None
    key = "".join(ch for ch in value.lower() if ch.isalnum())
    return _QUESTION_TYPE_ALIASES.get(key)


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


def normalize_difficulty(value: Any) -> Optional[Difficulty]:
    if isinstance(value, Difficulty):
        return value
    if not isinstance(value, str):
        return None
    for level in Difficulty:
        if value.strip().lower() == level.value.lower():
            return level
    return None


class ChangeReason(str, Enum):
    GENERATION = "generation"
    REGENERATION = "regeneration"


class StatusValue(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class DifficultyMix(CamelModel):
    """Target percentage of questions per difficulty (should sum to ~100)"""
    easy: int = Field(30, ge=0, le=100)
    medium: int = Field(50, ge=0, le=100)
    hard: int = Field(20, ge=0, le=100)


class Section(CamelModel):
    """One configured section of the paper"""
    name: str = Field(..., min_length=1, max_length=100)
    marks: int = Field(..., ge=0)
    question_count: int = Field(..., ge=1, le=100)
    question_type: QuestionType = QuestionType.THEORETICAL
    instructions: Optional[str] = None
    section_difficulty: Difficulty = Difficulty.MEDIUM
    question_difficulties: List[Difficulty] = []

    @field_validator("question_type", mode="before")
    @classmethod
    def _coerce_question_type(cls, value):
        normalized = normalize_question_type(value)
        if normalized is None:
            raise ValueError(f"Unknown question type: {value!r}")
        return normalized

    @property
    def marks_per_question(self) -> float:
        return self.marks / self.question_count

    def difficulty_for(self, index: int) -> Difficulty:
        """Per-question difficulty, padded with the section difficulty"""
        if index < len(self.question_difficulties):
            return self.question_difficulties[index]
        return self.section_difficulty


class ImportantQuestion(CamelModel):
    text: str = Field(..., min_length=1)
    type: str = "Important"
    notes: str = ""


class ImportantTopicNote(CamelModel):
    topic: str = Field(..., min_length=1)
    notes: str = ""
    priority: Literal["High", "Medium", "Low"] = "Medium"


class CifData(CamelModel):
    subject_name: str
    topics: List[ExtractedTopic] = []


class GenerationConfig(CamelModel):
    """User-adjusted configuration consumed by paper composition"""
    template_name: Optional[str] = None
    total_marks: int = Field(100, ge=1)
    duration: str = "3 Hours"
    difficulty: DifficultyMix = DifficultyMix()
    sections: List[Section] = []
    blooms_taxonomy: Dict[str, int] = {}
    mandatory_exercises: List[str] = []
    reference_questions: List[str] = []
    important_topics: str = ""
    important_topics_with_notes: List[ImportantTopicNote] = []
    important_questions: List[ImportantQuestion] = []
    generate_answer_key: bool = False
    cif_data: Optional[CifData] = None

    @property
    def section_marks_total(self) -> int:
        return sum(section.marks for section in self.sections)


class Question(CamelModel):
    id: int = Field(..., ge=1)
    text: str
    marks: float
    type: str
    difficulty: Difficulty = Difficulty.MEDIUM
    bloom_level: str = "Understand"
    chapter: str = "General"
    answer: Optional[str] = None


class GeneratedSection(CamelModel):
    name: str
    instructions: str = ""
    questions: List[Question] = []


class GeneratedPaper(CamelModel):
    """One immutable snapshot of a generated question paper"""
    version_number: Optional[int] = None
    title: str
    subject_name: str
    instructions: str
    total_marks: int
    duration: str
    sections: List[GeneratedSection]
    created_at: Optional[datetime] = None
    model_identifier: Optional[str] = None
    change_reason: Optional[ChangeReason] = None
    source: Literal["ai", "fallback"] = "ai"
    warnings: List[str] = []

    @property
    def question_texts(self) -> List[str]:
        return [q.text for section in self.sections for q in section.questions]


class GenerationRequest(CamelModel):
    extracted_text: str
    config: GenerationConfig
    prior_versions: List[GeneratedPaper] = []
    detected_exercises: List[str] = []
    change_reason: ChangeReason = ChangeReason.GENERATION


class CompositionResult(CamelModel):
    """Structured paper plus its two rendered views"""
    paper: GeneratedPaper = Field(..., alias="json")
    html: str
    answer_key_html: Optional[str] = None


class GenerationStatus(CamelModel):
    status: StatusValue = StatusValue.PENDING
    progress: int = Field(0, ge=0, le=100)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class GenerateResponse(CamelModel):
    paper_id: UUID
    status: GenerationStatus
    message: str


class VersionSummary(CamelModel):
    version_number: int
    created_at: Optional[datetime] = None
    ai_model: Optional[str] = None
    change_reason: Optional[str] = None
    has_answer_key: bool = False


class PaperResponse(CamelModel):
    paper_id: UUID
    paper_name: str
    subject: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    extracted_data: Dict[str, Any] = {}
    generation_status: GenerationStatus
    current_version_index: Optional[int] = None
    versions: List[VersionSummary] = []
    current_version: Optional[GeneratedPaper] = None
