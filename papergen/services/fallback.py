"""
Deterministic fallback paper synthesizer

Used whenever the model is unavailable or its output cannot be used, so a
generation request always produces a structurally valid paper.
"""
import math
from datetime import datetime, timezone
from typing import List, Optional

from papergen.schemas.paper import (
    Difficulty,
    GeneratedPaper,
    GeneratedSection,
    GenerationConfig,
    Question,
    QuestionType,
    Section,
)

FALLBACK_MODEL_IDENTIFIER = "fallback"
_DIFFICULTY_CYCLE = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]


def default_sections() -> List[Section]:
    return [
        Section(name="Section A", marks=50, question_count=5, question_type=QuestionType.THEORETICAL),
        Section(name="Section B", marks=50, question_count=5, question_type=QuestionType.THEORETICAL),
    ]


def target_sections(config: GenerationConfig) -> List[Section]:
    return config.sections or default_sections()


def fallback_question_text(section_name: str, number: int) -> str:
    return f"Question {number} for {section_name} — based on reference material"


def fallback_question(
    section: Section,
    index: int,
    generate_answer_key: bool,
    marks: Optional[float] = None,
) -> Question:
    """Placeholder question number index + 1 for a section"""
    return Question(
        id=index + 1,
        text=fallback_question_text(section.name, index + 1),
        marks=marks if marks is not None else math.floor(section.marks / section.question_count),
        type=section.question_type.value,
        difficulty=_DIFFICULTY_CYCLE[index % len(_DIFFICULTY_CYCLE)],
        bloom_level="Understand",
        chapter="General",
        answer="Refer to the reference material for the model answer." if generate_answer_key else None,
    )


def paper_title(config: GenerationConfig) -> str:
    if config.cif_data and config.cif_data.subject_name:
        return config.cif_data.subject_name
    return config.template_name or "Question Paper"


def paper_subject(config: GenerationConfig) -> str:
    if config.cif_data and config.cif_data.subject_name:
        return config.cif_data.subject_name
    return "Subject"


def synthesize_fallback(config: GenerationConfig, reason: str = "") -> GeneratedPaper:
    """Build a paper that matches the configured section shape exactly"""
    sections = [
        GeneratedSection(
            name=section.name,
            instructions=section.instructions or "Answer all questions from this section",
            questions=[
                fallback_question(section, i, config.generate_answer_key)
                for i in range(section.question_count)
            ],
        )
        for section in target_sections(config)
    ]
    return GeneratedPaper(
        title=paper_title(config),
        subject_name=paper_subject(config),
        instructions="Answer all questions.",
        total_marks=sum(section.marks for section in target_sections(config)) or config.total_marks,
        duration=config.duration,
        sections=sections,
        created_at=datetime.now(timezone.utc),
        model_identifier=FALLBACK_MODEL_IDENTIFIER,
        source="fallback",
        warnings=[f"Fallback paper used: {reason}"] if reason else [],
    )
