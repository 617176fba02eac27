"""
Post-generation validator

Checks a parsed model response against the configuration and repairs it:
- question count per section (pad with fallback questions / truncate)
- ids renumbered 1..n per section
- marks defaulted to the section's per-question share
- type forced for non-Mixed sections
- difficulty normalized to Easy/Medium/Hard
- answers dropped when no answer key was requested
- placeholder-looking questions replaced

Every repair is recorded as a warning on the returned paper.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from papergen.schemas.paper import (
    GeneratedPaper,
    GeneratedSection,
    GenerationConfig,
    Question,
    QuestionType,
    Section,
    normalize_difficulty,
    normalize_question_type,
)
from papergen.services.fallback import (
    fallback_question,
    fallback_question_text,
    paper_subject,
    paper_title,
    target_sections,
)
from papergen.utils.json_extract import coerce_float, coerce_int

logger = logging.getLogger(__name__)

MARKS_TOLERANCE = 1.0

PLACEHOLDER_PATTERNS = [
    re.compile(r"question\s+\d+\s+for\s+section", re.IGNORECASE),
    re.compile(r"based\s+on\s+the\s+reference\s+material\s+provided", re.IGNORECASE),
    re.compile(r"based\s+on\s+the\s+provided\s+material", re.IGNORECASE),
    re.compile(r"explain\s+the\s+topic", re.IGNORECASE),
    re.compile(r"write\s+about\s+the\s+concept", re.IGNORECASE),
    re.compile(r"question\s+text\s+here", re.IGNORECASE),
    re.compile(r"placeholder", re.IGNORECASE),
]


def is_placeholder_question(text: str) -> bool:
    return any(pattern.search(text) for pattern in PLACEHOLDER_PATTERNS)


def _question_items(raw_section: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw_section, dict) or not isinstance(raw_section.get("questions"), list):
        return []
    items = []
    for item in raw_section["questions"]:
        if isinstance(item, str):
            item = {"text": item}
        if isinstance(item, dict) and isinstance(item.get("text"), str) and item["text"].strip():
            items.append(item)
    return items


def is_usable_response(data: Optional[dict]) -> bool:
    """A response is usable when it has at least one section with one question"""
    if not isinstance(data, dict) or not isinstance(data.get("sections"), list):
        return False
    return any(_question_items(section) for section in data["sections"])


def _match_sections(raw_sections: List[Any], configured: List[Section]) -> List[Optional[dict]]:
    """Pair each configured section with a generated one, by name then by position"""
    by_name = {}
    for raw in raw_sections:
        if isinstance(raw, dict) and isinstance(raw.get("name"), str):
            by_name.setdefault(raw["name"].strip().lower(), raw)

    matched = []
    for index, section in enumerate(configured):
        raw = by_name.get(section.name.strip().lower())
        if raw is None and index < len(raw_sections) and isinstance(raw_sections[index], dict):
            raw = raw_sections[index]
        matched.append(raw)
    return matched


class _RepairLog:
    def __init__(self):
        self.warnings: List[str] = []

    def add(self, message: str) -> None:
        logger.warning(f"Paper repair: {message}")
        self.warnings.append(message)


def _repair_question(
    item: Dict[str, Any],
    section: Section,
    index: int,
    config: GenerationConfig,
    default_marks: float,
) -> Question:
    text = " ".join(item["text"].split())

    if section.question_type is QuestionType.MIXED:
        normalized = normalize_question_type(item.get("type"))
        question_type = normalized.value if normalized else QuestionType.MIXED.value
    else:
        question_type = section.question_type.value

    answer = item.get("answer") if config.generate_answer_key else None
    return Question(
        id=index + 1,
        text=text,
        marks=coerce_float(item.get("marks")) or default_marks,
        type=question_type,
        difficulty=normalize_difficulty(item.get("difficulty")) or section.difficulty_for(index),
        bloom_level=str(item.get("bloomLevel") or item.get("bloom_level") or "Understand"),
        chapter=str(item.get("chapter") or "General"),
        answer=str(answer) if answer not in (None, "") else None,
    )


def _repair_section(
    raw: Optional[dict],
    section: Section,
    config: GenerationConfig,
    log: _RepairLog,
) -> GeneratedSection:
    default_marks = round(section.marks / section.question_count, 1)
    items = _question_items(raw)

    if raw is None:
        log.add(f"{section.name}: missing from response, filled with fallback questions")
    elif len(items) > section.question_count:
        log.add(f"{section.name}: expected {section.question_count} questions, got {len(items)}; truncated")
        items = items[:section.question_count]
    elif len(items) < section.question_count:
        log.add(f"{section.name}: expected {section.question_count} questions, got {len(items)}; padded")

    wrong_type = sum(
        1 for item in items
        if section.question_type is not QuestionType.MIXED
        and normalize_question_type(item.get("type")) not in (section.question_type, QuestionType.MIXED)
    )
    if wrong_type:
        log.add(f"{section.name}: {wrong_type} questions had the wrong type, forced to {section.question_type.value}")

    questions: List[Question] = []
    placeholders = 0
    for index in range(section.question_count):
        if index < len(items):
            question = _repair_question(items[index], section, index, config, default_marks)
            if is_placeholder_question(question.text):
                placeholders += 1
                question.text = fallback_question_text(section.name, index + 1)
        else:
            question = fallback_question(section, index, config.generate_answer_key, marks=default_marks)
        questions.append(question)

    if placeholders:
        log.add(f"{section.name}: replaced {placeholders} placeholder questions")

    section_marks = sum(q.marks for q in questions)
    if abs(section_marks - section.marks) > MARKS_TOLERANCE:
        log.add(f"{section.name}: expected {section.marks} marks, got {section_marks:.1f}")

    instructions = raw.get("instructions") if isinstance(raw, dict) else None
    return GeneratedSection(
        name=section.name,
        instructions=str(instructions or section.instructions or "Answer all questions from this section"),
        questions=questions,
    )


def repair_paper(data: dict, config: GenerationConfig) -> GeneratedPaper:
    """
    Repair a parsed model response so its shape matches the configuration

    Args:
        data: parsed JSON object from the model (must pass is_usable_response)
        config: generation configuration

    Returns:
        GeneratedPaper with source "ai" and any repair warnings
    """
    configured = target_sections(config)
    raw_sections = data.get("sections") or []
    log = _RepairLog()

    if len(raw_sections) != len(configured):
        log.add(f"expected {len(configured)} sections, got {len(raw_sections)}")

    sections = [
        _repair_section(raw, section, config, log)
        for raw, section in zip(_match_sections(raw_sections, configured), configured)
    ]

    paper = GeneratedPaper(
        title=str(data.get("title") or paper_title(config)),
        subject_name=str(data.get("subjectName") or data.get("subject_name") or paper_subject(config)),
        instructions=str(data.get("instructions") or "Answer all questions."),
        total_marks=coerce_int(data.get("totalMarks"), default=config.total_marks) or config.total_marks,
        duration=str(data.get("duration") or config.duration),
        sections=sections,
        created_at=datetime.now(timezone.utc),
        source="ai",
        warnings=log.warnings,
    )
    logger.info(
        f"Validated paper: {len(sections)} sections, "
        f"{sum(len(s.questions) for s in sections)} questions, {len(log.warnings)} repairs"
    )
    return paper
