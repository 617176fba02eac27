"""
Prompt construction for question paper generation
"""
import json
import logging
import re
from typing import List

from papergen.schemas.paper import GenerationConfig, GenerationRequest, QuestionType, Section

logger = logging.getLogger(__name__)

PRIOR_VERSION_EXCERPT_CHARS = 500

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n+")

_TYPE_REQUIREMENTS = {
    QuestionType.MULTIPLE_CHOICE: "ALL questions MUST be Multiple Choice with 4 options (a), (b), (c), (d) in the question text",
    QuestionType.TRUE_FALSE: "ALL questions MUST be True/False statements",
    QuestionType.FILL_BLANK: "ALL questions MUST be Fill in the Blank with a single blank marked ____",
    QuestionType.SHORT_ANSWER: "ALL questions MUST be Short Answer (2-4 sentence answers)",
    QuestionType.LONG_ANSWER: "ALL questions MUST be Long Answer requiring detailed explanations",
    QuestionType.PROBLEM_SOLVING: "ALL questions MUST be problems that require working through a solution",
    QuestionType.CONCEPTUAL: "ALL questions MUST test conceptual understanding",
    QuestionType.THEORETICAL: "ALL questions MUST be Theoretical/Descriptive (explanations, comparisons, derivations)",
    QuestionType.NUMERICAL: "ALL questions MUST be Numerical problems with specific values, calculations and units",
    QuestionType.MIXED: "Mixed: any question type may be used",
}


def collect_allowed_topics(config: GenerationConfig) -> List[str]:
    """CIF topic names plus important topics, lowercased and deduplicated"""
    candidates: List[str] = []
    if config.cif_data:
        candidates.extend(topic.name for topic in config.cif_data.topics)
    candidates.extend(note.topic for note in config.important_topics_with_notes)
    candidates.extend(config.important_topics.split(","))

    allowed: List[str] = []
    for candidate in candidates:
        topic = candidate.strip().lower()
        if topic and topic not in allowed:
            allowed.append(topic)
    return allowed


def filter_content_by_topics(text: str, allowed_topics: List[str]) -> str:
    """
    Drop paragraphs that mention none of the allowed topics

    Returns the full text when there are no allowed topics or nothing matches.
    """
    if not allowed_topics:
        return text

    paragraphs = _PARAGRAPH_SPLIT_RE.split(text)
    relevant = [p for p in paragraphs if any(topic in p.lower() for topic in allowed_topics)]
    filtered = "\n\n".join(relevant)
    if not filtered.strip():
        logger.warning("No paragraphs matched the allowed topics; using full source text")
        return text

    logger.info(
        f"Topic filtering kept {len(relevant)}/{len(paragraphs)} paragraphs "
        f"({len(text)} -> {len(filtered)} chars)"
    )
    return filtered


def _section_block(section: Section) -> str:
    difficulties = ", ".join(
        f"Q{i + 1}: {section.difficulty_for(i).value}" for i in range(section.question_count)
    )
    instructions = section.instructions or "Answer all questions from this section"
    return (
        f"{section.name}:\n"
        f"  - Question Count: EXACTLY {section.question_count} questions (NO MORE, NO LESS)\n"
        f"  - Total Marks: {section.marks} marks\n"
        f"  - Marks per Question: {section.marks_per_question:.1f} marks\n"
        f"  - Question Type: {_TYPE_REQUIREMENTS[section.question_type]}\n"
        f"  - Section Difficulty: {section.section_difficulty.value}\n"
        f"  - Per-question difficulty: {difficulties}\n"
        f"  - Instructions: {instructions}"
    )


def _json_skeleton(config: GenerationConfig) -> str:
    subject = config.cif_data.subject_name if config.cif_data else "Subject Name"
    skeleton = {
        "title": config.cif_data.subject_name if config.cif_data else (config.template_name or "Question Paper"),
        "subjectName": subject,
        "instructions": "Answer all questions. All questions carry equal marks unless specified.",
        "totalMarks": config.total_marks,
        "duration": config.duration,
        "sections": [
            {
                "name": section.name,
                "instructions": section.instructions or "Answer all questions from this section",
                "questions": [
                    {
                        "id": i + 1,
                        "text": f"A real, specific {section.difficulty_for(i).value}-level "
                                f"{section.question_type.value} question. Minimum 20 words.",
                        "marks": round(section.marks_per_question, 1),
                        "type": section.question_type.value,
                        "difficulty": section.difficulty_for(i).value,
                        "bloomLevel": "Understand",
                        "chapter": "Chapter name from content",
                        "answer": "Detailed answer" if config.generate_answer_key else None,
                    }
                    for i in range(section.question_count)
                ],
            }
            for section in config.sections
        ],
    }
    return json.dumps(skeleton, indent=2)


def build_generation_prompt(request: GenerationRequest, max_source_chars: int = 40000) -> str:
    """Assemble the full generation prompt from the request"""
    config = request.config
    allowed_topics = collect_allowed_topics(config)
    content = filter_content_by_topics(request.extracted_text, allowed_topics)[:max_source_chars]
    total_questions = sum(section.question_count for section in config.sections)

    blocks = [
        "You are an expert academic question paper generator. Create REAL, SPECIFIC "
        "examination questions based on the provided course content.",
        "DO NOT generate placeholder text such as \"Question 1 for Section A - based on the "
        "reference material\", generic prompts like \"Explain the topic\", or questions "
        "shorter than 15 words.",
    ]

    if allowed_topics:
        numbered = "\n".join(f"{i + 1}. {topic}" for i, topic in enumerate(allowed_topics))
        blocks.append(
            f"STRICT TOPIC CONSTRAINT: generate questions ONLY from these "
            f"{len(allowed_topics)} topics:\n{numbered}"
        )

    if config.important_topics_with_notes:
        notes = "\n".join(
            f"{i + 1}. \"{item.topic}\" [Priority: {item.priority}]\n"
            f"   Instructions: {item.notes or 'No specific instructions'}"
            for i, item in enumerate(config.important_topics_with_notes)
        )
        blocks.append(f"IMPORTANT TOPICS WITH SPECIAL INSTRUCTIONS:\n{notes}")

    if config.important_topics.strip():
        blocks.append(f"IMPORTANT TOPICS (emphasise these): {config.important_topics.strip()}")

    if config.important_questions:
        questions = "\n".join(
            f"{i + 1}. {q.text}" + (f" ({q.notes})" if q.notes else "")
            for i, q in enumerate(config.important_questions)
        )
        blocks.append(f"IMPORTANT QUESTIONS (include these or close variants):\n{questions}")

    blocks.append(f"COURSE CONTENT (create questions from this):\n{content}")

    blocks.append(
        "PAPER REQUIREMENTS - FOLLOW EXACTLY:\n"
        f"- Total Marks: {config.total_marks}\n"
        f"- Duration: {config.duration}\n"
        f"- Total Questions: {total_questions}"
    )
    blocks.append("SECTION BREAKDOWN:\n" + "\n\n".join(_section_block(s) for s in config.sections))

    mix = config.difficulty
    blocks.append(f"Overall difficulty mix: Easy {mix.easy}%, Medium {mix.medium}%, Hard {mix.hard}%")
    if config.blooms_taxonomy:
        blooms = ", ".join(f"{level}: {percent}%" for level, percent in config.blooms_taxonomy.items())
        blocks.append(f"Bloom's Taxonomy targets: {blooms}")

    if config.mandatory_exercises:
        blocks.append(f"Mandatory Exercises (must be included): {json.dumps(config.mandatory_exercises)}")
    elif request.detected_exercises:
        blocks.append(f"Exercises found in the material (optional): {', '.join(request.detected_exercises)}")

    if config.cif_data and config.cif_data.topics:
        weightage = "\n".join(f"- {t.name}: {t.weightage}%" for t in config.cif_data.topics)
        blocks.append(
            f"COURSE TOPICS (Subject: {config.cif_data.subject_name}). Distribute questions "
            f"roughly in proportion to weightage, but section configuration takes priority:\n{weightage}"
        )

    if config.reference_questions:
        reference = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(config.reference_questions))
        blocks.append(f"REFERENCE QUESTIONS (use as style/difficulty guides):\n{reference}")

    if request.prior_versions:
        previous = "\n".join(
            f"Version {paper.version_number or i + 1}: "
            f"{' | '.join(paper.question_texts)[:PRIOR_VERSION_EXCERPT_CHARS]}"
            for i, paper in enumerate(request.prior_versions)
        )
        blocks.append(
            f"PREVIOUSLY GENERATED QUESTIONS (DO NOT REPEAT THESE):\n{previous}\n"
            "Generate COMPLETELY NEW and DIFFERENT questions."
        )

    blocks.append(
        "Answer key: include a detailed answer for every question."
        if config.generate_answer_key
        else "Answer key: not required; set every \"answer\" to null."
    )

    blocks.append(
        "OUTPUT FORMAT - Return ONLY one valid JSON object (no markdown, no code blocks) "
        f"with exactly this structure:\n{_json_skeleton(config)}"
    )
    blocks.append(
        "Each section MUST have EXACTLY the specified number of questions, ONLY the specified "
        "question type (unless Mixed), and the exact marks per question given above."
    )

    prompt = "\n\n".join(blocks)
    logger.info(
        f"Built generation prompt: {len(config.sections)} sections, {total_questions} questions, "
        f"{len(content)} content chars, {len(request.prior_versions)} prior versions"
    )
    return prompt
