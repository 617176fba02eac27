import json

from papergen.schemas.paper import (
    ChangeReason,
    CifData,
    Difficulty,
    GenerationConfig,
    GenerationRequest,
    ImportantTopicNote,
    Section,
)
from papergen.services.fallback import synthesize_fallback
from papergen.services.paper_service import PaperCompositionService
from papergen.services.paper_validator import is_placeholder_question, repair_paper
from papergen.services.prompt_builder import (
    build_generation_prompt,
    collect_allowed_topics,
    filter_content_by_topics,
)
from conftest import FakeGenerator


def make_request(config, text="Waves and optics reference material. " * 10, prior=None):
    return GenerationRequest(extracted_text=text, config=config, prior_versions=prior or [])


def shape(paper):
    return [(s.name, len(s.questions)) for s in paper.sections]


class TestCompose:
    def test_valid_ai_response_matches_config(self, ai_response):
        config = GenerationConfig(sections=[
            Section(name="Section A", marks=20, question_count=4, question_type="Theoretical"),
            Section(name="Section B", marks=30, question_count=3, question_type="Theoretical"),
        ])
        generator = FakeGenerator([ai_response([("Section A", 4, 20), ("Section B", 3, 30)])])
        result = PaperCompositionService(generator).compose(make_request(config))

        paper = result.paper
        assert paper.source == "ai"
        assert shape(paper) == [("Section A", 4), ("Section B", 3)]
        assert [q.id for q in paper.sections[1].questions] == [1, 2, 3]
        assert paper.model_identifier == "fake-gemini"
        assert paper.version_number == 1
        assert paper.warnings == []
        assert "*** END OF PAPER ***" in result.html
        assert result.answer_key_html is None

    def test_invalid_json_uses_fallback(self, config):
        result = PaperCompositionService(FakeGenerator(["{not valid json"])).compose(make_request(config))

        paper = result.paper
        assert paper.source == "fallback"
        assert len(paper.sections) == 1
        questions = paper.sections[0].questions
        assert len(questions) == 5
        assert all(q.marks == 10 for q in questions)
        assert questions[0].text == "Question 1 for Section A — based on reference material"
        assert [q.difficulty for q in questions[:4]] == [
            Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD, Difficulty.EASY,
        ]
        assert all(q.answer is None for q in questions)

    def test_raising_generator_uses_fallback_with_same_shape(self, config, failing_generator):
        paper = PaperCompositionService(failing_generator).compose(make_request(config)).paper
        assert paper.source == "fallback"
        assert shape(paper) == [("Section A", 5)]
        assert "503" in paper.warnings[0]

    def test_no_generator_uses_fallback(self, config):
        paper = PaperCompositionService(None).compose(make_request(config)).paper
        assert paper.source == "fallback"
        assert paper.model_identifier == "fallback"

    def test_response_without_sections_uses_fallback(self, config):
        generator = FakeGenerator([json.dumps({"title": "X", "sections": []})])
        assert PaperCompositionService(generator).compose(make_request(config)).paper.source == "fallback"

    def test_answer_key_rendered_when_requested(self, ai_response):
        config = GenerationConfig(
            generate_answer_key=True,
            sections=[Section(name="Section A", marks=10, question_count=2)],
        )
        generator = FakeGenerator([ai_response([("Section A", 2, 10)], answer="Constructive interference")])
        result = PaperCompositionService(generator).compose(make_request(config))
        assert result.answer_key_html is not None
        assert "Constructive interference" in result.answer_key_html
        assert "CONFIDENTIAL - FOR EVALUATOR USE ONLY" in result.answer_key_html

    def test_version_number_follows_prior_versions(self, config):
        prior = [synthesize_fallback(config), synthesize_fallback(config)]
        request = GenerationRequest(
            extracted_text="text " * 50, config=config, prior_versions=prior,
            change_reason=ChangeReason.REGENERATION,
        )
        paper = PaperCompositionService(None).compose(request).paper
        assert paper.version_number == 3
        assert paper.change_reason is ChangeReason.REGENERATION

    def test_html_escapes_model_text(self, config, ai_paper):
        data = ai_paper([("Section A", 5, 50)])
        data["sections"][0]["questions"][0]["text"] = "Prove that <script>alert(1)</script> a < b for all waves in a medium."
        result = PaperCompositionService(FakeGenerator([json.dumps(data)])).compose(make_request(config))
        assert "<script>" not in result.html
        assert "&lt;script&gt;" in result.html


class TestRepair:
    def test_pads_and_truncates_question_counts(self, ai_paper):
        config = GenerationConfig(sections=[
            Section(name="Section A", marks=50, question_count=5),
            Section(name="Section B", marks=20, question_count=2),
        ])
        paper = repair_paper(ai_paper([("Section A", 3, 30), ("Section B", 4, 20)]), config)

        assert shape(paper) == [("Section A", 5), ("Section B", 2)]
        padded = paper.sections[0].questions[3]
        assert padded.text == "Question 4 for Section A — based on reference material"
        assert padded.marks == 10.0
        assert any("padded" in w for w in paper.warnings)
        assert any("truncated" in w for w in paper.warnings)

    def test_forces_type_and_normalizes_fields(self, ai_paper):
        data = ai_paper([("Section A", 2, 10)])
        first, second = data["sections"][0]["questions"]
        first.update(type="Short Answer", difficulty="hard", marks=None, id=9)
        second.update(difficulty="impossible")
        config = GenerationConfig(sections=[Section(
            name="Section A", marks=10, question_count=2, question_type="Numerical",
            question_difficulties=["Easy", "Easy"],
        )])

        questions = repair_paper(data, config).sections[0].questions
        assert [q.type for q in questions] == ["Numerical", "Numerical"]
        assert [q.id for q in questions] == [1, 2]
        assert questions[0].difficulty is Difficulty.HARD
        assert questions[1].difficulty is Difficulty.EASY
        assert questions[0].marks == 5.0

    def test_mixed_sections_keep_model_types(self, ai_paper):
        data = ai_paper([("Section A", 2, 10)])
        data["sections"][0]["questions"][0]["type"] = "MCQ"
        config = GenerationConfig(sections=[Section(name="Section A", marks=10, question_count=2, question_type="Mixed")])
        questions = repair_paper(data, config).sections[0].questions
        assert [q.type for q in questions] == ["Multiple Choice", "Theoretical"]

    def test_answers_dropped_without_answer_key(self, ai_paper):
        config = GenerationConfig(sections=[Section(name="Section A", marks=10, question_count=2)])
        paper = repair_paper(ai_paper([("Section A", 2, 10)], answer="Leaked answer"), config)
        assert all(q.answer is None for q in paper.sections[0].questions)

    def test_placeholder_questions_replaced_and_counted(self, ai_paper):
        data = ai_paper([("Section A", 2, 10)])
        data["sections"][0]["questions"][1]["text"] = "Question 2 for Section A - Based on the reference material provided"
        config = GenerationConfig(sections=[Section(name="Section A", marks=10, question_count=2)])
        paper = repair_paper(data, config)
        assert paper.sections[0].questions[1].text == "Question 2 for Section A — based on reference material"
        assert any("replaced 1 placeholder" in w for w in paper.warnings)

    def test_sections_matched_by_name(self, ai_paper):
        config = GenerationConfig(sections=[
            Section(name="Part A", marks=10, question_count=1),
            Section(name="Part B", marks=10, question_count=1),
        ])
        data = ai_paper([("Part B", 1, 10), ("Part A", 1, 10)])
        data["sections"][0]["questions"][0]["text"] = "Describe the second part of the syllabus on optics in detail with diagrams."
        paper = repair_paper(data, config)
        assert paper.sections[1].questions[0].text.startswith("Describe the second part")

    def test_marks_mismatch_recorded(self, ai_paper):
        data = ai_paper([("Section A", 2, 10)])
        for question in data["sections"][0]["questions"]:
            question["marks"] = 20
        config = GenerationConfig(sections=[Section(name="Section A", marks=10, question_count=2)])
        assert any("expected 10 marks" in w for w in repair_paper(data, config).warnings)

    def test_placeholder_detection(self):
        assert is_placeholder_question("Question 1 for Section A - based on the reference material provided")
        assert is_placeholder_question("[PLACEHOLDER] question text here")
        assert not is_placeholder_question("Derive the lens maker's formula for a thin convex lens.")


class TestFallback:
    def test_default_sections_when_none_configured(self):
        paper = synthesize_fallback(GenerationConfig())
        assert shape(paper) == [("Section A", 5), ("Section B", 5)]
        assert all(q.marks == 10 for s in paper.sections for q in s.questions)
        assert all(q.bloom_level == "Understand" for s in paper.sections for q in s.questions)
        assert paper.total_marks == 100

    def test_marks_are_floored(self):
        config = GenerationConfig(
            generate_answer_key=True,
            sections=[Section(name="Section A", marks=10, question_count=3)],
        )
        questions = synthesize_fallback(config).sections[0].questions
        assert [q.marks for q in questions] == [3, 3, 3]
        assert all(q.answer for q in questions)


class TestPrompt:
    def test_allowed_topics_from_cif_and_important_topics(self):
        config = GenerationConfig(
            cif_data=CifData(subject_name="Physics", topics=[{"name": "Wave Optics", "weightage": 60}]),
            important_topics="Lasers, wave optics",
            important_topics_with_notes=[ImportantTopicNote(topic="Polarization", notes="derivations")],
        )
        assert collect_allowed_topics(config) == ["wave optics", "polarization", "lasers"]

    def test_filter_content_by_topics(self):
        text = "Lasers emit coherent light.\n\nThermodynamics is unrelated.\n\nLASER safety rules."
        assert filter_content_by_topics(text, ["laser"]) == "Lasers emit coherent light.\n\nLASER safety rules."
        assert filter_content_by_topics(text, ["quantum"]) == text
        assert filter_content_by_topics(text, []) == text

    def test_prompt_contains_requirements_and_prior_questions(self, config):
        config.mandatory_exercises = ["Exercise 2.1"]
        config.blooms_taxonomy = {"Remember": 20, "Apply": 80}
        prior = [synthesize_fallback(config).model_copy(update={"version_number": 1})]
        prompt = build_generation_prompt(make_request(config, prior=prior))

        assert "EXACTLY 5 questions" in prompt
        assert "Marks per Question: 10.0 marks" in prompt
        assert "Q1: Medium" in prompt
        assert "Exercise 2.1" in prompt
        assert "Remember: 20%" in prompt
        assert "DO NOT REPEAT" in prompt
        assert "Version 1: Question 1 for Section A" in prompt
        assert 'set every "answer" to null' in prompt

    def test_source_excerpt_truncated(self, config):
        prompt = build_generation_prompt(make_request(config, text="Z" * 500), max_source_chars=100)
        assert "Z" * 100 in prompt
        assert "Z" * 101 not in prompt
