"""
Paper composition service

prompt -> Gemini -> defensive JSON parse -> validate/repair -> HTML render,
with the deterministic fallback synthesizer behind every failure point.
"""
import logging
from typing import Optional

from papergen.errors import GeneratorError
from papergen.schemas.paper import CompositionResult, GeneratedPaper, GenerationRequest
from papergen.services.fallback import synthesize_fallback
from papergen.services.paper_validator import is_usable_response, repair_paper
from papergen.services.prompt_builder import build_generation_prompt
from papergen.services.renderer import render_answer_key_html, render_paper_html
from papergen.utils.json_extract import first_success, parse_loose, parse_strict

logger = logging.getLogger(__name__)


class PaperCompositionService:
    """
    Compose a question paper for a generation request

    Args:
        generator: object with ``generate(prompt) -> str``; None means every
            request is served by the fallback synthesizer
        max_source_chars: bound on the source excerpt placed in the prompt
    """

    def __init__(self, generator=None, max_source_chars: int = 40000):
        self.generator = generator
        self.max_source_chars = max_source_chars

    @property
    def model_identifier(self) -> str:
        return getattr(self.generator, "model_name", None) or "unknown"

    def compose(self, request: GenerationRequest) -> CompositionResult:
        """
        Always returns a paper whose section and question counts match the
        configuration; the AI path and the fallback path share that shape.
        """
        paper, reason = self._generate_with_ai(request)
        if paper is None:
            logger.warning(f"Using fallback paper: {reason}")
            paper = synthesize_fallback(request.config, reason)

        paper.version_number = len(request.prior_versions) + 1
        paper.change_reason = request.change_reason
        if paper.source == "ai":
            paper.model_identifier = self.model_identifier

        return self.render(paper, request.config.generate_answer_key)

    def _generate_with_ai(self, request: GenerationRequest):
        if self.generator is None:
            return None, "no AI generator configured"

        prompt = build_generation_prompt(request, max_source_chars=self.max_source_chars)
        try:
            raw = self.generator.generate(prompt)
        except GeneratorError as e:
            return None, f"generator failed: {e.message}"

        parsed = first_success(raw, parse_strict, parse_loose)
        if not parsed.ok:
            return None, f"unparseable response ({parsed.error})"
        if not is_usable_response(parsed.value):
            return None, "response contained no usable sections"

        logger.info(f"Parsed AI response with {parsed.parser} parser")
        return repair_paper(parsed.value, request.config), None

    @staticmethod
    def render(paper: GeneratedPaper, generate_answer_key: bool) -> CompositionResult:
        html = render_paper_html(paper)
        answer_key_html: Optional[str] = render_answer_key_html(paper) if generate_answer_key else None
        return CompositionResult(paper=paper, html=html, answer_key_html=answer_key_html)
