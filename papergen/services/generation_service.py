"""
Generation orchestration and status state machine

pending → generating → completed | failed

Input checks run synchronously in the request (prepare) so callers get an
immediate error; composition and the ledger append run in a background task
(run) that always leaves a terminal status behind.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from papergen.errors import (
    EmptySourceTextError,
    GenerationInProgressError,
    GenerationTimeoutError,
    InsufficientContentError,
    InvalidConfigError,
    NoSectionsConfiguredError,
    PaperGenError,
    PaperNotFoundError,
    VersionNotFoundError,
)
from papergen.models import Paper
from papergen.schemas.paper import (
    ChangeReason,
    GenerationConfig,
    GenerationRequest,
    GenerationStatus,
    ImportantQuestion,
    StatusValue,
)
from papergen.services.paper_service import PaperCompositionService
from papergen.services.version_ledger import VersionLedger

logger = logging.getLogger(__name__)

MARKS_TOLERANCE = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_paper(db: Session, paper_id: UUID) -> Paper:
    paper = db.query(Paper).filter(Paper.id == paper_id).first()
    if not paper:
        raise PaperNotFoundError(f"Paper {paper_id} not found")
    return paper


def read_status(paper: Paper) -> GenerationStatus:
    return GenerationStatus.model_validate(paper.generation_status or {})


def write_status(db: Session, paper: Paper, **changes) -> GenerationStatus:
    """Overwrite the paper's status in place and commit"""
    status = read_status(paper).model_copy(update=changes)
    # Reassign a new dict so the JSON column is flagged dirty
    paper.generation_status = status.model_dump(mode="json", by_alias=True)
    db.commit()
    return status


class GenerationService:
    """
    Drives one generation (or regeneration) job for a paper

    Args:
        composer: PaperCompositionService used for the AI/fallback paper
        session_factory: creates the background task's own DB session
        min_source_chars: shorter source text is an insufficient-content error
        timeout_seconds: overall job deadline, measured from prepare()
        strict_marks: section marks must add up to the total (else only a warning)
    """

    def __init__(
        self,
        composer: PaperCompositionService,
        session_factory: Callable[[], Session],
        min_source_chars: int = 100,
        timeout_seconds: float = 300.0,
        strict_marks: bool = False,
    ):
        self.composer = composer
        self.session_factory = session_factory
        self.min_source_chars = min_source_chars
        self.timeout_seconds = timeout_seconds
        self.strict_marks = strict_marks

    def prepare(self, db: Session, paper_id: UUID, change_reason: ChangeReason) -> GenerationRequest:
        """
        Validate inputs and move the paper to `generating`

        Input errors mark the status `failed` with their code and are re-raised.

        Raises:
            PaperNotFoundError, GenerationInProgressError, or any input error
        """
        paper = get_paper(db, paper_id)
        status = read_status(paper)
        if status.status is StatusValue.GENERATING:
            if not self._is_stale(status):
                raise GenerationInProgressError(f"Paper {paper_id} is already being generated")
            # The previous job never reached a terminal status (e.g. process restart)
            logger.warning(f"Paper {paper_id} stuck in generating since {status.started_at}; marking it timed out")
            write_status(
                db, paper,
                status=StatusValue.FAILED, completed_at=_now(),
                error=f"Generation exceeded the {self.timeout_seconds:.0f}s deadline",
                error_code=GenerationTimeoutError.code,
            )

        write_status(
            db, paper,
            status=StatusValue.GENERATING, progress=10, started_at=_now(),
            completed_at=None, error=None, error_code=None,
        )

        try:
            request = self._build_request(db, paper, change_reason)
        except PaperGenError as e:
            logger.warning(f"Generation rejected for paper {paper_id}: [{e.code}] {e.message}")
            write_status(db, paper, status=StatusValue.FAILED, completed_at=_now(), error=e.message, error_code=e.code)
            raise

        write_status(db, paper, progress=30)
        logger.info(
            f"Generation prepared for paper {paper_id} ({change_reason.value}, "
            f"{len(request.prior_versions)} prior versions)"
        )
        return request

    def _is_stale(self, status: GenerationStatus) -> bool:
        """A `generating` status older than the job deadline belongs to a dead job"""
        if status.started_at is None:
            return True
        started_at = status.started_at
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)
        return (_now() - started_at).total_seconds() > self.timeout_seconds

    def _build_request(self, db: Session, paper: Paper, change_reason: ChangeReason) -> GenerationRequest:
        text = paper.source_text
        if not text.strip():
            raise EmptySourceTextError("No source text found. Please upload reference material first.")
        if len(text.strip()) < self.min_source_chars:
            raise InsufficientContentError(
                f"Source text is too short ({len(text.strip())} chars, minimum {self.min_source_chars})"
            )

        if not paper.config:
            raise NoSectionsConfiguredError()
        try:
            config = GenerationConfig.model_validate(paper.config)
        except ValidationError as e:
            raise InvalidConfigError(f"Stored paper configuration is invalid: {e.errors()[0]['msg']}") from e
        if not config.sections:
            raise NoSectionsConfiguredError()

        if abs(config.section_marks_total - config.total_marks) > MARKS_TOLERANCE:
            message = (
                f"Section marks add up to {config.section_marks_total}, "
                f"but total marks is {config.total_marks}"
            )
            if self.strict_marks:
                raise InvalidConfigError(message)
            logger.warning(f"Paper {paper.id}: {message}")

        if not config.important_questions and paper.important_questions:
            config.important_questions = [ImportantQuestion.model_validate(q) for q in paper.important_questions]

        prior_versions = VersionLedger(db).prior_papers(paper.id)
        if change_reason is ChangeReason.REGENERATION and not prior_versions:
            raise VersionNotFoundError("No existing version to regenerate. Generate the paper first.")

        return GenerationRequest(
            extracted_text=text,
            config=config,
            prior_versions=prior_versions,
            detected_exercises=(paper.extracted_data or {}).get("detectedExercises") or [],
            change_reason=change_reason,
        )

    def deadline(self) -> float:
        return time.monotonic() + self.timeout_seconds

    def run(self, paper_id: UUID, request: GenerationRequest, deadline: Optional[float] = None) -> None:
        """
        Compose, append to the ledger and mark the job completed

        Runs as a background task; every exit path writes a terminal status.
        """
        db = self.session_factory()
        try:
            result = self.composer.compose(request)
            write_status(db, get_paper(db, paper_id), progress=80)

            if deadline is not None and time.monotonic() > deadline:
                raise GenerationTimeoutError(
                    f"Generation exceeded the {self.timeout_seconds:.0f}s deadline"
                )

            version = VersionLedger(db).append(paper_id, result, request.change_reason)
            write_status(
                db, get_paper(db, paper_id),
                status=StatusValue.COMPLETED, progress=100, completed_at=_now(),
            )
            logger.info(
                f"Generation completed for paper {paper_id}: version {version.version_number} "
                f"({result.paper.source})"
            )

        except PaperGenError as e:
            db.rollback()
            logger.error(f"Generation failed for paper {paper_id}: [{e.code}] {e.message}")
            self._mark_failed(db, paper_id, e.message, e.code)
        except Exception as e:
            db.rollback()
            logger.error(f"Unexpected error generating paper {paper_id}: {str(e)}", exc_info=True)
            self._mark_failed(db, paper_id, f"Internal error: {str(e)}", "internal_error")
        finally:
            db.close()

    @staticmethod
    def _mark_failed(db: Session, paper_id: UUID, message: str, code: str) -> None:
        paper = db.query(Paper).filter(Paper.id == paper_id).first()
        if paper is None:
            return
        write_status(db, paper, status=StatusValue.FAILED, completed_at=_now(), error=message, error_code=code)
