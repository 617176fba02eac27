"""
Version ledger - append-only history of generated papers

Version numbers are assigned here and nowhere else: version N is the N-th
successful append for a paper, and the paper's current version index always
points at the last one.
"""
import logging
import threading
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from papergen.errors import PaperNotFoundError, VersionConflictError, VersionNotFoundError
from papergen.models import Paper, PaperVersion
from papergen.models.paper import utcnow
from papergen.schemas.paper import ChangeReason, CompositionResult, GeneratedPaper, VersionSummary

logger = logging.getLogger(__name__)

# Striped locks: a paper always maps to the same one, and the pool never grows
_LOCK_STRIPES = tuple(threading.Lock() for _ in range(64))


def _paper_lock(paper_id: UUID) -> threading.Lock:
    return _LOCK_STRIPES[hash(paper_id) % len(_LOCK_STRIPES)]



class VersionLedger:
    """Append and read paper versions within one database session"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, paper_id: UUID, result: CompositionResult, change_reason: ChangeReason) -> PaperVersion:
        """
        Append a composed paper as the next version

        Appends for the same paper are serialized by an in-process lock and
        a row lock on the paper; the (paper_id, version_number) unique
        constraint catches anything that slips past both.

        Raises:
            PaperNotFoundError: paper does not exist
            VersionConflictError: another writer took the version number
        """
        with _paper_lock(paper_id):
            paper = self.db.query(Paper).filter(Paper.id == paper_id).with_for_update().first()
            if not paper:
                raise PaperNotFoundError(f"Paper {paper_id} not found")

            count = self.db.query(func.count(PaperVersion.id)).filter(PaperVersion.paper_id == paper_id).scalar()
            number = count + 1
            document = result.paper.model_copy(update={"version_number": number, "change_reason": change_reason})

            version = PaperVersion(
                paper_id=paper_id,
                version_number=number,
                generated_content_json=document.model_dump(mode="json", by_alias=True),
                generated_content_html=result.html,
                answer_key_html=result.answer_key_html,
                ai_model=document.model_identifier,
                change_reason=change_reason.value,
                created_at=document.created_at or utcnow(),
            )
            self.db.add(version)
            paper.current_version_index = number - 1

            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.error(f"Version conflict appending version {number} for paper {paper_id}")
                raise VersionConflictError(f"Version {number} already exists for paper {paper_id}") from e

            self.db.refresh(version)
            logger.info(f"Appended version {number} for paper {paper_id} ({change_reason.value})")
            return version

    def list_versions(self, paper_id: UUID) -> List[PaperVersion]:
        return (
            self.db.query(PaperVersion)
            .filter(PaperVersion.paper_id == paper_id)
            .order_by(PaperVersion.version_number)
            .all()
        )

    def get_version(self, paper_id: UUID, version_number: int) -> PaperVersion:
        version = (
            self.db.query(PaperVersion)
            .filter(PaperVersion.paper_id == paper_id, PaperVersion.version_number == version_number)
            .first()
        )
        if not version:
            raise VersionNotFoundError(f"Version {version_number} not found for paper {paper_id}")
        return version

    def current_version(self, paper: Paper) -> Optional[PaperVersion]:
        if paper.current_version_index is None:
            return None
        return self.get_version(paper.id, paper.current_version_index + 1)

    def prior_papers(self, paper_id: UUID) -> List[GeneratedPaper]:
        """Every stored version as a GeneratedPaper, oldest first"""
        return [to_generated_paper(v) for v in self.list_versions(paper_id)]


def to_generated_paper(version: PaperVersion) -> GeneratedPaper:
    return GeneratedPaper.model_validate(version.generated_content_json)


def to_summary(version: PaperVersion) -> VersionSummary:
    return VersionSummary(
        version_number=version.version_number,
        created_at=version.created_at,
        ai_model=version.ai_model,
        change_reason=version.change_reason,
        has_answer_key=version.answer_key_html is not None,
    )
