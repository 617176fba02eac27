"""
PaperVersion model - append-only ledger of generated papers
"""
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, UniqueConstraint, Uuid, event
from sqlalchemy.orm import relationship
from papergen.database import Base, JSONType
from papergen.errors import ImmutableVersionError
from papergen.models.paper import utcnow
import uuid


class PaperVersion(Base):
    """
    Paper versions table - one immutable row per generated paper
    """
    __tablename__ = "paper_versions"
    __table_args__ = (
        UniqueConstraint("paper_id", "version_number", name="uq_paper_version_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    paper_id = Column(Uuid, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    generated_content_json = Column(JSONType, nullable=False)  # GeneratedPaper, camelCase
    generated_content_html = Column(Text, nullable=False)
    answer_key_html = Column(Text)
    ai_model = Column(String(100))
    change_reason = Column(String(20))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    paper = relationship("Paper", back_populates="versions")

    def __repr__(self):
        return f"<PaperVersion(paper_id={self.paper_id}, version_number={self.version_number})>"


@event.listens_for(PaperVersion, "before_update")
def _reject_version_update(mapper, connection, target):
    raise ImmutableVersionError(
        f"Version {target.version_number} of paper {target.paper_id} is immutable"
    )
