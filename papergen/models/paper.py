"""
Paper model - one question paper project and its generation state
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, Uuid
from sqlalchemy.orm import relationship
from papergen.database import Base, JSONType
import uuid


def utcnow():
    return datetime.now(timezone.utc)


def default_generation_status():
    return {"status": "pending", "progress": 0}


class Paper(Base):
    """
    Papers table - uploaded material, configuration and status
    """
    __tablename__ = "papers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    paper_name = Column(String(255), nullable=False, default="Untitled Paper")
    subject = Column(String(255))
    config = Column(JSONType)  # GenerationConfig, camelCase
    # {chapters, textChunks, uploadedFiles, detectedExercises, cifParsed}
    extracted_data = Column(JSONType, nullable=False, default=dict)
    generation_status = Column(JSONType, nullable=False, default=default_generation_status)
    current_version_index = Column(Integer, nullable=True)
    important_questions = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    versions = relationship(
        "PaperVersion",
        back_populates="paper",
        order_by="PaperVersion.version_number",
        cascade="all, delete-orphan",
    )

    @property
    def source_text(self) -> str:
        return "".join((self.extracted_data or {}).get("textChunks") or [])

    def __repr__(self):
        return f"<Paper(id={self.id}, paper_name={self.paper_name})>"
