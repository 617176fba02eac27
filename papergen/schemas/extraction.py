"""
Pydantic schemas for document structuring requests and responses
"""
from enum import Enum
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Literal
from uuid import UUID


class ExtractionMode(str, Enum):
    CHAPTERS = "chapters"
    TOPICS = "topics"


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
        protected_namespaces = ()


class ExtractedTopic(CamelModel):
    """Assessable topic with its percentage weightage"""
    name: str = Field(..., min_length=5, max_length=200)
    weightage: int = Field(0, ge=0, le=100)


class CIFParseResult(CamelModel):
    """Course Information File parsing output"""
    subject_name: str = "Unknown Subject"
    topics: List[ExtractedTopic] = []
    total_topics: int = 0
    additional_info: str = ""
    source: Literal["ai", "regex", "lines"] = "regex"


class ChapterExtractionResult(CamelModel):
    """Chapter labels extracted from reference material"""
    chapters: List[str]


class PaperCreateResponse(CamelModel):
    """Response after uploading reference material"""
    paper_id: UUID
    chapters: List[str]
    exercises: List[str]
    uploaded_files: List[str]
    message: str
