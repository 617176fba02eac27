"""
Question paper API endpoints
"""
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session
from uuid import UUID
import logging
from typing import List, Optional

from papergen.config import settings
from papergen.database import get_db
from papergen.dependencies import get_generation_service, get_structure_service
from papergen.errors import EmptySourceTextError, VersionNotFoundError
from papergen.models import Paper
from papergen.schemas.extraction import ChapterExtractionResult, CIFParseResult, PaperCreateResponse
from papergen.schemas.paper import (
    ChangeReason,
    GeneratedPaper,
    GenerateResponse,
    GenerationConfig,
    GenerationStatus,
    PaperResponse,
    VersionSummary,
)
from papergen.services.exercise_service import detect_exercises, merge_exercises
from papergen.services.generation_service import GenerationService, get_paper, read_status
from papergen.services.structure_service import StructureExtractionService, extract_chapters
from papergen.services.text_extractor import combine_files, extract_text, resolve_mime_type
from papergen.services.version_ledger import VersionLedger, to_generated_paper, to_summary

router = APIRouter(prefix="/api/papers", tags=["papers"])
logger = logging.getLogger(__name__)


async def _read_upload(file: UploadFile) -> str:
    content = await file.read()
    # PDF and DOCX parsing is CPU-bound; keep it off the event loop
    return await run_in_threadpool(extract_text, content, resolve_mime_type(file.filename, file.content_type))


def _paper_response(db: Session, paper: Paper) -> PaperResponse:
    ledger = VersionLedger(db)
    versions = ledger.list_versions(paper.id)
    current = ledger.current_version(paper)
    extracted = {k: v for k, v in (paper.extracted_data or {}).items() if k != "textChunks"}
    extracted["textLength"] = len(paper.source_text)
    return PaperResponse(
        paper_id=paper.id,
        paper_name=paper.paper_name,
        subject=paper.subject,
        config=paper.config,
        extracted_data=extracted,
        generation_status=read_status(paper),
        current_version_index=paper.current_version_index,
        versions=[to_summary(v) for v in versions],
        current_version=to_generated_paper(current) if current else None,
    )


@router.post("/", response_model=PaperCreateResponse, status_code=201)
async def create_paper(
    files: List[UploadFile] = File(...),
    paper_name: str = Form("Untitled Paper"),
    db: Session = Depends(get_db)
):
    """
    Upload reference material and create a paper

    - Extracts text from every PDF/DOCX/TXT file
    - Detects exercises per file
    - Extracts chapters from the combined text
    """
    if not files:
        raise HTTPException(status_code=400, detail="At least one file is required")
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files (maximum {settings.MAX_UPLOAD_FILES})"
        )

    texts = []
    exercise_groups = []
    for file in files:
        text = await _read_upload(file)
        logger.info(f"Extracted {len(text)} chars from {file.filename}")
        texts.append((file.filename, text))
        exercise_groups.append(await run_in_threadpool(detect_exercises, text))

    if not any(text.strip() for _, text in texts):
        raise EmptySourceTextError("No readable text found in the uploaded files")

    combined = combine_files(texts)
    chapters = await run_in_threadpool(extract_chapters, combined)
    exercises = merge_exercises(*exercise_groups)
    uploaded_files = [name for name, _ in texts]

    paper = Paper(
        paper_name=paper_name or "Untitled Paper",
        extracted_data={
            "chapters": chapters,
            "textChunks": [combined],
            "uploadedFiles": uploaded_files,
            "detectedExercises": exercises,
            "cifParsed": None,
        },
    )
    db.add(paper)
    db.commit()
    db.refresh(paper)

    logger.info(f"Paper created: {paper.id} ({len(uploaded_files)} files, {len(chapters)} chapters)")
    return PaperCreateResponse(
        paper_id=paper.id,
        chapters=chapters,
        exercises=exercises,
        uploaded_files=uploaded_files,
        message=f"Processed {len(uploaded_files)} file(s) successfully",
    )


@router.post("/parse-cif", response_model=CIFParseResult)
async def parse_cif(
    file: UploadFile = File(...),
    paper_id: Optional[UUID] = Form(None),
    db: Session = Depends(get_db),
    structure: StructureExtractionService = Depends(get_structure_service)
):
    """
    Parse a Course Information File into subject name and weighted topics

    When paper_id is given the result is stored on that paper.
    """
    text = await _read_upload(file)
    result = await run_in_threadpool(structure.parse_cif, text)

    if paper_id is not None:
        paper = get_paper(db, paper_id)
        paper.extracted_data = {
            **(paper.extracted_data or {}),
            "cifParsed": result.model_dump(mode="json", by_alias=True),
        }
        if result.subject_name != "Unknown Subject":
            paper.subject = result.subject_name
        db.commit()

    return result


@router.post("/extract-chapters", response_model=ChapterExtractionResult)
async def extract_chapters_from_file(
    file: UploadFile = File(...),
    structure: StructureExtractionService = Depends(get_structure_service)
):
    """Extract chapter labels from a single file"""
    text = await _read_upload(file)
    return await run_in_threadpool(structure.extract_chapters, text)


@router.put("/{paper_id}/config", response_model=PaperResponse)
def save_config(
    paper_id: UUID,
    config: GenerationConfig,
    db: Session = Depends(get_db)
):
    """Save the generation configuration for a paper"""
    paper = get_paper(db, paper_id)
    paper.config = config.model_dump(mode="json", by_alias=True)
    paper.important_questions = [q.model_dump(mode="json", by_alias=True) for q in config.important_questions]
    if config.cif_data and config.cif_data.subject_name:
        paper.subject = config.cif_data.subject_name
    db.commit()
    db.refresh(paper)

    logger.info(f"Saved config for paper {paper_id}: {len(config.sections)} sections")
    return _paper_response(db, paper)


def _start_generation(
    paper_id: UUID,
    change_reason: ChangeReason,
    background_tasks: BackgroundTasks,
    db: Session,
    generation: GenerationService,
) -> GenerateResponse:
    deadline = generation.deadline()
    request = generation.prepare(db, paper_id, change_reason)
    background_tasks.add_task(generation.run, paper_id, request, deadline)
    return GenerateResponse(
        paper_id=paper_id,
        status=read_status(get_paper(db, paper_id)),
        message=f"Paper {change_reason.value} started",
    )


@router.post("/{paper_id}/generate", response_model=GenerateResponse, status_code=202)
def generate_paper(
    paper_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    generation: GenerationService = Depends(get_generation_service)
):
    """
    Start paper generation

    Inputs are validated immediately; composition runs in the background.
    Poll /status for progress.
    """
    return _start_generation(paper_id, ChangeReason.GENERATION, background_tasks, db, generation)


@router.post("/{paper_id}/regenerate", response_model=GenerateResponse, status_code=202)
def regenerate_paper(
    paper_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    generation: GenerationService = Depends(get_generation_service)
):
    """Generate a new version that avoids the questions of all previous versions"""
    return _start_generation(paper_id, ChangeReason.REGENERATION, background_tasks, db, generation)


@router.get("/{paper_id}/status", response_model=GenerationStatus)
def get_status(paper_id: UUID, db: Session = Depends(get_db)):
    """Current generation status (polled by clients)"""
    return read_status(get_paper(db, paper_id))


@router.get("/{paper_id}", response_model=PaperResponse)
def get_paper_details(paper_id: UUID, db: Session = Depends(get_db)):
    """Paper record with version summaries and the current version"""
    return _paper_response(db, get_paper(db, paper_id))


@router.get("/{paper_id}/versions", response_model=List[VersionSummary])
def list_versions(paper_id: UUID, db: Session = Depends(get_db)):
    get_paper(db, paper_id)
    return [to_summary(v) for v in VersionLedger(db).list_versions(paper_id)]


@router.get("/{paper_id}/versions/{version_number}", response_model=GeneratedPaper)
def get_version(paper_id: UUID, version_number: int, db: Session = Depends(get_db)):
    get_paper(db, paper_id)
    return to_generated_paper(VersionLedger(db).get_version(paper_id, version_number))


@router.get("/{paper_id}/versions/{version_number}/html", response_class=HTMLResponse)
def get_version_html(paper_id: UUID, version_number: int, db: Session = Depends(get_db)):
    get_paper(db, paper_id)
    return HTMLResponse(VersionLedger(db).get_version(paper_id, version_number).generated_content_html)


@router.get("/{paper_id}/versions/{version_number}/answer-key", response_class=HTMLResponse)
def get_version_answer_key(paper_id: UUID, version_number: int, db: Session = Depends(get_db)):
    get_paper(db, paper_id)
    version = VersionLedger(db).get_version(paper_id, version_number)
    if version.answer_key_html is None:
        raise VersionNotFoundError(f"Version {version_number} was generated without an answer key")
    return HTMLResponse(version.answer_key_html)
