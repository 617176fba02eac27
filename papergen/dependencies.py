"""
Service construction and FastAPI dependencies

Clients are built once per process and injected; tests override these
with app.dependency_overrides.
"""
from functools import lru_cache
from fastapi import Depends

from papergen.config import settings
from papergen.database import SessionLocal
from papergen.services.gemini_service import GeminiService
from papergen.services.generation_service import GenerationService
from papergen.services.paper_service import PaperCompositionService
from papergen.services.structure_service import StructureExtractionService
from papergen.utils.cache import CacheService


@lru_cache
def get_gemini_service() -> GeminiService:
    """Raises ConfigurationError when GEMINI_API_KEY is missing"""
    return GeminiService(
        api_key=settings.GEMINI_API_KEY,
        model_name=settings.GEMINI_MODEL,
        timeout=settings.GEMINI_TIMEOUT_SECONDS,
        max_retries=settings.GEMINI_MAX_RETRIES,
    )


@lru_cache
def get_cache_service() -> CacheService:
    return CacheService(
        redis_url=settings.REDIS_URL,
        default_ttl=settings.EXTRACTION_CACHE_TTL,
        enabled=settings.CACHE_ENABLED,
    )


def get_structure_service(
    generator=Depends(get_gemini_service),
    cache: CacheService = Depends(get_cache_service),
) -> StructureExtractionService:
    return StructureExtractionService(generator=generator, cache=cache, max_cif_chars=settings.MAX_CIF_CHARS)


def get_composition_service(generator=Depends(get_gemini_service)) -> PaperCompositionService:
    return PaperCompositionService(generator=generator, max_source_chars=settings.MAX_SOURCE_CHARS)


def get_generation_service(
    composer: PaperCompositionService = Depends(get_composition_service),
) -> GenerationService:
    return GenerationService(
        composer=composer,
        session_factory=SessionLocal,
        min_source_chars=settings.MIN_SOURCE_CHARS,
        timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
        strict_marks=settings.STRICT_MARKS_VALIDATION,
    )
