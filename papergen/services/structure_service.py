"""
Structural extraction service

Turns plain text into chapters (unweighted labels) or topics with weightage.
Topics mode asks Gemini first and falls back to a regex engine; chapters mode
is regex only. Both always return a non-empty structure for non-empty text.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Union

from papergen.errors import EmptySourceTextError, GeneratorError
from papergen.schemas.extraction import (
    ChapterExtractionResult,
    CIFParseResult,
    ExtractedTopic,
    ExtractionMode,
)
from papergen.utils.json_extract import coerce_int, first_success, parse_first_object, parse_loose

logger = logging.getLogger(__name__)

MIN_LABEL_LENGTH = 5
MAX_LABEL_LENGTH = 200
MAX_REGEX_TOPICS = 20
MAX_CHAPTERS = 50
LINE_FALLBACK_LIMIT = 10
PLACEHOLDER_CHAPTERS = ["Chapter 1", "Chapter 2", "Chapter 3"]


# ─── Exclusion filter ──────────────────────────────────────────────────────────

_TITLE_PREFIX_RE = re.compile(r"^(?:dr|prof|mr|mrs|ms|miss|sir|smt|shri)\.?\s+[A-Z]", re.IGNORECASE)
_ROLE_PREFIX_RE = re.compile(
    r"^(?:professor|lecturer|instructor|faculty|hod|dean|coordinator|course\s+coordinator|prepared\s+by|approved\s+by)\b",
    re.IGNORECASE,
)
_INSTITUTION_RE = re.compile(r"\b(?:university|institute|college|school\s+of|department\s+of)\b", re.IGNORECASE)
_TWO_WORD_NAME_RE = re.compile(r"^([A-Z][a-z]+)\.?\s+([A-Z][a-z]+)$")
_ACADEMIC_SUFFIX_RE = re.compile(
    r"(?:ics|ogy|ion|ions|ing|ry|sis|ses|ism|ure|ures|ity|ment|ments|ance|ence|als|ems|ods|ves|ers|ory|ies)$",
    re.IGNORECASE,
)
_ACADEMIC_WORDS = {
    "algebra", "calculus", "theory", "design", "analysis", "methods", "systems", "networks",
    "models", "equations", "functions", "circuits", "waves", "optics", "data", "logic",
    "matrices", "vectors", "graphs", "trees", "sets", "security", "transfer", "law", "laws",
    "energy", "motion", "heat", "light", "sound", "cells", "genetics", "ecology", "finance",
}
_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.]+")
_MONTH = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|"
    r"sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_DATE_RE = re.compile(
    r"^(?:"
    r"\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}"
    r"|\d{4}[/.\-]\d{1,2}[/.\-]\d{1,2}"
    rf"|{_MONTH}\s+\d{{1,2}}(?:st|nd|rd|th)?,?(?:\s+\d{{4}})?"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTH},?(?:\s+\d{{4}})?"
    rf"|{_MONTH},?\s+\d{{4}}"
    r")$",
    re.IGNORECASE,
)
_PLACEHOLDER_WORDS = {
    "subject", "course", "name", "title", "paper", "unit", "module", "topic", "topics",
    "chapter", "units", "syllabus", "weightage", "marks", "total", "untitled topic",
}
_PLACEHOLDER_PREFIX_RE = re.compile(r"^(?:subject|course|paper)\s*(?:name|title|code)\b", re.IGNORECASE)


def _looks_like_person_name(label: str) -> bool:
    match = _TWO_WORD_NAME_RE.match(label)
    if not match:
        return False
    words = [word.lower() for word in match.groups()]
    if any(word in _ACADEMIC_WORDS for word in words):
        return False
    return not any(_ACADEMIC_SUFFIX_RE.search(word) for word in words)


def is_excluded_label(label: str, check_person_names: bool = True) -> bool:
    """
    True for labels that are people, institutions, emails, dates or placeholders

    The two-capitalised-words name heuristic only applies to unlabelled
    candidates; pass check_person_names=False for text that follows an explicit
    chapter/unit marker or carries its own weightage.
    """
    label = label.strip()
    if not label:
        return True
    if label.lower() in _PLACEHOLDER_WORDS or _PLACEHOLDER_PREFIX_RE.match(label):
        return True
    if _TITLE_PREFIX_RE.match(label) or _ROLE_PREFIX_RE.match(label):
        return True
    if _EMAIL_RE.search(label) or _DATE_RE.match(label):
        return True
    if _INSTITUTION_RE.search(label):
        return True
    return check_person_names and _looks_like_person_name(label)


# ─── Label cleanup ─────────────────────────────────────────────────────────────

_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_ENUM_RE = re.compile(r"^[\d.)\s\-–•*]+")
_LEADING_UNIT_RE = re.compile(
    r"^(?:unit|module|topic|chapter|part)\s*[-:#]?\s*(?:\d+|[ivxlc]+)\b\s*[:.\-–)]*\s*", re.IGNORECASE
)
_TRAILING_WEIGHT_RE = re.compile(r"\s*[-–|:(,]?\s*\d{1,3}\s*(?:%|percent)\s*\)?\s*$", re.IGNORECASE)
_TRAILING_PAGE_RE = re.compile(r"(?:\s*\.{2,}\s*|\s{2,})\d+\s*$")


def clean_label(text: str) -> str:
    """Collapse whitespace and trim separator punctuation from both ends"""
    text = _WHITESPACE_RE.sub(" ", text or "").strip()
    return text.strip(" -–:|,;").strip()


def _clean_topic_name(name: str) -> str:
    name = _TRAILING_PAGE_RE.sub("", name)
    name = clean_label(name)
    name = _LEADING_UNIT_RE.sub("", name)
    name = _TRAILING_WEIGHT_RE.sub("", name)
    name = _LEADING_ENUM_RE.sub("", name)
    return clean_label(name)


def _valid_label(label: str, check_person_names: bool = True) -> bool:
    return (
        MIN_LABEL_LENGTH <= len(label) <= MAX_LABEL_LENGTH
        and not is_excluded_label(label, check_person_names)
    )


# ─── Topic strategies ──────────────────────────────────────────────────────────

@dataclass
class TopicCandidate:
    name: str
    weightage: Optional[int]
    line: int
    strategy: str


class TopicStrategy(NamedTuple):
    """A named extractor: lines of text -> topic candidates"""
    tag: str
    extract: Callable[[List[str]], List[TopicCandidate]]


_UNIT_PREFIX = r"^\s*(?:unit|module|topic|chapter|part)\s*[-:#]?\s*(?:\d+|[ivxlc]+)\b\s*[:.\-–)]*\s*"
_WEIGHT_TAIL = (
    r"(?:\s*[-–|:(,]\s*(?P<w1>\d{1,3})\s*(?:%|percent)?"
    r"|\s+(?P<w2>\d{1,3})\s*(?:%|percent))"
    r"\s*\)?\s*$"
)
_UNIT_WEIGHTED_RE = re.compile(_UNIT_PREFIX + r"(?P<name>.+?)" + _WEIGHT_TAIL, re.IGNORECASE)
_NUMBERED_WEIGHTED_RE = re.compile(r"^\s*\d{1,2}[.)]\s*(?P<name>.+?)" + _WEIGHT_TAIL, re.IGNORECASE)
_UNIT_PLAIN_RE = re.compile(_UNIT_PREFIX + r"(?P<name>.{5,200})$", re.IGNORECASE)
_NUMBERED_PLAIN_RE = re.compile(r"^\s*\d{1,2}[.)]\s+(?P<name>[A-Z].{4,199})$")
_TABLE_WEIGHT_RE = re.compile(r"^(\d{1,3})\s*(?:%|percent)?$", re.IGNORECASE)
_TABLE_INDEX_RE = re.compile(r"^(?:[\d.\s]+|(?:unit|module|topic|chapter|s\.?\s*no\.?)\s*[\divxlc]*)$", re.IGNORECASE)


def _weighted_lines(pattern: re.Pattern, tag: str) -> Callable[[List[str]], List[TopicCandidate]]:
    def extract(lines: List[str]) -> List[TopicCandidate]:
        candidates = []
        for index, line in enumerate(lines):
            match = pattern.match(line)
            if not match:
                continue
            weight = int(match.group("w1") or match.group("w2"))
            if weight > 100:
                continue
            candidates.append(TopicCandidate(match.group("name"), weight, index, tag))
        return candidates
    return extract


def _plain_lines(pattern: re.Pattern, tag: str) -> Callable[[List[str]], List[TopicCandidate]]:
    def extract(lines: List[str]) -> List[TopicCandidate]:
        return [
            TopicCandidate(match.group("name"), None, index, tag)
            for index, line in enumerate(lines)
            for match in [pattern.match(line)]
            if match
        ]
    return extract


def _table_rows(lines: List[str]) -> List[TopicCandidate]:
    """`name | 20%` rows, optionally with index columns before the name"""
    candidates = []
    for index, line in enumerate(lines):
        if "|" not in line:
            continue
        cells = [cell.strip() for cell in line.strip().strip("|").split("|")]
        cells = [cell for cell in cells if cell]
        if len(cells) < 2:
            continue
        weight_match = _TABLE_WEIGHT_RE.match(cells[-1])
        if not weight_match or int(weight_match.group(1)) > 100:
            continue
        text_cells = [cell for cell in cells[:-1] if not _TABLE_INDEX_RE.match(cell)]
        if not text_cells:
            continue
        candidates.append(TopicCandidate(max(text_cells, key=len), int(weight_match.group(1)), index, "table_row"))
    return candidates


# Strategies whose matches sit behind an explicit unit/module/chapter marker
_LABELLED_STRATEGIES = {"unit_with_weightage", "unit_heading"}

TOPIC_STRATEGIES: List[TopicStrategy] = [
    TopicStrategy("unit_with_weightage", _weighted_lines(_UNIT_WEIGHTED_RE, "unit_with_weightage")),
    TopicStrategy("numbered_with_weightage", _weighted_lines(_NUMBERED_WEIGHTED_RE, "numbered_with_weightage")),
    TopicStrategy("table_row", _table_rows),
    TopicStrategy("unit_heading", _plain_lines(_UNIT_PLAIN_RE, "unit_heading")),
    TopicStrategy("numbered_heading", _plain_lines(_NUMBERED_PLAIN_RE, "numbered_heading")),
]


def run_topic_strategies(text: str, strategies: Iterable[TopicStrategy] = TOPIC_STRATEGIES) -> List[TopicCandidate]:
    """
    Apply strategies in order; the first strategy to match a line claims it.

    Returns the merged candidates in document order.
    """
    lines = text.splitlines()
    claimed: Dict[int, TopicCandidate] = {}
    for strategy in strategies:
        for candidate in strategy.extract(lines):
            claimed.setdefault(candidate.line, candidate)
    return [claimed[line] for line in sorted(claimed)]


# ─── Weightage ─────────────────────────────────────────────────────────────────

def scale_to_hundred(weights: List[int]) -> List[int]:
    """Scale non-negative weights proportionally so they sum to exactly 100 (largest remainder)"""
    total = sum(weights)
    if not weights:
        return []
    if total <= 0:
        weights = [1] * len(weights)
        total = len(weights)
    exact = [w * 100 / total for w in weights]
    scaled = [int(value) for value in exact]
    shortfall = 100 - sum(scaled)
    by_remainder = sorted(range(len(exact)), key=lambda i: exact[i] - scaled[i], reverse=True)
    for i in by_remainder[:shortfall]:
        scaled[i] += 1
    return scaled


def fill_missing_weightage(weights: List[Optional[int]]) -> List[int]:
    """
    Unweighted entries share what is left of 100 after the explicit ones.

    With no explicit weights at all, 100 is divided equally.
    """
    missing = [i for i, w in enumerate(weights) if w is None]
    explicit_total = sum(w for w in weights if w is not None)
    filled = [w if w is not None else 0 for w in weights]
    if missing:
        has_explicit = len(missing) < len(weights)
        remaining = max(0, 100 - explicit_total) if has_explicit else 100
        share = remaining // len(missing)
        for i in missing:
            filled[i] = share
    return filled


def _sorted_by_weightage(topics: List[ExtractedTopic]) -> List[ExtractedTopic]:
    return sorted(topics, key=lambda topic: topic.weightage, reverse=True)


def _normalized_topics(names: List[str], weights: List[int]) -> List[ExtractedTopic]:
    return [ExtractedTopic(name=name, weightage=weight) for name, weight in zip(names, scale_to_hundred(weights))]


# ─── Regex CIF parsing ─────────────────────────────────────────────────────────

_SUBJECT_PATTERNS = [
    re.compile(r"(?:Subject|Course|Paper)\s*(?:Name|Title)\s*[:\-]\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(r"(?:Subject|Course|Paper)\s*[:\-]\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(r"^([A-Z][^\n\r]{5,50})$", re.MULTILINE),
]
_LINE_SKIP_RE = re.compile(r"^(?:Subject|Course|Paper|Name|Title)", re.IGNORECASE)


def extract_subject_name(text: str) -> str:
    for pattern in _SUBJECT_PATTERNS:
        match = pattern.search(text)
        if match:
            candidate = clean_label(match.group(1))
            if 3 < len(candidate) < 100:
                return candidate
    return "Unknown Subject"


def _dedupe_topic_candidates(candidates: List[TopicCandidate]) -> List[TopicCandidate]:
    seen = set()
    unique = []
    for candidate in candidates:
        name = _clean_topic_name(candidate.name)
        labelled = candidate.strategy in _LABELLED_STRATEGIES or candidate.weightage is not None
        if not _valid_label(name, check_person_names=not labelled) or name.lower() in seen:
            continue
        seen.add(name.lower())
        unique.append(TopicCandidate(name, candidate.weightage, candidate.line, candidate.strategy))
    return unique


def _topics_from_lines(text: str) -> List[ExtractedTopic]:
    """Last resort: the first sufficiently long, non-trivial lines become topics"""
    seen = set()
    names = []
    for raw in text.splitlines():
        line = clean_label(raw)
        if not (10 < len(line) < 200) or _LINE_SKIP_RE.match(line) or line.isdigit():
            continue
        name = line[:150]
        if is_excluded_label(name) or name.lower() in seen:
            continue
        seen.add(name.lower())
        names.append(name)
        if len(names) == LINE_FALLBACK_LIMIT:
            break
    if not names:
        return []
    share = 100 // len(names)
    return _normalized_topics(names, [share] * len(names))


def parse_cif_regex(text: str) -> CIFParseResult:
    """Deterministic CIF parsing; needs no external service"""
    subject_name = extract_subject_name(text)
    candidates = _dedupe_topic_candidates(run_topic_strategies(text))
    source = "regex"

    if candidates:
        weights = fill_missing_weightage([candidate.weightage for candidate in candidates])
        ranked = sorted(zip(candidates, weights), key=lambda pair: pair[1], reverse=True)[:MAX_REGEX_TOPICS]
        topics = _normalized_topics([c.name for c, _ in ranked], [w for _, w in ranked])
        by_strategy: Dict[str, int] = {}
        for candidate, _ in ranked:
            by_strategy[candidate.strategy] = by_strategy.get(candidate.strategy, 0) + 1
        logger.info(f"Regex CIF parsing: {len(topics)} topics ({by_strategy})")
    else:
        topics = _topics_from_lines(text)
        source = "lines"
        logger.warning(f"No topic patterns matched; using {len(topics)} leading lines as topics")

    topics = _sorted_by_weightage(topics)
    return CIFParseResult(
        subject_name=subject_name,
        topics=topics,
        total_topics=len(topics),
        source=source,
    )


# ─── Chapter extraction ────────────────────────────────────────────────────────

_CHAPTER_PATTERNS = [
    re.compile(r"^\s*(?P<kw>chapter)\s+(?P<num>\d+(?:\.\d+)?)\b\s*[:.\-–)]*\s*(?P<name>.*)$", re.IGNORECASE),
    re.compile(r"^\s*(?P<kw>chapter)\s+(?P<num>[ivxlc]+)\b\s*[:.\-–)]*\s*(?P<name>.*)$", re.IGNORECASE),
    re.compile(r"^\s*(?P<kw>unit|module|part)\s+(?P<num>\d+|[ivxlc]+)\b\s*[:.\-–)]*\s*(?P<name>.*)$", re.IGNORECASE),
    re.compile(r"^\s*(?P<num>\d{1,2})[.)]\s+(?P<name>[A-Z][^\n\r]{10,150})$"),
]
_HEADING_RE = re.compile(r"^[A-Z][A-Za-z\s]{9,}")
_HEADING_SKIP_RE = re.compile(r"^(?:Subject|Course|Paper|Table|Figure)", re.IGNORECASE)


def _chapter_label(match: re.Match) -> Optional[str]:
    name = _TRAILING_PAGE_RE.sub("", match.group("name") or "")
    name = clean_label(_TRAILING_WEIGHT_RE.sub("", name))
    keyword = match.groupdict().get("kw")

    if keyword is None:
        # Bare numbered heading: the heading text is the label
        return name if _valid_label(name) else None

    number = match.group("num")
    if not number.isdigit() and "." not in number:
        number = number.upper()
    prefix = f"{keyword.title()} {number}"
    if len(name) < 3 or is_excluded_label(name, check_person_names=False):
        return prefix
    return f"{prefix}: {name}"


def _add_label(label: str, labels: List[str], seen: set) -> None:
    key = label.lower()
    if key not in seen and len(label) <= MAX_LABEL_LENGTH:
        seen.add(key)
        labels.append(label)


def extract_chapters(text: str) -> List[str]:
    """
    Chapter labels from reference material

    Never empty: falls back to heading-shaped lines, then to placeholders.
    """
    if not text or not text.strip():
        raise EmptySourceTextError("Source text is empty or unreadable")

    labels: List[str] = []
    seen: set = set()
    for line in text.splitlines():
        for pattern in _CHAPTER_PATTERNS:
            match = pattern.match(line)
            if match:
                label = _chapter_label(match)
                if label:
                    _add_label(label, labels, seen)
                break
        if len(labels) >= MAX_CHAPTERS:
            break

    if not labels:
        for raw in text.splitlines():
            line = clean_label(raw)
            if (
                10 <= len(line) <= 150
                and _HEADING_RE.match(line)
                and not _HEADING_SKIP_RE.match(line)
                and not is_excluded_label(line)
            ):
                _add_label(line, labels, seen)
            if len(labels) >= MAX_CHAPTERS:
                break
        if labels:
            logger.info(f"No chapter markers found; using {len(labels)} heading lines")

    if not labels:
        logger.warning("No chapters or headings found; using placeholder chapters")
        return list(PLACEHOLDER_CHAPTERS)

    logger.info(f"Chapter extraction: found {len(labels)} chapters")
    return labels[:MAX_CHAPTERS]


# ─── Service ───────────────────────────────────────────────────────────────────

CIF_PROMPT = """You are an expert at parsing Course Information Files (CIF). Extract the following from the provided text:

1. The subject/course name
2. Every unit/module/topic with its weightage percentage

Look for units, modules or topics in any format: numbered lists, tables, or paragraphs.
Weightage may be written as %, "percent", or a bare number.

DO NOT return any of the following as topics:
- Person names (faculty, coordinators, authors), including titles like Dr. or Prof.
- Institution, department or university names
- Dates, email addresses, phone numbers
- Generic words such as "Subject", "Course", "Name", "Title"

Return ONLY a JSON object with this EXACT structure:
{{
  "subjectName": "Full subject/course name",
  "topics": [
    {{"name": "Complete topic/unit name", "weightage": 20}}
  ],
  "additionalInfo": "Any other relevant course information"
}}

If a weightage is not given, use 0.

Text to parse:
{text}"""


class StructureExtractionService:
    """
    Structural extraction engine

    Args:
        generator: object with ``generate(prompt) -> str`` (e.g. GeminiService);
            None means regex-only extraction
        cache: optional CacheService for extraction results
        max_cif_chars: prompt excerpt bound for CIF parsing
    """

    def __init__(self, generator=None, cache=None, max_cif_chars: int = 30000):
        self.generator = generator
        self.cache = cache
        self.max_cif_chars = max_cif_chars

    def extract_structure(
        self, text: str, mode: Union[ExtractionMode, str]
    ) -> Union[CIFParseResult, ChapterExtractionResult]:
        mode = ExtractionMode(mode)
        if mode is ExtractionMode.TOPICS:
            return self.parse_cif(text)
        return self.extract_chapters(text)

    def extract_chapters(self, text: str) -> ChapterExtractionResult:
        return ChapterExtractionResult(chapters=extract_chapters(text))

    def parse_cif(self, text: str) -> CIFParseResult:
        """
        Parse a Course Information File into subject name + weighted topics

        Tries Gemini first; any failure (call error, unparseable JSON, no
        valid topics) falls through to the regex engine.
        """
        if not text or not text.strip():
            raise EmptySourceTextError("Course information text is empty or unreadable")

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.generate_extraction_key(ExtractionMode.TOPICS.value, text)
            cached = self.cache.get(cache_key)
            if cached:
                return CIFParseResult.model_validate(cached)

        result = self._parse_cif_ai(text) if self.generator is not None else None
        if result is None:
            result = parse_cif_regex(text)

        # Regex results are not cached so a transient AI failure is retried next time
        if cache_key is not None and result.source == "ai":
            self.cache.set(cache_key, result.model_dump(mode="json", by_alias=True))
        return result

    def _parse_cif_ai(self, text: str) -> Optional[CIFParseResult]:
        prompt = CIF_PROMPT.format(text=text[: self.max_cif_chars])
        try:
            response = self.generator.generate(prompt)
        except GeneratorError as e:
            logger.warning(f"AI CIF parsing failed, using regex fallback: {e.message}")
            return None

        parsed = first_success(response, parse_first_object, parse_loose)
        if not parsed.ok:
            logger.warning(f"AI CIF response was not valid JSON ({parsed.error}); using regex fallback")
            return None

        topics = self._validated_ai_topics(parsed.value.get("topics"))
        if not topics:
            logger.warning("AI CIF parsing returned no valid topics; using regex fallback")
            return None

        subject_name = clean_label(str(parsed.value.get("subjectName") or parsed.value.get("courseName") or ""))
        if not subject_name or is_excluded_label(subject_name):
            subject_name = extract_subject_name(text)

        logger.info(f"AI CIF parsing: found {len(topics)} topics")
        return CIFParseResult(
            subject_name=subject_name,
            topics=topics,
            total_topics=len(topics),
            additional_info=str(parsed.value.get("additionalInfo") or ""),
            source="ai",
        )

    @staticmethod
    def _validated_ai_topics(raw_topics) -> List[ExtractedTopic]:
        if not isinstance(raw_topics, list):
            return []

        names: List[str] = []
        weights: List[int] = []
        seen = set()
        dropped = 0
        for item in raw_topics:
            if isinstance(item, str):
                item = {"name": item}
            if not isinstance(item, dict):
                dropped += 1
                continue
            name = clean_label(str(item.get("name") or item.get("title") or item.get("unit") or ""))
            if not _valid_label(name) or name.lower() in seen:
                dropped += 1
                continue
            seen.add(name.lower())
            names.append(name)
            weights.append(min(100, max(0, coerce_int(item.get("weightage", item.get("weight"))))))

        if dropped:
            logger.info(f"Dropped {dropped} AI topics that failed validation")
        if not names:
            return []

        if sum(weights) == 0:
            weights = scale_to_hundred([1] * len(names))
        return _sorted_by_weightage([ExtractedTopic(name=n, weightage=w) for n, w in zip(names, weights)])
