import re
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

PARAM_PATTERN = re.compile(r"{([^{}]+)}")
_TEMPLATED_HOST = re.compile(r"^(https?://)?\{\{.*?\}\}")
_SCHEME_HOST = re.compile(r"^https?://[^/]+")
_NUMERIC = re.compile(r"^\d+$")

EXACT_SEGMENT_SCORE = 1.0
NUMERIC_PARAM_SCORE = 0.9
PARAM_SCORE = 0.8


class SegmentKind(str, Enum):
    LITERAL = "literal"
    PARAMETER = "parameter"


@dataclass(frozen=True)
class TemplateSegment:
    value: str
    kind: SegmentKind

    @property
    def is_parameter(self) -> bool:
        return self.kind == SegmentKind.PARAMETER


@dataclass(frozen=True)
class PathTemplate:
    """A declared path template compiled into segments and an anchored pattern."""
    template: str
    segments: Tuple[TemplateSegment, ...]
    pattern: "re.Pattern"

    @property
    def parameter_names(self) -> List[str]:
        names = []
        for segment in self.segments:
            names.extend(PARAM_PATTERN.findall(segment.value))
        return names

    def matches(self, url: Any) -> bool:
        cleaned = clean_request_path(url)
        if cleaned is None:
            return False
        return self.pattern.fullmatch(cleaned) is not None

    def similarity(self, url: Any) -> float:
        """
        Graded similarity between a concrete URL and this template.

        Returns 1.0 for an exact match, 0.0 when the segment counts differ or a
        literal segment disagrees, otherwise the mean per-segment score.
        """
        cleaned = clean_request_path(url)
        if cleaned is None:
            return 0.0
        if self.pattern.fullmatch(cleaned):
            return 1.0

        url_segments = split_segments(cleaned)
        if len(url_segments) != len(self.segments) or not url_segments:
            return 0.0

        total = 0.0
        for url_segment, segment in zip(url_segments, self.segments):
            if url_segment == segment.value:
                total += EXACT_SEGMENT_SCORE
            elif segment.is_parameter and _NUMERIC.match(url_segment):
                total += NUMERIC_PARAM_SCORE
            elif segment.is_parameter:
                total += PARAM_SCORE
            else:
                return 0.0

        return total / len(url_segments)


def split_segments(path: str) -> List[str]:
    return [s for s in path.strip("/").split("/") if s]


def strip_query(url: Any) -> Optional[str]:
    """The URL without its query string and fragment, host kept. None for non-strings."""
    if not isinstance(url, str):
        return None
    return url.strip().split("?", 1)[0].split("#", 1)[0]


def clean_request_path(url: Any) -> Optional[str]:
    """
    Reduce a request URL to its path: drops scheme and host (including an
    unresolved {{variable}} host), query string, fragment and trailing slashes.
    Returns None for values that are not strings.
    """
    if not isinstance(url, str):
        return None

    cleaned = _TEMPLATED_HOST.sub("", url.strip(), count=1)
    cleaned = _SCHEME_HOST.sub("", cleaned, count=1)
    cleaned = cleaned.split("?", 1)[0].split("#", 1)[0]
    cleaned = cleaned.rstrip("/")
    return cleaned or "/"


def _compile_segment(segment: str) -> str:
    parts = []
    last = 0
    for match in PARAM_PATTERN.finditer(segment):
        parts.append(re.escape(segment[last:match.start()]))
        parts.append("[^/]+")
        last = match.end()
    parts.append(re.escape(segment[last:]))
    return "".join(parts)


@lru_cache(maxsize=None)
def compile_path_template(template: str) -> PathTemplate:
    normalized = template.strip().rstrip("/") or "/"
    raw_segments = split_segments(normalized)

    segments = tuple(
        TemplateSegment(
            value=segment,
            kind=SegmentKind.PARAMETER if PARAM_PATTERN.search(segment) else SegmentKind.LITERAL,
        )
        for segment in raw_segments
    )

    if segments:
        pattern_str = "/" + "/".join(_compile_segment(s) for s in raw_segments)
    else:
        pattern_str = "/"

    logger.debug(f"Compiled path template {template!r} -> {pattern_str}")
    return PathTemplate(template=normalized, segments=segments, pattern=re.compile(pattern_str))


def url_matches_template(url: Any, template: Optional[str]) -> bool:
    if not isinstance(template, str) or not template.strip():
        return False
    return compile_path_template(template).matches(url)


def path_similarity(url: Any, template: Optional[str]) -> float:
    if not isinstance(template, str) or not template.strip():
        return 0.0
    return compile_path_template(template).similarity(url)
