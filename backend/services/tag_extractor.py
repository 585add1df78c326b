"""
Tag Extractor - Locate and consume completed <tag>...</tag> regions

The model answers in a fixed pseudo-XML vocabulary. Everything here is pure
string work over the parser's working buffer and never raises on bad input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from models.hook import Complexity, FeatureDetail, HookType


class TagKind(str, Enum):
    """How the content of a tag region is turned into a field value"""

    REPLY = "reply"  # Appended to the reply channel, not the record
    TEXT = "text"
    INTEGER = "integer"
    FEATURES = "features"  # Container of <feature> blocks
    ITEMS = "items"  # Container of plain child items


@dataclass(frozen=True)
class TagDescriptor:
    """A known top-level tag and where its value lands"""

    name: str
    kind: TagKind
    field: str | None = None
    child: str | None = None

    @property
    def open_marker(self) -> str:
        return f"<{self.name}>"

    @property
    def close_marker(self) -> str:
        return f"</{self.name}>"


# Priority order of one extraction pass
TAG_DESCRIPTORS: tuple[TagDescriptor, ...] = (
    TagDescriptor("reply", TagKind.REPLY),
    TagDescriptor("hookCode", TagKind.TEXT, field="code"),
    TagDescriptor("name", TagKind.TEXT, field="name"),
    TagDescriptor("description", TagKind.TEXT, field="description"),
    TagDescriptor("gasEstimate", TagKind.INTEGER, field="gas_estimate"),
    TagDescriptor("testCode", TagKind.TEXT, field="test_code"),
    TagDescriptor("implementationDetails", TagKind.FEATURES, field="implementation_details", child="feature"),
    TagDescriptor("examples", TagKind.ITEMS, field="examples", child="example"),
)

TOP_LEVEL_TAGS: tuple[str, ...] = tuple(d.name for d in TAG_DESCRIPTORS)
# Containers shield their children while still open; other tags only once closed
CONTAINER_TAGS: tuple[str, ...] = tuple(d.name for d in TAG_DESCRIPTORS if d.child)
FEATURE_FIELDS: tuple[str, ...] = ("name", "description", "codeSnippet")
CHILD_TAGS: tuple[str, ...] = ("feature", "example", "codeSnippet")

_INTEGER_PATTERN = re.compile(r"^[+-]?\d[\d,_]*")
_COMPLEXITY_PATTERN = re.compile(r"complexity[:\s]*(low|medium|high)")


@dataclass(frozen=True)
class TagMatch:
    """Result of looking up one tag in a buffer"""

    found: bool
    content: str = ""
    start: int = -1  # Index of the opening marker
    end: int = -1  # Index just past the closing marker

    @property
    def consumed_range(self) -> tuple[int, int]:
        return self.start, self.end


@dataclass(frozen=True)
class Extraction:
    """One consumed region and the value it produced"""

    descriptor: TagDescriptor
    value: Any  # None when the content was empty or failed its typed parse

    @property
    def accepted(self) -> bool:
        return self.value is not None


@dataclass
class DrainResult:
    buffer: str
    extractions: list[Extraction] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.extractions)


# ========== Region lookup ==========


def _enclosing_spans(
    buffer: str, tag_name: str, shield_tags: Iterable[str], open_shield_tags: Iterable[str]
) -> list[tuple[int, int]]:
    """Spans of every other known closed region, plus still-open containers"""
    open_shield_tags = tuple(open_shield_tags)
    spans = []
    for other in shield_tags:
        if other == tag_name:
            continue
        open_marker = f"<{other}>"
        close_marker = f"</{other}>"
        pos = buffer.find(open_marker)
        while pos != -1:
            close_at = buffer.find(close_marker, pos + len(open_marker))
            if close_at == -1:
                if other in open_shield_tags:
                    spans.append((pos, len(buffer)))
                break
            end = close_at + len(close_marker)
            spans.append((pos, end))
            pos = buffer.find(open_marker, end)
    return spans


def find_tag(
    buffer: str,
    tag_name: str,
    shield_tags: Iterable[str] = TOP_LEVEL_TAGS,
    open_shield_tags: Iterable[str] = CONTAINER_TAGS,
) -> TagMatch:
    """
    Find the first complete <tag_name>...</tag_name> region.

    An opening marker that sits inside another closed known region, or inside
    a container that is still open (for example the <name> of a feature inside
    <implementationDetails>), belongs to that region and is skipped. An
    unclosed plain tag such as a stray <description> hides nothing.
    """
    open_marker = f"<{tag_name}>"
    close_marker = f"</{tag_name}>"

    open_at = buffer.find(open_marker)
    spans = None
    while open_at != -1:
        if spans is None:
            spans = _enclosing_spans(buffer, tag_name, shield_tags, open_shield_tags)
        if not any(start < open_at < end for start, end in spans):
            break
        open_at = buffer.find(open_marker, open_at + 1)

    if open_at == -1:
        return TagMatch(found=False)

    content_start = open_at + len(open_marker)
    close_at = buffer.find(close_marker, content_start)
    if close_at == -1:
        return TagMatch(found=False)

    return TagMatch(
        found=True,
        content=buffer[content_start:close_at].strip(),
        start=open_at,
        end=close_at + len(close_marker),
    )


def iter_child_regions(content: str, child: str) -> list[str]:
    """Contents of every closed <child> region, in order"""
    open_marker = f"<{child}>"
    close_marker = f"</{child}>"
    items = []
    pos = content.find(open_marker)
    while pos != -1:
        close_at = content.find(close_marker, pos + len(open_marker))
        if close_at == -1:
            break
        items.append(content[pos + len(open_marker) : close_at].strip())
        pos = content.find(open_marker, close_at + len(close_marker))
    return items


def contains_tag_marker(buffer: str) -> bool:
    """True if any opening or closing marker of the vocabulary is present"""
    for tag in TOP_LEVEL_TAGS + CHILD_TAGS:
        if f"<{tag}>" in buffer or f"</{tag}>" in buffer:
            return True
    return False


# ========== Value conversion ==========


def parse_integer(content: str) -> int | None:
    """
    Leading integer of content, tolerating , and _ separators.

    "45,000" reads as 45000 rather than stopping at the comma: models write
    gas figures with thousands separators, and 45 would be a wrong estimate.
    """
    match = _INTEGER_PATTERN.match(content.strip())
    if not match:
        return None
    try:
        return int(match.group(0).replace(",", "").replace("_", ""))
    except ValueError:
        return None


def parse_feature(content: str) -> FeatureDetail | None:
    values = {}
    for tag in FEATURE_FIELDS:
        match = find_tag(content, tag, shield_tags=FEATURE_FIELDS, open_shield_tags=())
        if match.found and match.content:
            values[tag] = match.content
    if "name" not in values:
        return None
    return FeatureDetail(**values)


def convert_content(descriptor: TagDescriptor, content: str) -> Any:
    """Typed value for a region's content, or None to leave the field unset"""
    if descriptor.kind == TagKind.INTEGER:
        return parse_integer(content)

    if descriptor.kind == TagKind.FEATURES:
        features = [parse_feature(block) for block in iter_child_regions(content, descriptor.child)]
        features = [f for f in features if f is not None]
        return features or None

    if descriptor.kind == TagKind.ITEMS:
        items = [item for item in iter_child_regions(content, descriptor.child) if item]
        return items or None

    return content or None


# ========== Drain cycle ==========


def extract_next(buffer: str, descriptors: Iterable[TagDescriptor] = TAG_DESCRIPTORS) -> tuple[str, Extraction | None]:
    """Consume the first completed region in priority order"""
    for descriptor in descriptors:
        match = find_tag(buffer, descriptor.name)
        if not match.found:
            continue
        remaining = buffer[: match.start] + buffer[match.end :]
        return remaining, Extraction(descriptor, convert_content(descriptor, match.content))
    return buffer, None


def drain(buffer: str, descriptors: Iterable[TagDescriptor] = TAG_DESCRIPTORS) -> DrainResult:
    """Repeat extraction passes until one finds no completed region"""
    descriptors = tuple(descriptors)
    result = DrainResult(buffer=buffer)
    while True:
        result.buffer, extraction = extract_next(result.buffer, descriptors)
        if extraction is None:
            return result
        result.extractions.append(extraction)


# ========== Heuristics over the raw stream ==========


def phrase_to_hook_type(phrase: str) -> HookType | None:
    """'before modify position' -> HookType.BEFORE_MODIFY_POSITION"""
    words = phrase.lower().split()
    if not words:
        return None
    try:
        return HookType(words[0] + "".join(w.capitalize() for w in words[1:]))
    except ValueError:
        return None


def detect_hook_type(text: str, phrases: Iterable[str]) -> HookType | None:
    """First phrase (in list order) found anywhere in text"""
    lowered = text.lower()
    for phrase in phrases:
        if phrase.lower() in lowered:
            hook_type = phrase_to_hook_type(phrase)
            if hook_type is not None:
                return hook_type
    return None


def detect_complexity(text: str) -> Complexity | None:
    match = _COMPLEXITY_PATTERN.search(text.lower())
    if match:
        return Complexity(match.group(1))
    return None
