from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class Granularity(str, Enum):
    WORD = "word"
    CHAR = "char"


class RevisionsPolicy(str, Enum):
    """What to do when the revised document already carries tracked changes."""

    IGNORE = "ignore"
    FAIL = "fail"


class EditKind(str, Enum):
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


class EditOp(NamedTuple):
    kind: EditKind
    token: str


class ResourceLimits(BaseModel):
    """
    Caps applied while reading the input packages and while diffing paragraphs.
    Defaults match the host node's published defaults.
    """

    model_config = ConfigDict(populate_by_name=True)

    max_total_unzipped_bytes: int = Field(
        50 * 1024 * 1024,
        gt=0,
        alias="maxTotalUnzippedBytes",
        description="Aggregate decompressed size allowed across all parts read from one package.",
    )
    max_entries: int = Field(2000, gt=0, alias="maxEntries", description="Maximum number of zip entries.")
    max_entry_size: int = Field(
        5 * 1024 * 1024,
        gt=0,
        alias="maxEntrySize",
        description="Maximum decompressed size of a single part.",
    )
    max_tokens_per_paragraph: int = Field(
        4000,
        gt=0,
        alias="maxTokensPerParagraph",
        description="Paragraphs above this token count are diffed as one opaque unit.",
    )


class Options(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    granularity: Granularity = Field(Granularity.WORD, description="Diff unit: 'word' or 'char'.")
    suppress_whitespace_only: bool = Field(
        True,
        alias="suppressWhitespaceOnly",
        description="Keep the revised paragraph untouched when only surrounding whitespace differs.",
    )
    include_lists: bool = Field(True, alias="includeLists")
    include_tables: bool = Field(True, alias="includeTables")
    include_text_boxes: bool = Field(True, alias="includeTextBoxes")
    include_headers_footers: bool = Field(False, alias="includeHeadersFooters")
    existing_tracked_revisions: RevisionsPolicy = Field(
        RevisionsPolicy.IGNORE,
        alias="existingTrackedRevisions",
        description="'fail' rejects a revised document that already contains tracked changes.",
    )
    limits: ResourceLimits = Field(default_factory=ResourceLimits)


@dataclass
class DiffResult:
    content: bytes
    warnings: List[str] = field(default_factory=list)
