"""Chunking logic for splitting markdown documents into retrieval units."""

import re
from dataclasses import dataclass

# MDX markup that carries no prose for embeddings
IMPORT_PATTERN = re.compile(r"^import\s+.*$", re.MULTILINE)
EXPORT_PATTERN = re.compile(r"^export\s+.*$", re.MULTILINE)
SELF_CLOSING_COMPONENT_PATTERN = re.compile(r"<[A-Z][a-zA-Z0-9]*[^>]*/>")
# Non-nested only: the first closing tag with the same name ends the block
COMPONENT_BLOCK_PATTERN = re.compile(r"<([A-Z][a-zA-Z0-9]*)[^>]*>[\s\S]*?</\1>")
COMPONENT_TAG_PATTERN = re.compile(r"</?[A-Z][a-zA-Z0-9]*[^>]*>")
EXTRA_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)
MARKDOWN_EXTENSION_PATTERN = re.compile(r"\.(md|mdx)$", re.IGNORECASE)
PARAGRAPH_BREAK_PATTERN = re.compile(r"\n\n+")


@dataclass(frozen=True)
class ChunkingOptions:
    """Chunking parameters."""

    max_chunk_size: int = 1000  # Maximum characters per chunk
    chunk_overlap: int = 100  # Characters carried over from the previous chunk
    respect_headings: bool = True  # Keep content under the same heading together

    def __post_init__(self) -> None:
        if self.max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {self.max_chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"chunk_overlap must be >= 0, got {self.chunk_overlap}")


DEFAULT_OPTIONS = ChunkingOptions()


@dataclass
class Chunk:
    """A chunk of document content."""

    content: str
    index: int
    line_start: int  # 1-based, inclusive
    line_end: int  # 1-based, inclusive
    heading: str | None


@dataclass
class Section:
    """Content under one heading."""

    heading: str | None
    heading_level: int
    content: str
    line_start: int
    line_end: int


def extract_title(content: str, fallback_filename: str) -> str:
    """Return the first level-1 heading, or the filename without its extension."""
    match = TITLE_PATTERN.search(content)
    if match:
        return match.group(1).strip()
    return MARKDOWN_EXTENSION_PATTERN.sub("", fallback_filename)


def strip_mdx_components(content: str) -> str:
    """Remove MDX imports/exports and JSX components from markdown."""
    result = IMPORT_PATTERN.sub("", content)
    result = EXPORT_PATTERN.sub("", result)
    result = SELF_CLOSING_COMPONENT_PATTERN.sub("", result)
    result = COMPONENT_BLOCK_PATTERN.sub("", result)
    result = COMPONENT_TAG_PATTERN.sub("", result)
    result = EXTRA_BLANK_LINES_PATTERN.sub("\n\n", result)
    return result.strip()


def split_into_sections(content: str) -> list[Section]:
    """
    Split content into sections at headings of any level (# to ######).

    Line numbers are 1-based and count lines of ``content`` as given.
    A section with only whitespace (e.g. before the first heading) is dropped.
    """
    sections: list[Section] = []
    current = Section(heading=None, heading_level=0, content="", line_start=1, line_end=1)

    line_number = 1
    for line in content.split("\n"):
        match = HEADING_PATTERN.match(line)
        if match:
            if current.content.strip():
                current.line_end = line_number - 1
                sections.append(current)
            current = Section(
                heading=match.group(2).strip(),
                heading_level=len(match.group(1)),
                content=line + "\n",
                line_start=line_number,
                line_end=line_number,
            )
        else:
            current.content += line + "\n"
        line_number += 1

    if current.content.strip():
        current.line_end = line_number - 1
        sections.append(current)

    return sections


def _overlap_seed(buffer: str, overlap: int, separator: str, piece: str) -> str:
    """Start a new buffer with the tail of the previous one followed by ``piece``."""
    tail = buffer[-overlap:] if overlap else ""
    return f"{tail}{separator}{piece}" if tail else piece


def split_section(section: Section, max_chunk_size: int, chunk_overlap: int) -> list[Chunk]:
    """
    Split a section into chunks on paragraph boundaries.

    A paragraph is never broken, so a chunk holding one oversized paragraph
    may exceed max_chunk_size.
    """
    content = section.content.strip()
    if len(content) <= max_chunk_size:
        return [
            Chunk(
                content=content,
                index=0,
                line_start=section.line_start,
                line_end=section.line_end,
                heading=section.heading,
            )
        ]

    chunks: list[Chunk] = []
    buffer = ""
    chunk_start = section.line_start
    current_line = section.line_start

    for paragraph in PARAGRAPH_BREAK_PATTERN.split(content):
        paragraph_lines = paragraph.count("\n") + 1

        if buffer and len(buffer) + len(paragraph) + 2 > max_chunk_size:
            if buffer.strip():
                chunks.append(
                    Chunk(
                        content=buffer.strip(),
                        index=len(chunks),
                        line_start=chunk_start,
                        line_end=current_line - 1,
                        heading=section.heading,
                    )
                )
            buffer = _overlap_seed(buffer, chunk_overlap, "\n\n", paragraph)
            chunk_start = current_line
        elif buffer:
            buffer += "\n\n" + paragraph
        else:
            buffer = paragraph

        current_line += paragraph_lines + 1  # +1 for the blank separator line

    if buffer.strip():
        chunks.append(
            Chunk(
                content=buffer.strip(),
                index=len(chunks),
                line_start=chunk_start,
                line_end=section.line_end,
                heading=section.heading,
            )
        )

    return chunks


def split_by_lines(content: str, max_chunk_size: int, chunk_overlap: int) -> list[Chunk]:
    """Split content line by line, ignoring headings."""
    chunks: list[Chunk] = []
    buffer = ""
    chunk_start = 1
    current_line = 1

    for line in content.split("\n"):
        if buffer and len(buffer) + len(line) + 1 > max_chunk_size:
            if buffer.strip():
                chunks.append(
                    Chunk(
                        content=buffer.strip(),
                        index=len(chunks),
                        line_start=chunk_start,
                        line_end=current_line - 1,
                        heading=None,
                    )
                )
            buffer = _overlap_seed(buffer, chunk_overlap, "\n", line)
            chunk_start = current_line
        elif buffer:
            buffer += "\n" + line
        else:
            buffer = line

        current_line += 1

    if buffer.strip():
        chunks.append(
            Chunk(
                content=buffer.strip(),
                index=len(chunks),
                line_start=chunk_start,
                line_end=current_line - 1,
                heading=None,
            )
        )

    return chunks


def chunk_markdown(content: str, options: ChunkingOptions | None = None) -> list[Chunk]:
    """
    Chunk a markdown document.

    Rules:
    1. Strip MDX components
    2. Split by headings (when respect_headings is set)
    3. If a section exceeds max_chunk_size, split by paragraphs with overlap
    4. Number chunks 0..n-1 across the whole document

    Line numbers refer to the stripped text, so they drift from the source
    file wherever stripping removed lines.
    """
    opts = options or DEFAULT_OPTIONS
    clean = strip_mdx_components(content)
    if not clean:
        return []

    if opts.respect_headings:
        chunks: list[Chunk] = []
        for section in split_into_sections(clean):
            chunks.extend(split_section(section, opts.max_chunk_size, opts.chunk_overlap))
    else:
        chunks = split_by_lines(clean, opts.max_chunk_size, opts.chunk_overlap)

    for index, chunk in enumerate(chunks):
        chunk.index = index

    return chunks
