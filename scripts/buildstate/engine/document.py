#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Document Model

A tiny parser turning a shared Markdown document into an ordered list of
sections, and a serializer re-emitting the exact text. All patch operations
work on this model instead of line-by-line state flags.

Recognised structure (nothing else of Markdown is interpreted):
- A section starts at a second-level header line: "## <Name>".
- "### " and deeper headers are ordinary body lines.
- Lines inside a ``` fenced block are never headers. An unclosed fence runs
  to end-of-file.
- Lines before the first section form the preamble (title, intro text).

parse_document() followed by render_document() is byte-identical.
"""

import copy
import re
from dataclasses import dataclass, field

SECTION_PREFIX = "## "
FENCE_MARKER = "```"

_PLACEHOLDER_RE = re.compile(r"^\[[^\]]*\]$")


def is_section_header(line: str) -> bool:
    """True for a second-level header line ("## Name", not "### Name")."""
    return line.startswith(SECTION_PREFIX)


def is_fence(line: str) -> bool:
    return line.lstrip().startswith(FENCE_MARKER)


def is_placeholder(line: str) -> bool:
    """True for a line wholly wrapped in brackets, e.g. "[None yet]"."""
    return bool(_PLACEHOLDER_RE.match(line.strip()))


def normalize_header(header: str) -> str:
    """Canonical form used to compare headers: stripped, single-spaced."""
    return " ".join(header.split())


@dataclass
class Section:
    header: str
    body: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        """Header text without the leading "## " marker."""
        return self.header[len(SECTION_PREFIX):].strip()

    def matches(self, header: str) -> bool:
        return normalize_header(self.header) == normalize_header(header)

    def content_lines(self) -> list[str]:
        """Body lines that are neither blank nor placeholders."""
        return [
            line for line in self.body
            if line.strip() and not is_placeholder(line)
        ]


@dataclass
class Document:
    preamble: list[str] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    trailing_newline: bool = True

    def copy(self) -> "Document":
        return copy.deepcopy(self)

    def find(self, header: str) -> int | None:
        """Index of the first section whose header matches, or None."""
        for i, section in enumerate(self.sections):
            if section.matches(header):
                return i
        return None

    def section(self, header: str) -> Section | None:
        idx = self.find(header)
        return None if idx is None else self.sections[idx]

    def headers(self) -> list[str]:
        return [s.header for s in self.sections]

    def lines(self) -> list[str]:
        out = list(self.preamble)
        for section in self.sections:
            out.append(section.header)
            out.extend(section.body)
        return out


def parse_document(text: str) -> Document:
    """Split text into preamble and sections."""
    raw = text.split("\n")
    trailing_newline = text.endswith("\n")
    if trailing_newline:
        raw = raw[:-1]
    if text == "":
        raw = []

    doc = Document(trailing_newline=trailing_newline)
    current: Section | None = None
    in_fence = False

    for line in raw:
        if is_fence(line):
            in_fence = not in_fence
        elif not in_fence and is_section_header(line):
            current = Section(header=line)
            doc.sections.append(current)
            continue

        if current is None:
            doc.preamble.append(line)
        else:
            current.body.append(line)

    return doc


def render_document(document: Document) -> str:
    lines = document.lines()
    if not lines:
        return ""
    text = "\n".join(lines)
    if document.trailing_newline:
        text += "\n"
    return text
