#!/usr/bin/env python3
# Ticket: 0091_document_state_engine
# Design: DESIGN.md
"""
Pipeline Engine Section Patcher

Every component that mutates a shared document goes through these functions.
They are pure: each takes a Document and returns a modified copy. Callers
persist the result with DocumentStore.write() (atomic temp-file + rename).

patch_section() insertion rules, in priority order:
1. The first placeholder line ("[...]") inside the section is replaced by the block.
2. Otherwise the block is inserted at the end of the section body, i.e.
   immediately before the next "## " header (or at end-of-file for the last
   section).
3. If the section does not exist, a blank line plus the block is appended at
   end-of-file.

Exactly one insertion point is used per call. Placeholder replacement is the
only idempotent path: patching the same section twice without a placeholder
inserts the block twice.
"""

import re
from typing import Callable

from .document import Document, Section, is_placeholder, is_section_header


def _block_lines(block: str | list[str]) -> list[str]:
    if isinstance(block, list):
        return list(block)
    return block.rstrip("\n").split("\n")


def _split_trailing_blank(lines: list[str]) -> tuple[list[str], list[str]]:
    """Split lines into (content, trailing blank lines)."""
    end = len(lines)
    while end > 0 and not lines[end - 1].strip():
        end -= 1
    return lines[:end], lines[end:]


def append_to_body(body: list[str], block: list[str], is_last: bool) -> list[str]:
    """
    Append block at the end of a section body.

    One blank line separates existing content from the block; the section's
    trailing blank lines are kept so the next header stays separated.
    """
    content, trailing = _split_trailing_blank(body)
    new_body = list(content)
    if content:
        new_body.append("")
    new_body.extend(block)
    if trailing:
        new_body.extend(trailing)
    elif not is_last:
        new_body.append("")
    return new_body


def patch_section(document: Document, header: str, block: str | list[str]) -> Document:
    """Insert block into the named section (placeholder, else end of body, else EOF)."""
    lines = _block_lines(block)
    doc = document.copy()
    idx = doc.find(header)

    if idx is None:
        return append_at_eof(doc, lines)

    section = doc.sections[idx]
    for i, line in enumerate(section.body):
        if is_placeholder(line):
            section.body[i:i + 1] = lines
            return doc

    is_last = idx == len(doc.sections) - 1
    section.body = append_to_body(section.body, lines, is_last)
    return doc


def append_at_eof(document: Document, block: list[str]) -> Document:
    """Append a blank line plus block at end-of-file."""
    doc = document.copy()
    target = doc.sections[-1].body if doc.sections else doc.preamble
    target.append("")
    target.extend(block)
    doc.trailing_newline = True
    return doc


def replace_section_body(document: Document, header: str, block: str | list[str]) -> Document:
    """
    Replace the whole body of a section with block.

    The section's trailing blank lines are preserved. When the section is
    absent it is appended at end-of-file together with its header.
    """
    lines = _block_lines(block)
    doc = document.copy()
    idx = doc.find(header)

    if idx is None:
        return append_at_eof(doc, [header, ""] + lines)

    section = doc.sections[idx]
    _, trailing = _split_trailing_blank(section.body)
    is_last = idx == len(doc.sections) - 1
    if not trailing and not is_last:
        trailing = [""]
    section.body = lines + trailing
    return doc


def rewrite_line(
    document: Document,
    pattern: str | re.Pattern,
    rewrite: Callable[[re.Match], str],
    headers_only: bool = False,
) -> tuple[Document, bool]:
    """
    Rewrite the first line (headers included) matching pattern.

    With headers_only, preamble and body lines are never considered, so a
    header-like line inside a code fence is left alone.

    Returns (new document, True) when a line was rewritten, or
    (unchanged copy, False) when nothing matched.
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    doc = document.copy()

    if not headers_only:
        for i, line in enumerate(doc.preamble):
            match = regex.match(line)
            if match:
                doc.preamble[i] = rewrite(match)
                return doc, True

    for section in doc.sections:
        match = regex.match(section.header)
        if match:
            new_header = rewrite(match)
            if not is_section_header(new_header):
                raise ValueError(f"Rewritten header is not a section header: {new_header!r}")
            section.header = new_header
            return doc, True
        if headers_only:
            continue
        for i, line in enumerate(section.body):
            match = regex.match(line)
            if match:
                section.body[i] = rewrite(match)
                return doc, True

    return doc, False


# ---------------------------------------------------------------------------
# Subsections ("### ..." blocks inside a section body)
# ---------------------------------------------------------------------------


def find_subsection(section: Section, heading: str) -> tuple[int, int] | None:
    """
    Locate a "### heading" block in a section body.

    Returns (start, end) body indices: start is the heading line, end is the
    index of the next "### " line or the end of the body.
    """
    target = " ".join(heading.split())
    start = None
    for i, line in enumerate(section.body):
        if line.startswith("### "):
            if start is not None:
                return start, i
            if " ".join(line.split()) == target:
                start = i
    if start is None:
        return None
    return start, len(section.body)


def append_to_subsection(
    document: Document,
    header: str,
    heading: str,
    line: str,
) -> tuple[Document, bool]:
    """
    Append one line at the end of a "### heading" block inside a section.

    Returns (document, False) unchanged when the section or subsection is absent.
    """
    doc = document.copy()
    idx = doc.find(header)
    if idx is None:
        return doc, False
    section = doc.sections[idx]
    span = find_subsection(section, heading)
    if span is None:
        return doc, False

    start, end = span
    insert_at = end
    while insert_at - 1 > start and not section.body[insert_at - 1].strip():
        insert_at -= 1
    section.body.insert(insert_at, line)
    return doc, True
