"""
Tests for engine/section_patch.py

Validates:
- patch_section replaces the first placeholder
- patch_section appends at the end of the section body otherwise
- A missing section gets the block appended at end-of-file
- replace_section_body, rewrite_line and subsection appends
- Inputs are never mutated
"""

import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from buildstate.engine.document import parse_document, render_document
from buildstate.engine.section_patch import (
    append_to_subsection,
    find_subsection,
    patch_section,
    replace_section_body,
    rewrite_line,
)


def patched(text, header, block):
    return render_document(patch_section(parse_document(text), header, block))


# ---------------------------------------------------------------------------
# patch_section
# ---------------------------------------------------------------------------


def test_placeholder_is_replaced():
    text = "## Integration Points\n[None yet]\n\n## Dependency Tree\n"
    out = patched(text, "## Integration Points", ["### Task 1 Integration", "notes"])
    assert out == (
        "## Integration Points\n### Task 1 Integration\nnotes\n\n## Dependency Tree\n"
    )


def test_only_first_placeholder_is_replaced():
    text = "## A\n[one]\n[two]\n"
    assert patched(text, "## A", "X") == "## A\nX\n[two]\n"


def test_block_appended_before_next_header():
    text = "## Integration Points\nSome prior content\n\n## Dependency Tree\n```\n```\n"
    out = patched(text, "## Integration Points", "New block")
    assert out == (
        "## Integration Points\nSome prior content\n\nNew block\n\n"
        "## Dependency Tree\n```\n```\n"
    )


def test_block_appended_to_last_section():
    text = "## Timeline\n- first\n"
    assert patched(text, "## Timeline", "- second") == "## Timeline\n- first\n\n- second\n"


def test_missing_section_appends_at_eof():
    text = "# Title\n\n## Other\ncontent\n"
    out = patched(text, "## Integration Points", ["### Task 1 Integration"])
    assert out == "# Title\n\n## Other\ncontent\n\n### Task 1 Integration\n"


def test_patch_without_placeholder_inserts_twice():
    text = "## A\nexisting\n"
    once = patch_section(parse_document(text), "## A", "block")
    twice = patch_section(once, "## A", "block")
    assert render_document(twice).count("block") == 2


def test_patch_does_not_mutate_input():
    doc = parse_document("## A\n[None yet]\n")
    patch_section(doc, "## A", "block")
    assert doc.sections[0].body == ["[None yet]"]


def test_string_block_split_into_lines():
    out = patched("## A\n[x]\n", "## A", "one\ntwo\n")
    assert out == "## A\none\ntwo\n"


# ---------------------------------------------------------------------------
# replace_section_body
# ---------------------------------------------------------------------------


def test_replace_section_body_keeps_separator():
    doc = parse_document("## Agent Status\nold 1\nold 2\n\n## Task Progress\n")
    out = render_document(replace_section_body(doc, "## Agent Status", ["new"]))
    assert out == "## Agent Status\nnew\n\n## Task Progress\n"


def test_replace_missing_section_adds_header():
    doc = parse_document("# Title\n")
    out = render_document(replace_section_body(doc, "## Agent Status", ["new"]))
    assert out == "# Title\n\n## Agent Status\n\nnew\n"


# ---------------------------------------------------------------------------
# rewrite_line
# ---------------------------------------------------------------------------


def test_rewrite_header_line():
    doc = parse_document("## Task 1: Parser\nbody\n## Task 2: CLI\n")
    updated, changed = rewrite_line(
        doc, re.compile(r"^(## Task 2: )(.*)$"), lambda m: f"{m.group(1)}COMPLETE - {m.group(2)}",
    )
    assert changed is True
    assert updated.headers() == ["## Task 1: Parser", "## Task 2: COMPLETE - CLI"]


def test_rewrite_no_match_returns_false():
    doc = parse_document("## Task 1: Parser\n")
    updated, changed = rewrite_line(doc, r"^## Task 9", lambda m: "x")
    assert changed is False
    assert render_document(updated) == "## Task 1: Parser\n"


def test_rewrite_headers_only_skips_fenced_lines():
    doc = parse_document("## Notes\n```\n## Task 1: Example\n```\n## Task 1: Real\n")
    pattern = re.compile(r"^(## Task 1: )(.*)$")

    updated, _ = rewrite_line(doc, pattern, lambda m: f"{m.group(1)}X", headers_only=True)
    assert updated.headers() == ["## Notes", "## Task 1: X"]
    assert "## Task 1: Example" in updated.section("## Notes").body


def test_rewrite_header_into_non_header_raises():
    doc = parse_document("## Task 1: Parser\n")
    with pytest.raises(ValueError):
        rewrite_line(doc, r"^## Task 1.*$", lambda m: "Task 1")


# ---------------------------------------------------------------------------
# Subsections
# ---------------------------------------------------------------------------


EXPORTS = """\
## Exported Components
### Agent 1 Exports
- **Workspace**: `src`
parse()

### Agent 2 Exports
- **Workspace**: `cli`
"""


def test_find_subsection_span():
    section = parse_document(EXPORTS).sections[0]
    assert find_subsection(section, "### Agent 1 Exports") == (0, 4)
    assert find_subsection(section, "### Agent 2 Exports") == (4, 6)
    assert find_subsection(section, "### Agent 3 Exports") is None


def test_append_to_subsection_before_trailing_blank():
    doc = parse_document(EXPORTS)
    updated, changed = append_to_subsection(
        doc, "## Exported Components", "### Agent 1 Exports", "- note",
    )
    assert changed is True
    assert updated.sections[0].body[:5] == [
        "### Agent 1 Exports", "- **Workspace**: `src`", "parse()", "- note", "",
    ]


def test_append_to_missing_subsection_is_noop():
    doc = parse_document(EXPORTS)
    updated, changed = append_to_subsection(
        doc, "## Exported Components", "### Agent 7 Exports", "- note",
    )
    assert changed is False
    assert render_document(updated) == EXPORTS
