"""Section-level and whole-document diffing.

Pure domain functions: no I/O, no side effects, fully deterministic.

Section classification is byte-for-byte: a section is ``unchanged`` only when
its before and after texts are identical. Line counts use difflib and exist for
display only; they never drive merge decisions.
"""

import difflib
from dataclasses import dataclass
from enum import StrEnum

from app.domain.sections import Section


class ChangeType(StrEnum):
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class SectionProposal:
    section_name: str
    before: str
    after: str
    change_type: ChangeType


@dataclass(frozen=True)
class WholeDiff:
    has_changes: bool
    added_lines: int
    removed_lines: int


def diff_sections(before: list[Section], after: list[Section]) -> list[SectionProposal]:
    """Classify every section name found on either side.

    Names come out in ``before`` order, followed by names that only exist in
    ``after`` (in ``after`` order). A name missing on one side is compared as
    empty text, so added and removed sections surface as ``modified``.
    """
    before_map = {section.name: section.content for section in before}
    after_map = {section.name: section.content for section in after}

    names = list(before_map)
    names.extend(name for name in after_map if name not in before_map)

    proposals = []
    for name in names:
        before_text = before_map.get(name, "")
        after_text = after_map.get(name, "")
        change_type = ChangeType.UNCHANGED if before_text == after_text else ChangeType.MODIFIED
        proposals.append(
            SectionProposal(
                section_name=name,
                before=before_text,
                after=after_text,
                change_type=change_type,
            )
        )
    return proposals


def diff_whole(before: str, after: str) -> WholeDiff:
    """Whole-document comparison used when no section proposals exist."""
    if before == after:
        return WholeDiff(has_changes=False, added_lines=0, removed_lines=0)

    added = removed = 0
    for line in difflib.ndiff(before.splitlines(), after.splitlines()):
        if line.startswith("+ "):
            added += 1
        elif line.startswith("- "):
            removed += 1
    return WholeDiff(has_changes=True, added_lines=added, removed_lines=removed)


def unified_diff(before: str, after: str, before_label: str = "base", after_label: str = "proposed") -> str:
    """Unified diff text for display."""
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=before_label,
            tofile=after_label,
        )
    )
