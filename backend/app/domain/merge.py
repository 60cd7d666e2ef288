"""Section-selective merge of a proposal into its base document.

Pure domain function: no I/O, no side effects, fully deterministic.
"""

from app.domain.diff import ChangeType, SectionProposal
from app.domain.sections import ParsedDocument


def merge_sections(
    base: ParsedDocument,
    proposed: ParsedDocument,
    proposals: list[SectionProposal],
    accepted: set[str],
) -> str:
    """Rebuild the base document with the accepted sections swapped in.

    Walks the base sections in their original order: a section takes its
    proposed text only when it is both accepted and modified, otherwise the
    base text is kept byte for byte. An accepted section that exists only in
    the proposal goes right after the base section it follows in the proposal
    (or first, when nothing precedes it). PREAMBLE and POSTAMBLE are merged
    like any other section.

    Accepting every modified section reproduces the proposal exactly, and
    accepting none reproduces the base.

    Args:
        base: Parsed base document
        proposed: Parsed proposal document
        proposals: Output of diff_sections(base sections, proposal sections)
        accepted: Section names the user chose to apply

    Returns:
        The merged document text
    """
    by_name = {proposal.section_name: proposal for proposal in proposals}
    base_sections = sorted(base.sections, key=lambda s: s.order_index)
    base_names = {section.name for section in base_sections}

    # Anchor each accepted proposal-only section on the nearest base section before it
    inserted_after: dict[str | None, list[str]] = {}
    anchor = None
    for section in sorted(proposed.sections, key=lambda s: s.order_index):
        if section.name in base_names:
            anchor = section.name
        elif section.name in accepted:
            inserted_after.setdefault(anchor, []).append(section.content)

    parts = list(inserted_after.get(None, []))
    for section in base_sections:
        proposal = by_name.get(section.name)
        if proposal and proposal.change_type == ChangeType.MODIFIED and section.name in accepted:
            parts.append(proposal.after)
        else:
            parts.append(section.content)
        parts.extend(inserted_after.get(section.name, []))

    return "".join(parts)
