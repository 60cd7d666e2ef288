"""Resume section splitting and reassembly.

Pure domain functions: no I/O, no side effects, fully deterministic, and total
(any input string yields a result; malformed LaTeX degrades to a single OTHER
section rather than raising).

Sections partition the whole document, preamble and postamble included, so

    "".join(section.content for section in sections)

reproduces the input byte for byte. That property is what lets the reconciler
swap individual sections without disturbing anything else in the file, and it
means edits to the preamble (packages, margins) show up in a section diff like
any other change.

Boundary detection, first match wins:
1. Marker comments written by the editor: ``% SECTION: EXPERIENCE``
2. LaTeX headings whose title names a known section, ``\\section{Work Experience}``
   or ``\\section*{Skills}``. ``\\subsection`` headings are only used when no
   ``\\section`` heading qualifies, so employer and project subsections stay
   inside the section that holds them.
3. Markdown headings for plain-text resumes: ``## Experience``

Headings with unrecognized titles are never boundaries; their text belongs to
the section they appear in.
"""

import re
from dataclasses import dataclass
from enum import StrEnum


class SectionType(StrEnum):
    """Section kinds recognized in a resume."""

    PREAMBLE = "PREAMBLE"
    EDUCATION = "EDUCATION"
    EXPERIENCE = "EXPERIENCE"
    PROJECTS = "PROJECTS"
    SKILLS = "SKILLS"
    ACHIEVEMENTS = "ACHIEVEMENTS"
    OTHER = "OTHER"
    POSTAMBLE = "POSTAMBLE"


_UNRECOGNIZED = frozenset({SectionType.PREAMBLE, SectionType.POSTAMBLE, SectionType.OTHER})


@dataclass(frozen=True)
class Section:
    """One named, contiguous region of a document.

    ``name`` is unique within a document: the first section of a kind is named
    after the kind, repeats get an ordinal suffix (``EXPERIENCE_2``).
    """

    name: str
    kind: SectionType
    content: str
    order_index: int

    @property
    def is_recognized(self) -> bool:
        return self.kind not in _UNRECOGNIZED


@dataclass(frozen=True)
class ParsedDocument:
    sections: tuple[Section, ...]

    def _frame(self, kind: SectionType) -> str:
        return next((section.content for section in self.sections if section.kind == kind), "")

    @property
    def preamble(self) -> str:
        """Everything up to and including \\begin{document}, plus blank lines before the first section."""
        return self._frame(SectionType.PREAMBLE)

    @property
    def postamble(self) -> str:
        """\\end{document} and everything after it."""
        return self._frame(SectionType.POSTAMBLE)

    @property
    def is_sectioned(self) -> bool:
        """True when at least one recognized resume section was found."""
        return any(section.is_recognized for section in self.sections)

    def section_map(self) -> dict[str, str]:
        return {section.name: section.content for section in self.sections}


_BEGIN_DOCUMENT = re.compile(r"\\begin\{document\}")
_END_DOCUMENT = re.compile(r"\\end\{document\}")

_MARKER = re.compile(r"^[ \t]*% SECTION: (\w+)[ \t]*$", re.MULTILINE)
_SECTION_HEADING = re.compile(r"\\section\*?\{([^}]*)\}")
_SUBSECTION_HEADING = re.compile(r"\\subsection\*?\{([^}]*)\}")
_MARKDOWN_HEADING = re.compile(r"^#{1,3}[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)

# Keyword classification of heading titles, checked in order
_KEYWORDS: tuple[tuple[SectionType, re.Pattern], ...] = (
    (
        SectionType.EXPERIENCE,
        re.compile(r"experience|employment|work\s*history|career", re.IGNORECASE),
    ),
    (
        SectionType.EDUCATION,
        re.compile(r"education|academic|qualification|training", re.IGNORECASE),
    ),
    (
        SectionType.PROJECTS,
        re.compile(r"projects|portfolio|work\s*samples", re.IGNORECASE),
    ),
    (
        SectionType.SKILLS,
        re.compile(r"skills|technologies|competencies|expertise|proficiencies", re.IGNORECASE),
    ),
    (
        SectionType.ACHIEVEMENTS,
        re.compile(r"achievements|awards|honou?rs|recognitions|accomplishments", re.IGNORECASE),
    ),
)


def classify_heading(title: str) -> SectionType:
    """Map a heading title to a section kind; unknown titles are OTHER."""
    for section_type, pattern in _KEYWORDS:
        if pattern.search(title):
            return section_type
    return SectionType.OTHER


def _marker_boundaries(body: str) -> list[tuple[int, SectionType]]:
    boundaries = []
    for match in _MARKER.finditer(body):
        name = match.group(1).upper()
        kind = SectionType(name) if name in SectionType.__members__ else SectionType.OTHER
        if kind in (SectionType.PREAMBLE, SectionType.POSTAMBLE):
            kind = SectionType.OTHER
        boundaries.append((match.start(), kind))
    return boundaries


def _heading_boundaries(body: str, pattern: re.Pattern) -> list[tuple[int, SectionType]]:
    boundaries = []
    for match in pattern.finditer(body):
        kind = classify_heading(match.group(1))
        if kind == SectionType.OTHER:
            continue
        start = match.start()
        # Pull a LaTeX heading's line indentation into the section it opens
        line_start = body.rfind("\n", 0, start) + 1
        if body[line_start:start].strip() == "":
            start = line_start
        boundaries.append((start, kind))
    return boundaries


def _split_body(body: str) -> tuple[str, list[tuple[SectionType, str]]] | None:
    """Return (leading_whitespace, [(kind, text), ...]), or None if the body has no boundaries."""
    boundaries = (
        _marker_boundaries(body)
        or _heading_boundaries(body, _SECTION_HEADING)
        or _heading_boundaries(body, _SUBSECTION_HEADING)
        or _heading_boundaries(body, _MARKDOWN_HEADING)
    )
    if not boundaries:
        return None

    chunks: list[tuple[SectionType, str]] = []
    lead = ""
    first_start = boundaries[0][0]
    header_block = body[:first_start]
    if header_block.strip():
        # Name, contact details and title block ahead of the first heading
        chunks.append((SectionType.OTHER, header_block))
    else:
        lead = header_block

    for index, (start, kind) in enumerate(boundaries):
        end = boundaries[index + 1][0] if index + 1 < len(boundaries) else len(body)
        chunks.append((kind, body[start:end]))

    return lead, chunks


def _name_sections(chunks: list[tuple[SectionType, str]]) -> tuple[Section, ...]:
    seen: dict[SectionType, int] = {}
    sections = []
    for order_index, (kind, content) in enumerate(chunks):
        seen[kind] = seen.get(kind, 0) + 1
        name = kind.value if seen[kind] == 1 else f"{kind.value}_{seen[kind]}"
        sections.append(Section(name=name, kind=kind, content=content, order_index=order_index))
    return tuple(sections)


def parse(content: str) -> ParsedDocument:
    """Split a document into PREAMBLE, named body sections and POSTAMBLE.

    The frame sections are left out when empty (plain-text resumes have
    neither).
    """
    begin = _BEGIN_DOCUMENT.search(content)
    if begin is None:
        preamble, body, postamble = "", content, ""
    else:
        preamble = content[: begin.end()]
        rest = content[begin.end() :]
        end = _END_DOCUMENT.search(rest)
        body_end = end.start() if end else len(rest)
        body, postamble = rest[:body_end], rest[body_end:]

    split_body = _split_body(body)
    if split_body is None:
        # No recognizable structure: the whole text is one OTHER section
        return ParsedDocument(
            sections=(Section(name=SectionType.OTHER.value, kind=SectionType.OTHER, content=content, order_index=0),)
        )

    lead, chunks = split_body
    if preamble + lead:
        chunks.insert(0, (SectionType.PREAMBLE, preamble + lead))
    if postamble:
        chunks.append((SectionType.POSTAMBLE, postamble))
    return ParsedDocument(sections=_name_sections(chunks))


def split(content: str) -> list[Section]:
    """Partition document text into named sections.

    Documents without recognizable structure come back as a single OTHER
    section holding the whole text.
    """
    return list(parse(content).sections)


def assemble(parsed: ParsedDocument) -> str:
    """Inverse of parse(): concatenate the sections in order."""
    ordered = sorted(parsed.sections, key=lambda section: section.order_index)
    return "".join(section.content for section in ordered)
