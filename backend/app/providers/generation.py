"""Generation provider contract, prompt construction and response cleanup.

Providers take a GenerationRequest and return raw text. Turning that text into
a usable document (fence stripping, sanity checks) happens here so every
provider is held to the same rules.
"""

from dataclasses import dataclass
from typing import Protocol

from app.core.exceptions import MalformedProviderResponseError

DOCUMENT_BEGIN = "\\begin{document}"
DOCUMENT_END = "\\end{document}"


@dataclass(frozen=True)
class GenerationRequest:
    """Everything a provider sees for one job."""

    base_content: str
    instructions: str | None = None
    job_context: str | None = None
    # Refine jobs: the proposal being iterated on
    previous_proposal: str | None = None


class GenerationProvider(Protocol):
    """Generative text backend: prompt in, candidate document out."""

    name: str

    async def generate(self, request: GenerationRequest) -> str:
        """Return the candidate replacement document as raw text.

        Raises:
            ProviderFailureError: the backend failed or refused the request
        """
        ...


SYSTEM_PROMPT = """You are an expert resume optimization assistant specializing in LaTeX resume tailoring.

Your task:
- Analyze the provided job description and instructions
- Modify the LaTeX resume to align with them
- Preserve ALL LaTeX structure, formatting, and commands
- Only modify content (text within LaTeX commands), NEVER change LaTeX syntax
- Keep every "% SECTION:" marker line exactly as it is

Constraints:
- Output ONLY valid LaTeX code for the complete document
- Do NOT add explanations or markdown
- Do NOT change document class, packages, or formatting
- Do NOT invent experience or skills
- Do NOT remove sections entirely"""


def build_prompt(request: GenerationRequest) -> tuple[str, list[dict]]:
    """Build (system, messages) for a chat-style provider call."""
    parts = [f"Base Resume (LaTeX):\n```latex\n{request.base_content}\n```"]

    if request.job_context:
        parts.append(f"Job Description:\n```\n{request.job_context}\n```")

    if request.previous_proposal:
        parts.append(
            "Your previous proposal, which the user wants revised:\n"
            f"```latex\n{request.previous_proposal}\n```"
        )

    if request.instructions:
        parts.append(f"Instructions:\n{request.instructions}")

    parts.append("Return ONLY the complete LaTeX code of the tailored resume.")

    return SYSTEM_PROMPT, [{"role": "user", "content": "\n\n".join(parts)}]


def strip_code_fences(content: str) -> str:
    """Remove a markdown code fence (```latex ... ```) wrapping the document.

    Unfenced text is returned untouched.
    """
    stripped = content.strip()
    if not stripped.startswith("```"):
        return content

    first_newline = stripped.find("\n")
    body = stripped[first_newline + 1 :].rstrip() if first_newline != -1 else ""
    if body.endswith("```"):
        body = body[:-3]
    body = body.strip("\n")
    return body + "\n" if body.strip() else ""


def extract_document(raw: object, base_content: str) -> str:
    """Validate provider output and return the cleaned document.

    Raises:
        MalformedProviderResponseError: output is not text, is empty after
            cleanup, or is missing a \\begin{document} or \\end{document}
            that the base version has
    """
    if not isinstance(raw, str):
        raise MalformedProviderResponseError(
            f"Malformed provider response: expected text, got {type(raw).__name__}"
        )

    content = strip_code_fences(raw)
    if not content.strip():
        raise MalformedProviderResponseError("Malformed provider response: empty content")

    if DOCUMENT_BEGIN in base_content and DOCUMENT_BEGIN not in content:
        raise MalformedProviderResponseError(
            "Malformed provider response: missing \\begin{document}; the response is not a complete LaTeX document"
        )
    if DOCUMENT_END in base_content and DOCUMENT_END not in content:
        raise MalformedProviderResponseError(
            "Malformed provider response: missing \\end{document}; the response was cut off"
        )

    return content
