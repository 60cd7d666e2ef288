"""Scenario-based test doubles for the generation, renderer and storage providers.

Deterministic and instant (no network, no TeX install). Also selectable at
runtime with GENERATION_PROVIDER=fake for local development.

Generation scenarios:
- happy_path: tailors the first recognized section (or appends a comment to an
  unsectioned document)
- echo: returns the base content unchanged
- provider_error: the backend fails
- malformed: the backend answers with blank text
- hang: the backend never answers (exercises the orchestrator timeout)
"""

import asyncio

from app.core.exceptions import ProviderFailureError
from app.domain.sections import parse
from app.providers.generation import GenerationRequest
from app.providers.renderer import RenderResult


class FakeGenerationProvider:
    """Scenario-based test double for GenerationProvider."""

    name = "fake"

    VALID_SCENARIOS = {"happy_path", "echo", "provider_error", "malformed", "hang"}

    def __init__(self, scenario: str = "happy_path", response: str | None = None, delay: float = 0.0):
        """Initialize with a named scenario.

        Args:
            scenario: One of VALID_SCENARIOS
            response: Fixed text returned by happy_path instead of the tailored base
            delay: Seconds to wait before answering

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}")
        self.scenario = scenario
        self.response = response
        self.delay = delay
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.scenario == "provider_error":
            raise ProviderFailureError("Generation provider error: upstream returned HTTP 500")
        if self.scenario == "malformed":
            return "   \n"
        if self.scenario == "hang":
            await asyncio.Event().wait()
        if self.scenario == "echo":
            return request.base_content
        if self.response is not None:
            return self.response
        return _tailor(request)


def _tailor(request: GenerationRequest) -> str:
    note = f"% Tailored: {request.instructions or 'match the job description'}\n"
    parsed = parse(request.base_content)
    if not parsed.is_sectioned:
        return request.base_content.rstrip("\n") + "\n" + note

    target = next(section for section in parsed.sections if section.is_recognized)
    parts = []
    for section in parsed.sections:
        if section is target:
            text = section.content if section.content.endswith("\n") else section.content + "\n"
            parts.append(text + note)
        else:
            parts.append(section.content)
    return "".join(parts)


class FakeRenderer:
    """Renderer double with TeX-like diagnostics.

    - Missing \\begin{document} or unbalanced braces: error, no artifact
    - ``\\todo`` anywhere: artifact plus a warning
    - crash=True: raises, as a missing TeX binary would
    """

    def __init__(self, crash: bool = False):
        self.crash = crash
        self.sources: list[str] = []

    async def render(self, source: str) -> RenderResult:
        self.sources.append(source)
        if self.crash:
            raise ProviderFailureError("Renderer command not found: pdflatex")

        errors = []
        if "\\begin{document}" not in source:
            errors.append("! LaTeX Error: Missing \\begin{document}.")
        if source.count("{") != source.count("}"):
            errors.append("! Missing } inserted.")
        if errors:
            return RenderResult(artifact=None, diagnostics=errors)

        warnings = []
        if "\\todo" in source:
            warnings.append("LaTeX Warning: Reference to unfinished content (\\todo) on input line 1.")
        return RenderResult(artifact=b"%PDF-1.5\n" + source.encode("utf-8"), diagnostics=warnings)


class InMemoryObjectStorage:
    """ObjectStorage double keeping uploads in a dict."""

    def __init__(self, base_url: str = "https://artifacts.test"):
        self.base_url = base_url
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.objects[key] = (data, content_type)
        return f"{self.base_url}/{key}"
