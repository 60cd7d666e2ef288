"""Document renderer: LaTeX source in, PDF bytes or diagnostics out."""

import asyncio
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import structlog

from app.core.config import get_settings
from app.core.exceptions import ProviderFailureError, ProviderTimeoutError

logger = structlog.get_logger(__name__)

_ERROR_LINE = re.compile(r"^! ")
_SOURCE_LINE = re.compile(r"^l\.\d+ ")
_WARNING_LINE = re.compile(r"(?:LaTeX|Package \w+|Class \w+) Warning:|^Overfull |^Underfull ")


@dataclass(frozen=True)
class RenderResult:
    """Outcome of one render. ``artifact`` is None when rendering failed."""

    artifact: bytes | None
    diagnostics: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.artifact is not None


class DocumentRenderer(Protocol):
    async def render(self, source: str) -> RenderResult:
        """Render ``source``.

        Compile failures are results, not exceptions. Raises only when the
        renderer itself could not run (missing binary, timeout).
        """
        ...


def parse_log(log: str) -> tuple[list[str], list[str]]:
    """Split a TeX log into (errors, warnings), keeping raw message text.

    An error line is joined with the ``l.<n>`` source-location line that
    follows it, when present.
    """
    errors: list[str] = []
    warnings: list[str] = []
    lines = log.splitlines()
    for index, line in enumerate(lines):
        if _ERROR_LINE.match(line):
            message = line
            for follow in lines[index + 1 : index + 8]:
                if _SOURCE_LINE.match(follow):
                    message = f"{line} ({follow.strip()})"
                    break
            errors.append(message)
        elif _WARNING_LINE.search(line):
            warnings.append(line.strip())
    return errors, warnings


class PdflatexRenderer:
    """Runs a TeX engine in a throwaway directory."""

    def __init__(self, command: str | None = None, timeout_seconds: float | None = None):
        settings = get_settings()
        self.command = command or settings.renderer_command
        self.timeout_seconds = timeout_seconds or settings.renderer_timeout_seconds

    async def render(self, source: str) -> RenderResult:
        with tempfile.TemporaryDirectory(prefix="render-") as workdir:
            (Path(workdir) / "main.tex").write_text(source, encoding="utf-8")

            try:
                proc = await asyncio.create_subprocess_exec(
                    self.command,
                    "-interaction=nonstopmode",
                    "-halt-on-error",
                    "main.tex",
                    cwd=workdir,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
            except FileNotFoundError as exc:
                raise ProviderFailureError(f"Renderer command not found: {self.command}") from exc

            try:
                stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
            except TimeoutError as exc:
                proc.kill()
                await proc.wait()
                raise ProviderTimeoutError(self.command, self.timeout_seconds) from exc

            errors, warnings = parse_log(stdout.decode("utf-8", errors="replace"))
            pdf_path = Path(workdir) / "main.pdf"

            if proc.returncode == 0 and pdf_path.exists():
                return RenderResult(artifact=pdf_path.read_bytes(), diagnostics=warnings)

            logger.info("render_failed", command=self.command, returncode=proc.returncode, error_count=len(errors))
            if not errors:
                errors = [f"{self.command} exited with status {proc.returncode}"]
            return RenderResult(artifact=None, diagnostics=errors + warnings)
