"""CompileCoordinator: renders a DRAFT version and records the outcome.

Compile failures are an expected, user-facing result: the version moves to
ERROR and the raw diagnostics are returned, nothing is raised. Only storage
failures after a successful render raise, leaving the version DRAFT so the
compile can be retried.
"""

from dataclasses import dataclass, field
from uuid import UUID

import structlog

from app.core.exceptions import InvalidStateError, ProviderFailureError
from app.providers.renderer import DocumentRenderer
from app.providers.storage import ObjectStorage
from app.schemas.versions import CompileStatus, VersionStatus
from app.services.version_store import VersionStore

logger = structlog.get_logger(__name__)

ARTIFACT_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class CompileResult:
    status: CompileStatus
    artifact_url: str | None = None
    diagnostics: list[str] = field(default_factory=list)


def artifact_key(project_id: UUID, version_id: UUID) -> str:
    return f"projects/{project_id}/versions/{version_id}.pdf"


class CompileCoordinator:
    def __init__(self, version_store: VersionStore, renderer: DocumentRenderer, storage: ObjectStorage):
        self.version_store = version_store
        self.renderer = renderer
        self.storage = storage

    async def compile(self, version_id: UUID) -> CompileResult:
        """Render a DRAFT version.

        Raises:
            NotFoundError: version missing
            InvalidStateError: version already compiled or errored
            ProviderFailureError: artifact upload failed
        """
        version = await self.version_store.get_version(version_id)
        if version.status != VersionStatus.DRAFT:
            raise InvalidStateError(f"Version {version_id} is {version.status}; only DRAFT versions can be compiled")

        try:
            rendered = await self.renderer.render(version.content)
        except Exception as exc:
            logger.warning(
                "compile_renderer_crashed",
                version_id=str(version_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            diagnostics = [str(exc) or type(exc).__name__]
            await self.version_store.mark_error(version_id, diagnostics)
            return CompileResult(status=CompileStatus.ERROR, diagnostics=diagnostics)

        if not rendered.succeeded:
            diagnostics = list(rendered.diagnostics)
            await self.version_store.mark_error(version_id, diagnostics)
            logger.info("compile_failed", version_id=str(version_id), diagnostic_count=len(diagnostics))
            return CompileResult(status=CompileStatus.ERROR, diagnostics=diagnostics)

        try:
            artifact_url = await self.storage.put(
                artifact_key(version.project_id, version.id), rendered.artifact, ARTIFACT_CONTENT_TYPE
            )
        except Exception as exc:
            logger.error("artifact_upload_failed", version_id=str(version_id), error=str(exc), exc_info=True)
            raise ProviderFailureError(f"Artifact upload failed: {exc}") from exc

        diagnostics = list(rendered.diagnostics)
        await self.version_store.mark_compiled(version_id, artifact_url, diagnostics)

        status = CompileStatus.WARNING if diagnostics else CompileStatus.SUCCESS
        logger.info("compile_succeeded", version_id=str(version_id), status=status.value)
        return CompileResult(status=status, artifact_url=artifact_url, diagnostics=diagnostics)
