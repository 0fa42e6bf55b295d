"""Start-the-engine orchestration: local scaffold first, remote API second."""

import logging
from typing import Protocol

from context_engine.core.errors import RemoteCallError, ValidationError
from context_engine.core.scaffold import ScaffoldSynchronizer, SetupResult

_log = logging.getLogger("context_engine.engine")

FAILURE_PREFIX = "❌"
WARNING_PREFIX = "⚠️"
LOCAL_STATUS_LABEL = "📁 Local Documentation Structure:"


class EngineStarter(Protocol):
    async def start_context_engine(self) -> str: ...


class ContextEngineOrchestrator:
    """Runs one start-the-engine invocation.

    The scaffold is synchronized before the remote call; a failed scaffold
    stops the invocation before any network traffic.
    """

    def __init__(
        self,
        client: EngineStarter,
        synchronizer: ScaffoldSynchronizer | None = None,
    ) -> None:
        self.client = client
        self.synchronizer = synchronizer or ScaffoldSynchronizer()

    async def start(self, project_root: object) -> str:
        """Start the context engine for ``project_root`` and compose the result text.

        Raises:
            ValidationError: if ``project_root`` is not a non-empty string.
            RemoteCallError: if the API call fails after the scaffold succeeded.
        """
        if not isinstance(project_root, str) or not project_root:
            raise ValidationError(
                "Project root directory is required for context engine initialization"
            )

        _log.info("Setting up local documentation structure", extra={"project_root": project_root})
        try:
            setup_result: SetupResult = await self.synchronizer.synchronize(project_root)
        except Exception as e:
            _log.error("Local documentation structure setup failed", extra={"error": str(e)})
            return f"{FAILURE_PREFIX} Failed to setup local documentation structure: {e}"

        if not setup_result.success:
            _log.warning(
                "Local documentation structure setup failed",
                extra={"status": setup_result.status.to_dict()},
            )
            return f"{FAILURE_PREFIX} Failed to setup local documentation structure: {setup_result.message}"

        _log.info(
            "Local documentation structure setup completed",
            extra={"status": setup_result.status.to_dict()},
        )
        documentation_status = f"{LOCAL_STATUS_LABEL} {setup_result.message}"

        _log.info("Starting ContextEngine via API")
        try:
            api_response = await self.client.start_context_engine()
        except RemoteCallError as e:
            _log.error("ContextEngine API call failed", extra={"error": str(e)})
            raise RemoteCallError(
                f"{WARNING_PREFIX} ContextEngine API call failed: {e}",
                status_code=e.status_code,
            ) from e

        _log.info("ContextEngine API call successful")
        return f"{api_response}\n\n{documentation_status}"
