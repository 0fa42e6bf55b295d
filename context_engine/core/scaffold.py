"""Local documentation scaffold under ``<project_root>/.context-engine``.

The scaffold is three subdirectories plus two JSON config files:

    .context-engine/
        implementation/
        requirements/
        config/
            settings.json
            workflows.json

Synchronization is idempotent and lock-free: directory creation tolerates
existing directories and config writes are last-writer-wins, so concurrent
calls against the same root converge on the same layout.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import aiofiles
import aiofiles.os

from context_engine.core.errors import FilesystemError, ValidationError

_log = logging.getLogger("context_engine.scaffold")

CONTEXT_ENGINE_DIR = ".context-engine"
IMPLEMENTATION_DIR = "implementation"
REQUIREMENTS_DIR = "requirements"
CONFIG_DIR = "config"
SETTINGS_FILE = "settings.json"
WORKFLOWS_FILE = "workflows.json"
SCAFFOLD_VERSION = "1.0.0"

MESSAGE_ALREADY_COMPLETE = "Documentation structure already exists and is complete"
MESSAGE_SETUP_COMPLETED = "Documentation structure setup completed successfully"


@dataclass(frozen=True)
class ScaffoldStatus:
    """On-disk existence of each scaffold entry. Read fresh, never cached."""

    exists: bool = False
    implementation: bool = False
    requirements: bool = False
    config: bool = False
    settings: bool = False
    workflows: bool = False

    @property
    def structure_complete(self) -> bool:
        return self.exists and self.implementation and self.requirements and self.config

    @property
    def config_files_complete(self) -> bool:
        return self.settings and self.workflows

    @property
    def complete(self) -> bool:
        return self.structure_complete and self.config_files_complete

    def to_dict(self) -> dict[str, Any]:
        return {
            "exists": self.exists,
            "structure": {
                "implementation": self.implementation,
                "requirements": self.requirements,
                "config": self.config,
            },
            "configFiles": {
                "settings": self.settings,
                "workflows": self.workflows,
            },
        }


@dataclass(frozen=True)
class SetupResult:
    success: bool
    message: str
    status: ScaffoldStatus


def base_path(project_root: str) -> str:
    return os.path.join(project_root, CONTEXT_ENGINE_DIR)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_settings() -> dict[str, Any]:
    return {
        "version": SCAFFOLD_VERSION,
        "engine": {
            "autoSetup": True,
            "defaultWorkflow": "task-documentation",
        },
        "documentation": {
            "format": "markdown",
            "autoSync": True,
        },
        "created": _timestamp(),
    }


def default_workflows() -> dict[str, Any]:
    return {
        "version": SCAFFOLD_VERSION,
        "workflows": {
            "plan-documentation": {
                "name": "Plan Documentation",
                "description": (
                    "Create comprehensive strategic documentation for projects "
                    "or major components"
                ),
                "enabled": True,
            },
            "task-documentation": {
                "name": "Task Documentation",
                "description": "Create detailed implementation specifications for specific work items",
                "enabled": True,
            },
            "task-implementation": {
                "name": "Task Implementation",
                "description": (
                    "Transform documented requirements into working code "
                    "following test-driven development"
                ),
                "enabled": True,
            },
        },
        "created": _timestamp(),
    }


class ScaffoldSynchronizer:
    """Checks and creates the documentation scaffold for a project root."""

    async def check(self, project_root: str) -> ScaffoldStatus:
        """Report which scaffold entries exist. Never raises."""
        try:
            root = base_path(project_root)
            # aiofiles' exists() already reports inaccessible paths as missing.
            if not await aiofiles.os.path.exists(root):
                return ScaffoldStatus()

            config_dir = os.path.join(root, CONFIG_DIR)
            return ScaffoldStatus(
                exists=True,
                implementation=await aiofiles.os.path.exists(
                    os.path.join(root, IMPLEMENTATION_DIR)
                ),
                requirements=await aiofiles.os.path.exists(os.path.join(root, REQUIREMENTS_DIR)),
                config=await aiofiles.os.path.exists(config_dir),
                settings=await aiofiles.os.path.exists(os.path.join(config_dir, SETTINGS_FILE)),
                workflows=await aiofiles.os.path.exists(os.path.join(config_dir, WORKFLOWS_FILE)),
            )
        except Exception as e:
            _log.error(
                "Error checking documentation structure",
                extra={"project_root": project_root, "error": str(e)},
            )
            return ScaffoldStatus()

    async def create_structure(self, project_root: str) -> None:
        """Create the base directory and its three subdirectories (idempotent)."""
        root = base_path(project_root)
        try:
            await aiofiles.os.makedirs(root, exist_ok=True)
            for name in (IMPLEMENTATION_DIR, REQUIREMENTS_DIR, CONFIG_DIR):
                await aiofiles.os.makedirs(os.path.join(root, name), exist_ok=True)
        except OSError as e:
            _log.error(
                "Error creating documentation structure",
                extra={"project_root": project_root, "error": str(e)},
            )
            raise FilesystemError(f"Failed to create documentation structure: {e}") from e
        _log.info("ContextEngine documentation structure created successfully")

    async def create_default_config_files(self, project_root: str) -> None:
        """Write settings.json and workflows.json, overwriting existing content."""
        config_dir = os.path.join(base_path(project_root), CONFIG_DIR)
        documents = {
            SETTINGS_FILE: default_settings(),
            WORKFLOWS_FILE: default_workflows(),
        }
        try:
            for file_name, payload in documents.items():
                async with aiofiles.open(
                    os.path.join(config_dir, file_name), "w", encoding="utf-8"
                ) as f:
                    await f.write(json.dumps(payload, indent=2))
        except OSError as e:
            _log.error(
                "Error creating default config files",
                extra={"project_root": project_root, "error": str(e)},
            )
            raise FilesystemError(f"Failed to create default config files: {e}") from e
        _log.info("Default configuration files created successfully")

    async def synchronize(self, project_root: str) -> SetupResult:
        """Bring the scaffold to its complete state without destroying content.

        Raises:
            ValidationError: if ``project_root`` is missing or empty.
        """
        if not project_root:
            raise ValidationError("Project root directory is required for documentation setup")

        try:
            status = await self.check(project_root)
            if status.complete:
                return SetupResult(success=True, message=MESSAGE_ALREADY_COMPLETE, status=status)

            if not status.structure_complete:
                await self.create_structure(project_root)

            if not status.config_files_complete:
                await self.create_default_config_files(project_root)

            final_status = await self.check(project_root)
            return SetupResult(success=True, message=MESSAGE_SETUP_COMPLETED, status=final_status)
        except Exception as e:
            _log.error(
                "Error in documentation structure setup",
                extra={"project_root": project_root, "error": str(e)},
            )
            return SetupResult(
                success=False,
                message=f"Failed to setup documentation structure: {e}",
                status=await self.check(project_root),
            )
