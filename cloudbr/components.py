# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Component resolution boundary.

Downloading and installing tool versions is handled elsewhere; cloudbr
only asks for the executable of a component at a given version.
"""

import os
from pathlib import Path
from typing import Protocol

import structlog

from cloudbr.exceptions import ToolLaunchError
from cloudbr.tools.command import ToolBinary

logger = structlog.get_logger()


class ComponentResolver(Protocol):
    """Resolves a component name and version to an installed executable."""

    def resolve(self, component: str, version: str) -> ToolBinary:
        ...


class DirectoryComponentResolver:
    """
    Resolves components installed as ``<root>/<component>/<version>/<component>``.

    This is the layout of a local component mirror.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def resolve(self, component: str, version: str) -> ToolBinary:
        """
        Args:
            component: Component name, e.g. 'br' or 'ctl'
            version: Version string, e.g. 'v5.0.0'

        Raises:
            ToolLaunchError: If the executable is missing or not executable
        """
        path = self.root / component / version / component
        if not path.is_file():
            raise ToolLaunchError(
                f"Component {component} {version} is not installed",
                details={"path": str(path)},
            )
        if not os.access(path, os.X_OK):
            raise ToolLaunchError(
                f"Component {component} {version} is not executable",
                details={"path": str(path)},
            )
        logger.debug("component_resolved", component=component, version=version, path=str(path))
        return ToolBinary(path=str(path), version=version)
