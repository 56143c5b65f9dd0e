# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Ecosystem loaders: project detection and file rewriting.

The engine never inspects manifest syntax. Each ecosystem is one
:class:`Loader`, and the registry iterates the registered set without
knowing which ecosystems exist. Bundled loaders:

    ┌──────────┬──────────────────────────────┬─────────┬──────────┐
    │ Loader   │ Manifest                     │ Scheme  │ Priority │
    ├──────────┼──────────────────────────────┼─────────┼──────────┤
    │ pypa     │ pyproject.toml               │ pep440  │ 20       │
    │ cargo    │ Cargo.toml                   │ semver  │ 10       │
    │ npm      │ package.json                 │ semver  │ 5        │
    │ dotnet   │ Properties/AssemblyInfo.cs   │ quad    │ 0        │
    └──────────┴──────────────────────────────┴─────────┴──────────┘

When two loaders detect a project at the same prefix (a maturin crate
has both ``Cargo.toml`` and ``pyproject.toml``), the higher priority
wins and the other project is ignored.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from jitver.project import InternalDependency, ProjectMetadata
from jitver.version import Version


@runtime_checkable
class Loader(Protocol):
    """Protocol for one packaging ecosystem.

    Attributes:
        name: Ecosystem tag used in qualified names.
        priority: Tie-breaker when two loaders claim the same prefix.
    """

    name: str
    priority: int

    def detect(self, path: str) -> ProjectMetadata | None:
        """Return metadata if the tracked file ``path`` defines a project."""
        ...

    def read_version(self, meta: ProjectMetadata) -> Version:
        """Read the version currently written in the project's files."""
        ...

    def read_internal_deps(self, meta: ProjectMetadata) -> list[InternalDependency]:
        """Read dependencies that may refer to other projects of the repository."""
        ...

    def write_version(self, meta: ProjectMetadata, version: Version) -> list[str]:
        """Rewrite the project's version. Returns the changed paths."""
        ...

    def write_internal_dep_requirement(
        self,
        meta: ProjectMetadata,
        dependee_qname: str,
        min_version: Version,
    ) -> list[str]:
        """Rewrite the requirement on ``dependee_qname`` to ``>= min_version``.

        Returns the changed paths.
        """
        ...


def default_loaders(root: Path) -> Sequence[Loader]:
    """Return the bundled loaders for the working tree at ``root``."""
    from jitver.loaders.cargo import CargoLoader
    from jitver.loaders.dotnet import DotnetLoader
    from jitver.loaders.npm import NpmLoader
    from jitver.loaders.pypa import PypaLoader

    return [PypaLoader(root), CargoLoader(root), NpmLoader(root), DotnetLoader(root)]


__all__ = [
    'Loader',
    'default_loaders',
]
