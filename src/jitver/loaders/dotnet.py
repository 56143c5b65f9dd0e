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

""".NET (``Properties/AssemblyInfo.cs``) loader.

Assembly versions are four-component quads. The project's name is the
directory holding ``Properties/``::

    Tool/Properties/AssemblyInfo.cs  ->  dotnet:Tool, prefix "Tool/"

Assemblies have no internal dependency metadata.
"""

from __future__ import annotations

import re
from pathlib import Path

from jitver.errors import E, ParseError
from jitver.loaders._files import read_text, write_text_if_changed
from jitver.project import InternalDependency, ProjectMetadata
from jitver.version import Scheme, Version, parse

ASSEMBLY_INFO = 'Properties/AssemblyInfo.cs'
_VERSION_RE = re.compile(r'(\[assembly:\s*Assembly(?:File)?Version\(\s*")([^"]*)("\s*\)\])')
_ASSEMBLY_VERSION_RE = re.compile(r'\[assembly:\s*AssemblyVersion\(\s*"([^"]*)"\s*\)\]')


class DotnetLoader:
    """Loader for .NET assemblies."""

    name = 'dotnet'
    priority = 0

    def __init__(self, root: Path) -> None:
        """Initialize with the working tree root."""
        self._root = root

    def detect(self, path: str) -> ProjectMetadata | None:
        """Detect ``<dir>/Properties/AssemblyInfo.cs``."""
        if path != ASSEMBLY_INFO and not path.endswith('/' + ASSEMBLY_INFO):
            return None
        prefix = path[: -len(ASSEMBLY_INFO)]
        name = prefix.rstrip('/').rpartition('/')[2] or self._root.name
        return ProjectMetadata(
            qname=f'{self.name}:{name}',
            name=name,
            prefix=prefix,
            manifest=path,
            scheme=Scheme.QUAD,
            loader=self.name,
        )

    def read_version(self, meta: ProjectMetadata) -> Version:
        """Read the ``AssemblyVersion`` attribute."""
        m = _ASSEMBLY_VERSION_RE.search(read_text(self._root, meta.manifest))
        if m is None:
            raise ParseError(
                code=E.MANIFEST_PARSE_ERROR,
                message=f'No [assembly: AssemblyVersion("...")] attribute in {meta.manifest}.',
            )
        return parse(Scheme.QUAD, m.group(1))

    def read_internal_deps(self, meta: ProjectMetadata) -> list[InternalDependency]:
        """Assemblies declare no internal dependencies."""
        return []

    def write_version(self, meta: ProjectMetadata, version: Version) -> list[str]:
        """Rewrite ``AssemblyVersion`` and ``AssemblyFileVersion``."""
        text = read_text(self._root, meta.manifest)
        new_text = _VERSION_RE.sub(lambda m: f'{m.group(1)}{version}{m.group(3)}', text)
        return write_text_if_changed(self._root, meta.manifest, text, new_text)

    def write_internal_dep_requirement(
        self,
        meta: ProjectMetadata,
        dependee_qname: str,
        min_version: Version,
    ) -> list[str]:
        """Nothing to rewrite."""
        return []


__all__ = [
    'DotnetLoader',
]
