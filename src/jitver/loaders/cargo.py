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

"""Rust (``Cargo.toml``) loader.

Path dependencies are internal candidates. The commit each one requires
lives in the package metadata table, which cargo ignores::

    [dependencies]
    foo_lib = { path = "../foo_lib", version = "0.0.0-dev.0" }

    [package.metadata.jitver.internal-deps]
    foo_lib = "c7a1e2..."

On release the dependency's ``version`` key becomes ``">=<resolved>"``.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit

from jitver.errors import E, ParseError
from jitver.loaders._files import dirname_prefix, read_toml, table, write_text_if_changed
from jitver.project import DepRequirement, InternalDependency, ProjectMetadata
from jitver.version import Scheme, Version, parse

DEPENDENCY_SECTIONS = ('dependencies', 'dev-dependencies', 'build-dependencies')
MANUAL_PREFIX = 'manual:'


def _path_dependencies(doc: dict) -> list[tuple[str, dict]]:
    """Return ``(package name, table)`` for every path dependency."""
    found: list[tuple[str, dict]] = []
    for section in DEPENDENCY_SECTIONS:
        for key, value in table(doc, section).items():
            if isinstance(value, dict) and 'path' in value:
                found.append((str(value.get('package', key)), value))
    return found


class CargoLoader:
    """Loader for Cargo packages."""

    name = 'cargo'
    priority = 10

    def __init__(self, root: Path) -> None:
        """Initialize with the working tree root."""
        self._root = root

    def detect(self, path: str) -> ProjectMetadata | None:
        """Detect a ``Cargo.toml`` with a ``[package]`` table.

        Virtual workspace manifests have no ``[package]`` and are skipped.
        """
        if path.rpartition('/')[2] != 'Cargo.toml':
            return None
        _, doc = read_toml(self._root, path)
        name = table(doc, 'package').get('name')
        if not isinstance(name, str):
            return None
        return ProjectMetadata(
            qname=f'{self.name}:{name}',
            name=str(name),
            prefix=dirname_prefix(path),
            manifest=path,
            scheme=Scheme.SEMVER,
            loader=self.name,
        )

    def read_version(self, meta: ProjectMetadata) -> Version:
        """Read ``[package].version``."""
        _, doc = read_toml(self._root, meta.manifest)
        version = table(doc, 'package').get('version')
        if not isinstance(version, str):
            raise ParseError(
                code=E.MANIFEST_PARSE_ERROR,
                message=f'{meta.manifest} has no [package].version string.',
            )
        return parse(Scheme.SEMVER, version)

    def read_internal_deps(self, meta: ProjectMetadata) -> list[InternalDependency]:
        """Read path dependencies and their commit anchors."""
        _, doc = read_toml(self._root, meta.manifest)
        anchors = table(doc, 'package', 'metadata', 'jitver', 'internal-deps')

        found: dict[str, InternalDependency] = {}
        for name, _ in _path_dependencies(doc):
            anchor = anchors.get(name)
            if anchor is None:
                requirement = DepRequirement.unavailable()
            elif str(anchor).startswith(MANUAL_PREFIX):
                requirement = DepRequirement.manual(str(anchor)[len(MANUAL_PREFIX) :].strip())
            else:
                requirement = DepRequirement.commit(str(anchor))
            found.setdefault(name, InternalDependency(meta.qname, f'{self.name}:{name}', requirement))
        return list(found.values())

    def write_version(self, meta: ProjectMetadata, version: Version) -> list[str]:
        """Rewrite ``[package].version``."""
        text, doc = read_toml(self._root, meta.manifest)
        doc['package']['version'] = str(version)
        return write_text_if_changed(self._root, meta.manifest, text, tomlkit.dumps(doc))

    def write_internal_dep_requirement(
        self,
        meta: ProjectMetadata,
        dependee_qname: str,
        min_version: Version,
    ) -> list[str]:
        """Set ``version = ">=<min>"`` on every path dependency on the dependee."""
        dependee = dependee_qname.partition(':')[2]
        text, doc = read_toml(self._root, meta.manifest)
        for name, dep in _path_dependencies(doc):
            if name == dependee:
                dep['version'] = f'>={min_version}'
        return write_text_if_changed(self._root, meta.manifest, text, tomlkit.dumps(doc))


__all__ = [
    'CargoLoader',
]
