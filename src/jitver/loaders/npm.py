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


"""npm (``package.json``) loader.

A ``package.json`` defines a project when it has a string ``name`` and
at least one content key, so that workspace-root manifests holding only
scripts and dev tooling are skipped. Qualified names keep the scope, as
in ``npm:@scope/pkg``.

Any entry of ``dependencies``, ``devDependencies`` or
``optionalDependencies`` may name another project of the repository.
The commit each one requires is kept under a ``jitver`` key, which npm
ignores::

    {
      "name": "@scope/cli",
      "version": "0.0.0-dev.0",
      "dependencies": {"@scope/lib": "0.0.0-dev.0", "chalk": "^5"},
      "jitver": {"internalDeps": {"@scope/lib": "c7a1e2..."}}
    }

On release the entry becomes ``">=<resolved version>"``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jitver.errors import E, ParseError
from jitver.loaders._files import dirname_prefix, dump_json, read_json, write_text_if_changed
from jitver.project import DepRequirement, InternalDependency, ProjectMetadata
from jitver.version import Scheme, Version, parse

DEPENDENCY_KEYS = ('dependencies', 'devDependencies', 'optionalDependencies')
CONTENT_KEYS = ('bin', 'browser', 'files', 'main', 'types', 'version')
MANUAL_PREFIX = 'manual:'


def _sections(data: dict[str, Any]) -> list[dict[str, Any]]:
    return [s for s in (data.get(k) for k in DEPENDENCY_KEYS) if isinstance(s, dict)]


def _anchors(data: dict[str, Any]) -> dict[str, Any]:
    settings = data.get('jitver')
    anchors = settings.get('internalDeps') if isinstance(settings, dict) else None
    return anchors if isinstance(anchors, dict) else {}


class NpmLoader:
    """Loader for npm packages."""

    name = 'npm'
    priority = 5

    def __init__(self, root: Path) -> None:
        """Initialize with the working tree root."""
        self._root = root

    def detect(self, path: str) -> ProjectMetadata | None:
        """Detect a ``package.json`` that describes a package."""
        if path.rpartition('/')[2] != 'package.json':
            return None
        _, data = read_json(self._root, path)
        name = data.get('name')
        if not isinstance(name, str) or not any(k in data for k in CONTENT_KEYS):
            return None
        return ProjectMetadata(
            qname=f'{self.name}:{name}',
            name=name,
            prefix=dirname_prefix(path),
            manifest=path,
            scheme=Scheme.SEMVER,
            loader=self.name,
        )

    def read_version(self, meta: ProjectMetadata) -> Version:
        """Read the ``version`` field."""
        _, data = read_json(self._root, meta.manifest)
        version = data.get('version')
        if not isinstance(version, str):
            raise ParseError(
                code=E.MANIFEST_PARSE_ERROR,
                message=f'{meta.manifest} has no string "version" field.',
                hint='Add "version": "0.0.0-dev.0" to package.json.',
            )
        return parse(Scheme.SEMVER, version)

    def read_internal_deps(self, meta: ProjectMetadata) -> list[InternalDependency]:
        """Read every dependency with its commit anchor, if any."""
        _, data = read_json(self._root, meta.manifest)
        anchors = _anchors(data)

        found: dict[str, InternalDependency] = {}
        for section in _sections(data):
            for name in section:
                anchor = anchors.get(name)
                if not isinstance(anchor, str):
                    requirement = DepRequirement.unavailable()
                elif anchor.startswith(MANUAL_PREFIX):
                    requirement = DepRequirement.manual(anchor[len(MANUAL_PREFIX) :].strip())
                else:
                    requirement = DepRequirement.commit(anchor)
                found.setdefault(name, InternalDependency(meta.qname, f'{self.name}:{name}', requirement))
        return list(found.values())

    def write_version(self, meta: ProjectMetadata, version: Version) -> list[str]:
        """Rewrite the ``version`` field."""
        text, data = read_json(self._root, meta.manifest)
        if data.get('version') == str(version):
            return []
        data['version'] = str(version)
        return write_text_if_changed(self._root, meta.manifest, text, dump_json(data))

    def write_internal_dep_requirement(
        self,
        meta: ProjectMetadata,
        dependee_qname: str,
        min_version: Version,
    ) -> list[str]:
        """Set ``">=<min>"`` on every dependency entry naming the dependee."""
        dependee = dependee_qname.partition(':')[2]
        text, data = read_json(self._root, meta.manifest)
        spec = f'>={min_version}'
        touched = False
        for section in _sections(data):
            if dependee in section and section[dependee] != spec:
                section[dependee] = spec
                touched = True
        if not touched:
            return []
        return write_text_if_changed(self._root, meta.manifest, text, dump_json(data))


__all__ = [
    'NpmLoader',
]
