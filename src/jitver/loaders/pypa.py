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

"""Python (``pyproject.toml``) loader.

Internal dependencies are ordinary PEP 508 entries of
``[project].dependencies`` (or an optional-dependency group) naming
another project of the repository. The commit each one requires is
recorded beside them::

    [project]
    name = "foo-cli"
    version = "0.0.0.dev0"
    dependencies = ["foo-lib", "click>=8"]

    [tool.jitver.internal-deps]
    foo-lib = "c7a1e2..."          # everything up to this commit
    # foo-lib = "manual:>=1.2,<2"  # or a requirement kept by hand

On release the entry becomes ``foo-lib>=<resolved version>``, keeping
any extras and environment markers.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from jitver.errors import E, ParseError
from jitver.loaders._files import dirname_prefix, read_toml, table, write_text_if_changed
from jitver.logging import get_logger
from jitver.project import DepRequirement, InternalDependency, ProjectMetadata
from jitver.version import Scheme, Version, parse

logger = get_logger(__name__)

MANUAL_PREFIX = 'manual:'


def _requirement_with_min(req: Requirement, min_version: Version) -> str:
    text = req.name
    if req.extras:
        text += f'[{",".join(sorted(req.extras))}]'
    text += f'>={min_version}'
    if req.marker is not None:
        text += f'; {req.marker}'
    return text


class PypaLoader:
    """Loader for ``pyproject.toml`` projects (PEP 621)."""

    name = 'pypa'
    priority = 20

    def __init__(self, root: Path) -> None:
        """Initialize with the working tree root."""
        self._root = root

    def detect(self, path: str) -> ProjectMetadata | None:
        """Detect a ``pyproject.toml`` with a ``[project].name``."""
        if path.rpartition('/')[2] != 'pyproject.toml':
            return None
        _, doc = read_toml(self._root, path)
        name = table(doc, 'project').get('name')
        if not isinstance(name, str):
            logger.debug('pyproject_without_name', path=path)
            return None
        return ProjectMetadata(
            qname=f'{self.name}:{canonicalize_name(name)}',
            name=str(name),
            prefix=dirname_prefix(path),
            manifest=path,
            scheme=Scheme.PEP440,
            loader=self.name,
        )

    def read_version(self, meta: ProjectMetadata) -> Version:
        """Read ``[project].version``."""
        _, doc = read_toml(self._root, meta.manifest)
        version = table(doc, 'project').get('version')
        if not isinstance(version, str):
            raise ParseError(
                code=E.MANIFEST_PARSE_ERROR,
                message=f'{meta.manifest} has no static [project].version.',
                hint='Declare a placeholder version such as "0.0.0.dev0".',
            )
        return parse(Scheme.PEP440, version)

    def _dependency_lists(self, doc: dict) -> list[list]:
        project = table(doc, 'project')
        lists = [project.get('dependencies', [])]
        lists.extend(table(doc, 'project', 'optional-dependencies').values())
        return [deps for deps in lists if isinstance(deps, list)]

    def read_internal_deps(self, meta: ProjectMetadata) -> list[InternalDependency]:
        """Read dependencies and their commit anchors."""
        _, doc = read_toml(self._root, meta.manifest)
        anchors = {canonicalize_name(k): str(v) for k, v in table(doc, 'tool', 'jitver', 'internal-deps').items()}

        found: dict[str, InternalDependency] = {}
        for deps in self._dependency_lists(doc):
            for spec in deps:
                try:
                    name = canonicalize_name(Requirement(str(spec)).name)
                except InvalidRequirement as exc:
                    raise ParseError(
                        code=E.MANIFEST_PARSE_ERROR,
                        message=f'{meta.manifest}: invalid dependency {spec!r}: {exc}',
                    ) from exc
                anchor = anchors.get(name)
                if anchor is None:
                    requirement = DepRequirement.unavailable()
                elif anchor.startswith(MANUAL_PREFIX):
                    requirement = DepRequirement.manual(anchor[len(MANUAL_PREFIX) :].strip())
                else:
                    requirement = DepRequirement.commit(anchor)
                found.setdefault(name, InternalDependency(meta.qname, f'{self.name}:{name}', requirement))
        return list(found.values())

    def write_version(self, meta: ProjectMetadata, version: Version) -> list[str]:
        """Rewrite ``[project].version``."""
        text, doc = read_toml(self._root, meta.manifest)
        doc['project']['version'] = str(version)
        return write_text_if_changed(self._root, meta.manifest, text, tomlkit.dumps(doc))

    def write_internal_dep_requirement(
        self,
        meta: ProjectMetadata,
        dependee_qname: str,
        min_version: Version,
    ) -> list[str]:
        """Rewrite every dependency entry on ``dependee_qname``."""
        dependee = dependee_qname.partition(':')[2]
        text, doc = read_toml(self._root, meta.manifest)
        for deps in self._dependency_lists(doc):
            for i, spec in enumerate(deps):
                req = Requirement(str(spec))
                if canonicalize_name(req.name) == dependee:
                    deps[i] = _requirement_with_min(req, min_version)
        return write_text_if_changed(self._root, meta.manifest, text, tomlkit.dumps(doc))


__all__ = [
    'PypaLoader',
]
