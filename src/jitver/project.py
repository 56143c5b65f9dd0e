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

"""Projects and the project registry.

A project is a versioned deliverable rooted at a path prefix of the
repository. The registry is built once at startup by running every
registered ecosystem loader over the tracked files, then applying the
central config's ``ignore`` overrides. It is read-only afterwards.

Key Concepts (ELI5)::

    ┌─────────────────────┬─────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                                │
    ├─────────────────────┼─────────────────────────────────────────────────┤
    │ Qualified name      │ ``<ecosystem>:<name>``, e.g. ``cargo:foo_lib``. │
    │                     │ Unique across the whole repository.             │
    ├─────────────────────┼─────────────────────────────────────────────────┤
    │ User-facing name    │ Just ``foo_lib`` when no other ecosystem has a  │
    │                     │ project of that name, else the qualified name.  │
    ├─────────────────────┼─────────────────────────────────────────────────┤
    │ Prefix              │ The directory a project lives in, ``''`` for    │
    │                     │ the root. The longest matching prefix owns a    │
    │                     │ path, so ``lib/`` never sees ``lib/sub/x.rs``   │
    │                     │ when ``lib/sub/`` is a project.                 │
    ├─────────────────────┼─────────────────────────────────────────────────┤
    │ Internal dependency │ "I need foo_lib as of commit c7", not "I need   │
    │                     │ foo_lib 1.2". Turned into a version at release. │
    └─────────────────────┴─────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from jitver.errors import E, AutodetectionError, JitverError
from jitver.logging import get_logger
from jitver.metadata import ReleasedProject, ReleaseRecord
from jitver.version import Scheme, Version, parse, zero_version

if TYPE_CHECKING:
    from jitver.backends.vcs import Repository
    from jitver.config import JitverConfig
    from jitver.loaders import Loader

logger = get_logger(__name__)


class DepKind(str, Enum):
    """How an internal dependency's requirement is expressed."""

    COMMIT = 'commit'
    MANUAL = 'manual'
    UNAVAILABLE = 'unavailable'


@dataclass(frozen=True)
class DepRequirement:
    """The requirement half of an internal dependency.

    Attributes:
        kind: Commit-anchored, manually maintained, or missing metadata.
        value: The commit sha (``COMMIT``) or requirement text (``MANUAL``).
    """

    kind: DepKind
    value: str = ''

    @classmethod
    def commit(cls, sha: str) -> DepRequirement:
        """A requirement on everything up to and including ``sha``."""
        return cls(DepKind.COMMIT, sha)

    @classmethod
    def manual(cls, text: str) -> DepRequirement:
        """A requirement the user maintains by hand."""
        return cls(DepKind.MANUAL, text)

    @classmethod
    def unavailable(cls) -> DepRequirement:
        """No commit was recorded for this dependency."""
        return cls(DepKind.UNAVAILABLE)

    def __str__(self) -> str:
        """Return a short description for messages."""
        if self.kind == DepKind.COMMIT:
            return f'commit {self.value[:12]}'
        if self.kind == DepKind.MANUAL:
            return f'manual requirement {self.value!r}'
        return 'an unrecorded commit'


@dataclass(frozen=True)
class InternalDependency:
    """An edge depender→dependee between two projects of this repository."""

    depender: str
    dependee: str
    requirement: DepRequirement


@dataclass(frozen=True)
class ProjectMetadata:
    """What a loader reports about a project it detected.

    Attributes:
        qname: Qualified name, ``<loader>:<name>``.
        name: The ecosystem-local name.
        prefix: Repository-relative directory, ``''`` or ending in ``/``.
        manifest: Repository-relative path of the manifest file.
        scheme: The project's version scheme.
        loader: Name of the loader that detected it.
    """

    qname: str
    name: str
    prefix: str
    manifest: str
    scheme: Scheme
    loader: str


@dataclass(frozen=True)
class Project:
    """A discovered project.

    Attributes:
        meta: Loader-reported identity and location.
        version: The version currently written in the project's files.
        user_facing_name: Shortest unambiguous name for CLI output.
        internal_deps: Dependencies on other registered projects.
        ignore: Set from the central config. Ignored projects own no paths.
        latest_release: The project's entry in the latest release record,
            or ``None`` if it has never been released.
    """

    meta: ProjectMetadata
    version: Version
    user_facing_name: str
    internal_deps: tuple[InternalDependency, ...] = ()
    ignore: bool = False
    latest_release: ReleasedProject | None = field(default=None)

    @property
    def qname(self) -> str:
        """Qualified name."""
        return self.meta.qname

    @property
    def prefix(self) -> str:
        """Repository-relative directory prefix."""
        return self.meta.prefix

    @property
    def scheme(self) -> Scheme:
        """Version scheme."""
        return self.meta.scheme

    @property
    def project_slug(self) -> str:
        """The name as used in tag names: no ``@`` scope marker, no slashes."""
        return self.user_facing_name.lstrip('@').replace('/', '-').replace(':', '-')

    @property
    def released_commit(self) -> str | None:
        """Source commit of the latest release, if any."""
        return self.latest_release.commit if self.latest_release is not None else None

    def baseline_version(self) -> Version:
        """The latest released version, or the scheme's zero version."""
        if self.latest_release is None or self.latest_release.commit is None:
            return zero_version(self.scheme)
        return parse(self.scheme, self.latest_release.version)

    def owns(self, path: str) -> bool:
        """Whether ``path`` lies under this project's prefix."""
        return path.startswith(self.prefix)


class ProjectRegistry:
    """The set of projects of one repository.

    Args:
        projects: Active projects.
        ignored: Projects forced out by config or loader priority.
    """

    def __init__(self, projects: Sequence[Project], ignored: Sequence[Project] = ()) -> None:
        """Index ``projects`` by name and by prefix length."""
        self._projects = sorted(projects, key=lambda p: p.qname)
        self.ignored = list(ignored)
        self._by_qname = {p.qname: p for p in self._projects}
        self._by_name = {p.user_facing_name: p for p in self._projects}
        self._by_prefix = sorted(self._projects, key=lambda p: len(p.prefix), reverse=True)

    def __iter__(self) -> Iterator[Project]:
        """Iterate active projects ordered by qualified name."""
        return iter(self._projects)

    def __len__(self) -> int:
        """Number of active projects."""
        return len(self._projects)

    def __contains__(self, qname: object) -> bool:
        """Whether ``qname`` is an active project."""
        return qname in self._by_qname

    def get(self, qname: str) -> Project:
        """Return the active project named ``qname``.

        Raises:
            JitverError: If there is none.
        """
        try:
            return self._by_qname[qname]
        except KeyError:
            raise JitverError(
                code=E.PROJECT_NOT_FOUND,
                message=f'No project with qualified name {qname!r}.',
            ) from None

    def lookup(self, name: str) -> Project | None:
        """Find a project by user-facing or qualified name."""
        return self._by_name.get(name) or self._by_qname.get(name)

    def lookup_names(self, names: Sequence[str]) -> list[Project]:
        """Resolve CLI project arguments.

        Raises:
            JitverError: Naming every argument that matches no project.
        """
        found: list[Project] = []
        missing: list[str] = []
        for name in names:
            project = self.lookup(name)
            if project is None:
                missing.append(name)
            else:
                found.append(project)
        if missing:
            known = ', '.join(p.user_facing_name for p in self._projects) or '(none)'
            raise JitverError(
                code=E.PROJECT_NOT_FOUND,
                message=f'No such project(s): {", ".join(missing)}',
                hint=f'Known projects: {known}.',
            )
        return found

    def owner_of(self, path: str) -> Project | None:
        """Return the project with the longest prefix containing ``path``."""
        for project in self._by_prefix:
            if project.owns(path):
                return project
        return None

    def dependency_edges(self) -> list[InternalDependency]:
        """All internal dependency edges between active projects."""
        return [dep for p in self._projects for dep in p.internal_deps]


def _user_facing_names(metas: Sequence[ProjectMetadata]) -> dict[str, str]:
    counts = Counter(m.name for m in metas)
    return {m.qname: m.name if counts[m.name] == 1 else m.qname for m in metas}


def _resolve_prefix_conflicts(
    candidates: Sequence[tuple[Loader, ProjectMetadata]],
) -> tuple[list[tuple[Loader, ProjectMetadata]], list[ProjectMetadata]]:
    by_prefix: dict[str, list[tuple[Loader, ProjectMetadata]]] = defaultdict(list)
    for loader, meta in candidates:
        by_prefix[meta.prefix].append((loader, meta))

    kept: list[tuple[Loader, ProjectMetadata]] = []
    demoted: list[ProjectMetadata] = []
    for prefix, claims in by_prefix.items():
        if len(claims) == 1:
            kept.append(claims[0])
            continue
        claims.sort(key=lambda c: c[0].priority, reverse=True)
        if claims[0][0].priority == claims[1][0].priority:
            names = ', '.join(m.qname for _, m in claims)
            raise AutodetectionError(
                code=E.AUTODETECT_AMBIGUOUS,
                message=f'Projects {names} all claim the prefix {prefix or "(repository root)"!r}.',
                hint='Set `ignore = true` for all but one of them under [projects."<qname>"].',
            )
        kept.append(claims[0])
        for _, meta in claims[1:]:
            logger.info('project_shadowed', qname=meta.qname, by=claims[0][1].qname, prefix=prefix)
            demoted.append(meta)
    return kept, demoted


def discover(
    repo: Repository,
    config: JitverConfig,
    loaders: Sequence[Loader],
    latest_record: ReleaseRecord | None = None,
) -> ProjectRegistry:
    """Build the project registry for ``repo``'s working tree.

    Args:
        repo: The repository to scan.
        config: Central config; its ``ignore`` flags always win.
        loaders: Registered ecosystem loaders.
        latest_record: Release record at the ``release`` branch tip.

    Returns:
        The registry.

    Raises:
        AutodetectionError: If two projects share a qualified name, or an
            identical prefix with no loader priority to break the tie.
    """
    candidates: list[tuple[Loader, ProjectMetadata]] = []
    seen: dict[str, str] = {}
    for path in repo.list_files():
        for loader in loaders:
            meta = loader.detect(path)
            if meta is None:
                continue
            if meta.qname in seen:
                raise AutodetectionError(
                    code=E.AUTODETECT_AMBIGUOUS,
                    message=f'Project {meta.qname!r} is defined by both {seen[meta.qname]} and {meta.manifest}.',
                )
            seen[meta.qname] = meta.manifest
            candidates.append((loader, meta))

    active: list[tuple[Loader, ProjectMetadata]] = []
    ignored_metas: list[ProjectMetadata] = []
    for loader, meta in candidates:
        if config.project(meta.qname).ignore:
            ignored_metas.append(meta)
        else:
            active.append((loader, meta))

    for qname in config.projects:
        if qname not in seen:
            logger.warning('config_unknown_project', qname=qname)

    active, demoted = _resolve_prefix_conflicts(active)
    ignored_metas.extend(demoted)

    names = _user_facing_names([meta for _, meta in active] + ignored_metas)
    active_qnames = {meta.qname for _, meta in active}

    projects: list[Project] = []
    for loader, meta in active:
        deps: list[InternalDependency] = []
        for dep in loader.read_internal_deps(meta):
            if dep.dependee not in active_qnames or dep.dependee == meta.qname:
                logger.debug('internal_dep_dropped', depender=meta.qname, dependee=dep.dependee)
                continue
            deps.append(dep)
        projects.append(
            Project(
                meta=meta,
                version=loader.read_version(meta),
                user_facing_name=names[meta.qname],
                internal_deps=tuple(deps),
                latest_release=latest_record.lookup(meta.qname) if latest_record is not None else None,
            )
        )

    ignored = [
        Project(
            meta=meta,
            version=zero_version(meta.scheme),
            user_facing_name=names[meta.qname],
            ignore=True,
        )
        for meta in ignored_metas
    ]

    logger.debug('projects_discovered', count=len(projects), ignored=len(ignored))
    return ProjectRegistry(projects, ignored)


__all__ = [
    'DepKind',
    'DepRequirement',
    'InternalDependency',
    'Project',
    'ProjectMetadata',
    'ProjectRegistry',
    'discover',
]
