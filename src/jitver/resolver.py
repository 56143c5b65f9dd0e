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

"""Internal dependency resolution.

An internal dependency says "I need foo_lib as of commit C". Resolution
turns that into "I need foo_lib >= V", where V is the *oldest* release of
foo_lib whose source commit contains C.

Resolution happens in two phases, because the release that satisfies a
dependency may be part of the batch being released:

    ┌──────────────────┬─────────────────────────────────────────────────┐
    │ Phase            │ What happens                                    │
    ├──────────────────┼─────────────────────────────────────────────────┤
    │ confirm          │ ``validate_batch``: each dependency of each      │
    │                  │ requested project is RESOLVED by an existing     │
    │                  │ release, provisionally satisfied by the BATCH    │
    │                  │ (dependee requested too and C is in the commit   │
    │                  │ being released), or UNSATISFIED. Any UNSATISFIED │
    │                  │ aborts confirm.                                  │
    ├──────────────────┼─────────────────────────────────────────────────┤
    │ apply-versions   │ ``finalize``: BATCH dependencies get the         │
    │                  │ dependee's new version as their minimum.         │
    ├──────────────────┼─────────────────────────────────────────────────┤
    │ commit           │ ``recheck_batch``: BATCH dependencies must still │
    │                  │ be contained in the release's source commit.     │
    └──────────────────┴─────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace

from jitver.errors import UnsatisfiedDependency, UnsatisfiedInternalDependency
from jitver.history import HistoryWalker
from jitver.logging import get_logger
from jitver.metadata import DependencyStatus, Resolution, parse_record
from jitver.project import DepKind, InternalDependency, ProjectRegistry
from jitver.version import Version, parse, version_sort_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class Release:
    """One historical release of a project."""

    version: Version
    commit: str


class ReleaseHistory:
    """Every release of every project, from the ``release`` branch.

    Args:
        releases: Releases keyed by qualified name, in any order.
    """

    def __init__(self, releases: Mapping[str, Iterable[Release]] | None = None) -> None:
        """Sort each project's releases by increasing version."""
        self._releases: dict[str, list[Release]] = {
            qname: sorted(items, key=lambda r: version_sort_key(r.version)) for qname, items in (releases or {}).items()
        }

    def releases(self, qname: str) -> list[Release]:
        """Releases of ``qname`` in increasing version order."""
        return list(self._releases.get(qname, []))

    @classmethod
    def load(
        cls,
        walker: HistoryWalker,
        registry: ProjectRegistry,
        release_tip: str | None,
    ) -> ReleaseHistory:
        """Collect releases from the first-parent chain of ``release_tip``.

        The walk stops at the first commit without a release record, which
        is where the ``release`` branch forked from development history.
        Dev-mode records are skipped. Entries for projects that are no
        longer registered are ignored.
        """
        if release_tip is None:
            return cls()

        found: dict[str, list[Release]] = defaultdict(list)
        for commit in walker.first_parent_chain(release_tip):
            record = parse_record(commit.message, sha=commit.sha)
            if record is None:
                break
            if record.dev_mode:
                continue
            for entry in record.released():
                if entry.qname not in registry or entry.commit is None:
                    continue
                scheme = registry.get(entry.qname).scheme
                found[entry.qname].append(Release(parse(scheme, entry.version), entry.commit))
        return cls(found)


@dataclass(frozen=True)
class DependencyState:
    """Resolution state of one internal dependency.

    Attributes:
        dependency: The edge being resolved.
        resolution: Where resolution stands.
        min_version: The minimum dependee version, once known.
    """

    dependency: InternalDependency
    resolution: Resolution
    min_version: Version | None = None

    def to_status(self) -> DependencyStatus:
        """Serialize for the ``rc`` commit."""
        return DependencyStatus(
            dependee=self.dependency.dependee,
            requirement=self.dependency.requirement.value,
            resolution=self.resolution,
            min_version=str(self.min_version) if self.min_version is not None else '',
        )


def resolve(dependency: InternalDependency, releases: Sequence[Release], walker: HistoryWalker) -> Version | None:
    """Return the oldest release satisfying a commit-anchored dependency.

    Args:
        dependency: Must have a commit requirement.
        releases: The dependee's releases in increasing version order.
        walker: Answers ancestry queries.

    Returns:
        The minimal version whose source commit contains the required
        commit, or ``None`` if no release qualifies.
    """
    required = dependency.requirement.value
    for release in releases:
        if walker.is_ancestor(required, release.commit):
            return release.version
    return None


class DependencyResolver:
    """Resolves the dependencies of a release batch.

    Args:
        walker: Ancestry oracle.
        history: Every past release.
    """

    def __init__(self, walker: HistoryWalker, history: ReleaseHistory) -> None:
        """Initialize with the history to resolve against."""
        self._walker = walker
        self._history = history

    def resolve(self, dependency: InternalDependency) -> DependencyState:
        """Resolve one dependency against existing releases only."""
        if dependency.requirement.kind == DepKind.MANUAL:
            return DependencyState(dependency, Resolution.MANUAL)
        if dependency.requirement.kind == DepKind.UNAVAILABLE:
            return DependencyState(dependency, Resolution.UNSATISFIED)
        version = resolve(dependency, self._history.releases(dependency.dependee), self._walker)
        if version is None:
            return DependencyState(dependency, Resolution.UNSATISFIED)
        return DependencyState(dependency, Resolution.RESOLVED, version)

    def validate_batch(
        self,
        registry: ProjectRegistry,
        batch: Sequence[str],
        source_commit: str,
    ) -> dict[str, list[DependencyState]]:
        """Resolve every dependency of every project in ``batch``.

        Args:
            registry: Supplies each project's dependencies.
            batch: Qualified names being released together.
            source_commit: The commit the batch will be released from.

        Returns:
            States keyed by depender.

        Raises:
            UnsatisfiedInternalDependency: Listing every dependency that is
                neither released nor provided by the batch.
        """
        members = set(batch)
        states: dict[str, list[DependencyState]] = {}
        failures: list[UnsatisfiedDependency] = []
        for qname in batch:
            project_states: list[DependencyState] = []
            for dep in registry.get(qname).internal_deps:
                state = self.resolve(dep)
                if (
                    state.resolution == Resolution.UNSATISFIED
                    and dep.requirement.kind == DepKind.COMMIT
                    and dep.dependee in members
                    and self._walker.is_ancestor(dep.requirement.value, source_commit)
                ):
                    state = DependencyState(dep, Resolution.BATCH)
                if state.resolution == Resolution.UNSATISFIED:
                    failures.append(UnsatisfiedDependency(dep.depender, dep.dependee, str(dep.requirement)))
                project_states.append(state)
            states[qname] = project_states

        if failures:
            logger.error('dependencies_unsatisfied', count=len(failures))
            raise UnsatisfiedInternalDependency(failures)
        return states

    def finalize(
        self,
        states: Sequence[DependencyState],
        new_versions: Mapping[str, Version],
    ) -> list[DependencyState]:
        """Fill in the minimum version of BATCH states from the batch's new versions.

        The resolution stays BATCH so that ``commit`` can re-check it.

        Raises:
            UnsatisfiedInternalDependency: If a BATCH dependee has no new
                version (it was dropped from the batch).
        """
        finalized: list[DependencyState] = []
        failures: list[UnsatisfiedDependency] = []
        for state in states:
            if state.resolution == Resolution.BATCH:
                version = new_versions.get(state.dependency.dependee)
                if version is None:
                    dep = state.dependency
                    failures.append(UnsatisfiedDependency(dep.depender, dep.dependee, str(dep.requirement)))
                    continue
                state = replace(state, min_version=version)
            finalized.append(state)
        if failures:
            raise UnsatisfiedInternalDependency(failures)
        return finalized

    def recheck_batch(self, states: Sequence[DependencyState], source_commit: str) -> None:
        """Confirm that BATCH requirements are contained in ``source_commit``.

        Raises:
            UnsatisfiedInternalDependency: For every requirement that is not.
        """
        failures = [
            UnsatisfiedDependency(s.dependency.depender, s.dependency.dependee, str(s.dependency.requirement))
            for s in states
            if s.resolution == Resolution.BATCH
            and not self._walker.is_ancestor(s.dependency.requirement.value, source_commit)
        ]
        if failures:
            raise UnsatisfiedInternalDependency(failures)


__all__ = [
    'DependencyResolver',
    'DependencyState',
    'Release',
    'ReleaseHistory',
    'resolve',
]
