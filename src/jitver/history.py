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

"""Repository history walker.

Answers three questions about the commit DAG:

- Which commits are reachable from a tip but not from a reference point?
- Which projects does a commit affect?
- Is commit A an ancestor of commit B?

Ancestry is the hot path of dependency resolution. It is answered by the
repository's own ancestry query (``git merge-base --is-ancestor``, which
uses git's commit-graph generation numbers to stop early) and memoized
per pair of full shas. Abbreviated ids are expanded first.

``commits_since`` loads the whole ``reference..tip`` range in one batch
and orders it locally: a commit is emitted once all of its children in
the range have been, newest first among the ready ones.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from collections.abc import Iterable

from jitver.backends.vcs import Commit, Repository
from jitver.logging import get_logger
from jitver.project import Project, ProjectRegistry

logger = get_logger(__name__)


class HistoryWalker:
    """Cached view of one repository's commit DAG.

    Args:
        repo: Where commits are loaded from.
    """

    def __init__(self, repo: Repository) -> None:
        """Initialize with empty caches."""
        self._repo = repo
        self._commits: dict[str, Commit] = {}
        self._ancestry: dict[tuple[str, str], bool] = {}

    def _remember(self, commit: Commit) -> None:
        self._commits.setdefault(commit.sha, commit)

    def commit(self, sha: str) -> Commit:
        """Load (and cache) one commit. ``sha`` may be abbreviated."""
        commit = self._commits.get(sha)
        if commit is None:
            commit = self._repo.commit(sha)
            self._commits[sha] = commit
            self._remember(commit)
        return commit

    def resolve(self, sha: str) -> str:
        """Expand a possibly abbreviated commit id to the full sha."""
        return self.commit(sha).sha

    def is_ancestor(self, a: str, b: str) -> bool:
        """Whether ``a`` is ``b`` or one of its ancestors.

        Either argument may be abbreviated, as dependency anchors often
        are. Answers are memoized on the full shas.
        """
        a = self.resolve(a)
        b = self.resolve(b)
        if a == b:
            return True
        key = (a, b)
        cached = self._ancestry.get(key)
        if cached is None:
            cached = self._repo.is_ancestor(a, b)
            self._ancestry[key] = cached
        return cached

    def commits_since(self, tip: str, reference: str | None = None) -> list[Commit]:
        """Commits reachable from ``tip`` but not from ``reference``.

        Args:
            tip: The branch tip to walk from.
            reference: Commits reachable from here are excluded. ``None``
                walks to the root of history.

        Returns:
            Non-merge commits, children before parents. Commits with no
            ancestry relation are ordered newest first, then by sha.
        """
        batch = {c.sha: c for c in self._repo.log(tip, reference)}
        children: dict[str, int] = dict.fromkeys(batch, 0)
        for commit in batch.values():
            self._remember(commit)
            for parent in commit.parents:
                if parent in children:
                    children[parent] += 1

        ready = [(-c.timestamp, c.sha) for c in batch.values() if children[c.sha] == 0]
        heapq.heapify(ready)
        result: list[Commit] = []
        while ready:
            _, sha = heapq.heappop(ready)
            commit = batch[sha]
            if not commit.is_merge:
                result.append(commit)
            for parent in commit.parents:
                if parent in children:
                    children[parent] -= 1
                    if children[parent] == 0:
                        heapq.heappush(ready, (-batch[parent].timestamp, parent))
        logger.debug('commits_since', tip=tip, reference=reference, loaded=len(batch), kept=len(result))
        return result

    def first_parent_chain(self, tip: str) -> Iterable[Commit]:
        """Yield ``tip`` and its first-parent ancestors, newest first."""
        sha: str | None = tip
        while sha is not None:
            commit = self.commit(sha)
            yield commit
            sha = commit.parents[0] if commit.parents else None


def owning_projects(commit: Commit, registry: ProjectRegistry) -> set[str]:
    """Qualified names of the projects ``commit`` touches.

    Each path counts only for the project with the longest matching
    prefix. Paths outside every project are ignored.
    """
    owners: set[str] = set()
    for path in commit.paths:
        project = registry.owner_of(path)
        if project is not None:
            owners.add(project.qname)
    return owners


def relevant_commits(
    walker: HistoryWalker,
    registry: ProjectRegistry,
    tip: str,
) -> dict[str, list[Commit]]:
    """Map every project to its relevant commits since its last release.

    Projects sharing a last-release commit (typically all projects
    released together) share one history walk.
    """
    by_reference: dict[str | None, list[Project]] = defaultdict(list)
    for project in registry:
        by_reference[project.released_commit].append(project)

    result: dict[str, list[Commit]] = {p.qname: [] for p in registry}
    for reference, projects in by_reference.items():
        wanted = {p.qname for p in projects}
        for commit in walker.commits_since(tip, reference):
            for qname in owning_projects(commit, registry) & wanted:
                result[qname].append(commit)

    logger.debug('relevant_commits', counts={q: len(c) for q, c in result.items()})
    return result


__all__ = [
    'HistoryWalker',
    'owning_projects',
    'relevant_commits',
]
