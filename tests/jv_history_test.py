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

"""Tests for jitver.history module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from jitver.backends.vcs import Commit
from jitver.errors import RepositoryError
from jitver.history import HistoryWalker, owning_projects, relevant_commits
from jitver.metadata import ReleasedProject
from jitver.project import Project, ProjectMetadata, ProjectRegistry
from jitver.version import Scheme, SemverVersion

from tests._fakes import FakeRepository


def _project(name: str, prefix: str, released_at: str | None = None) -> Project:
    """Create a minimal Project for testing."""
    release = ReleasedProject(f'fake:{name}', '1.0.0', released_at, 0) if released_at else None
    return Project(
        meta=ProjectMetadata(
            qname=f'fake:{name}',
            name=name,
            prefix=prefix,
            manifest=f'{prefix}Cargo.toml',
            scheme=Scheme.SEMVER,
            loader='fake',
        ),
        version=SemverVersion(1, 0, 0),
        user_facing_name=name,
        latest_release=release,
    )


@pytest.fixture
def diamond(tmp_path: Path) -> tuple[FakeRepository, dict[str, str]]:
    """A history with a side branch merged back::

        c1 ── c2 ── c4 ── m5
                \\        /
                 c3 ─────
    """
    repo = FakeRepository(tmp_path)
    shas: dict[str, str] = {}
    shas['c1'] = repo.commit_files({'a/x.txt': '1'}, 'c1')
    shas['c2'] = repo.commit_files({'b/y.txt': '1'}, 'c2')
    repo.create_branch('feature')
    repo.checkout('feature')
    shas['c3'] = repo.commit_files({'a/z.txt': '1'}, 'c3')
    repo.checkout('main')
    shas['c4'] = repo.commit_files({'b/w.txt': '1'}, 'c4')
    shas['m5'] = repo.merge('feature', 'm5')
    return repo, shas


class TestResolve:
    """resolve() expands abbreviated ids."""

    def test_prefix(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """A unique prefix expands to the full sha."""
        repo, shas = diamond
        assert HistoryWalker(repo).resolve(shas['c3'][:12]) == shas['c3']

    def test_full_sha_unchanged(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """A full sha is returned as is."""
        repo, shas = diamond
        assert HistoryWalker(repo).resolve(shas['m5']) == shas['m5']


class TestIsAncestor:
    """is_ancestor() answers reachability."""

    def test_reflexive(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Every commit is its own ancestor."""
        repo, shas = diamond
        assert HistoryWalker(repo).is_ancestor(shas['c3'], shas['c3'])

    def test_through_merge(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """A side-branch commit is an ancestor of the merge."""
        repo, shas = diamond
        walker = HistoryWalker(repo)
        assert walker.is_ancestor(shas['c3'], shas['m5'])
        assert walker.is_ancestor(shas['c1'], shas['m5'])

    def test_siblings(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Commits on parallel branches are unrelated."""
        repo, shas = diamond
        walker = HistoryWalker(repo)
        assert not walker.is_ancestor(shas['c3'], shas['c4'])
        assert not walker.is_ancestor(shas['c4'], shas['c3'])

    def test_descendant_is_not_ancestor(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Ancestry is not symmetric."""
        repo, shas = diamond
        assert not HistoryWalker(repo).is_ancestor(shas['m5'], shas['c1'])

    def test_unknown_commit(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Repository failures propagate."""
        repo, shas = diamond
        with pytest.raises(RepositoryError):
            HistoryWalker(repo).is_ancestor('f' * 40, shas['m5'])

    def test_abbreviated_ancestor(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """A short anchor matches the commit it abbreviates."""
        repo, shas = diamond
        walker = HistoryWalker(repo)
        assert walker.is_ancestor(shas['c1'][:12], shas['m5'])
        assert walker.is_ancestor(shas['c3'][:7], shas['c3'])
        assert not walker.is_ancestor(shas['c4'][:12], shas['c3'][:12])

    def test_memoized(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Repeated questions reach the repository once, whatever the spelling."""
        repo, shas = diamond
        walker = HistoryWalker(repo)
        walker.is_ancestor(shas['c1'], shas['m5'])
        walker.is_ancestor(shas['c1'][:10], shas['m5'])
        walker.is_ancestor(shas['c2'], shas['c2'])
        assert repo.ancestry_queries == 1



class TestCommitsSince:
    """commits_since() walks newest first and skips merges."""

    def test_full_history(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Children precede parents. Unrelated commits go newest first."""
        repo, shas = diamond
        got = [c.message for c in HistoryWalker(repo).commits_since(shas['m5'])]
        assert got == ['c4', 'c3', 'c2', 'c1'], f'Got {got}'

    def test_since_reference(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Commits reachable from the reference are excluded."""
        repo, shas = diamond
        got = [c.message for c in HistoryWalker(repo).commits_since(shas['m5'], shas['c2'])]
        assert got == ['c4', 'c3'], f'Got {got}'

    def test_reference_on_side_branch(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """A side-branch reference hides only its own ancestry."""
        repo, shas = diamond
        got = [c.message for c in HistoryWalker(repo).commits_since(shas['m5'], shas['c3'])]
        assert got == ['c4'], f'Got {got}'

    def test_tip_equals_reference(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Nothing is new relative to itself."""
        repo, shas = diamond
        assert HistoryWalker(repo).commits_since(shas['c4'], shas['c4']) == []

    def test_stable(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Two walks agree."""
        repo, shas = diamond
        first = HistoryWalker(repo).commits_since(shas['m5'])
        second = HistoryWalker(repo).commits_since(shas['m5'])
        assert first == second

    def test_timestamp_tie_broken_by_sha(self) -> None:
        """Unrelated commits with equal timestamps come in sha order."""
        batch = [
            Commit(sha='b' * 40, parents=('r' * 40,), timestamp=5),
            Commit(sha='a' * 40, parents=('r' * 40,), timestamp=5),
            Commit(sha='r' * 40, timestamp=1),
        ]
        repo = MagicMock()
        repo.log.return_value = batch
        got = [c.sha[0] for c in HistoryWalker(repo).commits_since('tip')]
        assert got == ['a', 'b', 'r'], f'Got {got}'

    def test_loaded_commits_are_cached(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Commits seen by a walk are not loaded again one by one."""
        repo, shas = diamond
        walker = HistoryWalker(repo)
        walker.commits_since(shas['m5'])
        with patch.object(repo, 'commit', side_effect=AssertionError('reloaded')):
            assert walker.commit(shas['c3']).message == 'c3'



class TestOwningProjects:
    """owning_projects() assigns each path to its longest prefix."""

    def test_longest_prefix_wins(self) -> None:
        """lib/sub/ shadows lib/ for paths under it."""
        registry = ProjectRegistry([_project('lib', 'lib/'), _project('sub', 'lib/sub/')])
        commit = Commit(sha='x', paths=('lib/sub/src/a.rs',))
        assert owning_projects(commit, registry) == {'fake:sub'}

    def test_multiple(self) -> None:
        """A commit can touch several projects."""
        registry = ProjectRegistry([_project('lib', 'lib/'), _project('sub', 'lib/sub/')])
        commit = Commit(sha='x', paths=('lib/a.rs', 'lib/sub/b.rs', 'README.md'))
        assert owning_projects(commit, registry) == {'fake:lib', 'fake:sub'}

    def test_unowned_paths(self) -> None:
        """Paths outside every project are ignored."""
        registry = ProjectRegistry([_project('lib', 'lib/')])
        assert owning_projects(Commit(sha='x', paths=('docs/index.md',)), registry) == set()

    def test_root_project_owns_leftovers(self) -> None:
        """A project at the repository root catches everything else."""
        registry = ProjectRegistry([_project('root', ''), _project('lib', 'lib/')])
        commit = Commit(sha='x', paths=('docs/index.md',))
        assert owning_projects(commit, registry) == {'fake:root'}


class TestRelevantCommits:
    """relevant_commits() counts per project since its own release."""

    def test_per_project_reference(self, diamond: tuple[FakeRepository, dict[str, str]]) -> None:
        """Each project is measured from its own last release."""
        repo, shas = diamond
        registry = ProjectRegistry([_project('a', 'a/', released_at=shas['c2']), _project('b', 'b/')])
        got = relevant_commits(HistoryWalker(repo), registry, shas['m5'])
        assert [c.message for c in got['fake:a']] == ['c3'], f'Got {got["fake:a"]}'
        assert [c.message for c in got['fake:b']] == ['c4', 'c2'], f'Got {got["fake:b"]}'
