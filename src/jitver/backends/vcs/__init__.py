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

"""Repository protocol for jitver.

The engine never talks to git directly. It consumes the narrow
:class:`Repository` capability below, which is injected at startup.
Implementations:

- :class:`~jitver.backends.vcs.git.GitCLIBackend`: the ``git`` CLI.
- ``tests/_fakes.FakeRepository``: an in-memory commit DAG for tests.

The protocol is synchronous. A jitver invocation is single-threaded and
every call here blocks on the object store or working tree.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Commit:
    """A node of repository history.

    Attributes:
        sha: Stable commit identifier.
        parents: Parent shas, first parent first.
        paths: Repository-relative paths changed relative to the first
            parent. Empty for merges, which are never analyzed.
        message: Full commit message.
        timestamp: Committer time, seconds since the epoch.
    """

    sha: str
    parents: tuple[str, ...] = ()
    paths: tuple[str, ...] = ()
    message: str = ''
    timestamp: int = 0

    @property
    def is_merge(self) -> bool:
        """Whether the commit has more than one parent."""
        return len(self.parents) > 1

    @property
    def summary(self) -> str:
        """The first line of the message."""
        return self.message.split('\n', 1)[0].strip()


@runtime_checkable
class Repository(Protocol):
    """Protocol for the repository operations the engine consumes."""

    @property
    def root(self) -> Path:
        """Absolute path of the working tree."""
        ...

    def current_branch(self) -> str | None:
        """Return the checked-out branch name, or ``None`` if detached."""
        ...

    def head_sha(self) -> str:
        """Return the sha of ``HEAD``."""
        ...

    def branch_tip(self, name: str) -> str | None:
        """Return the tip sha of a local branch or its upstream copy, if any."""
        ...

    def commit(self, sha: str) -> Commit:
        """Load one commit. Raises RepositoryError if it does not exist.

        ``sha`` may be abbreviated. The returned commit carries the full sha.
        """
        ...

    def log(self, tip: str, exclude: str | None = None) -> list[Commit]:
        """Load every commit reachable from ``tip`` but not from ``exclude``.

        Merges are included so callers can see the whole topology. The
        order is unspecified.
        """
        ...

    def is_ancestor(self, a: str, b: str) -> bool:
        """Return whether commit ``a`` is ``b`` or one of its ancestors."""
        ...


    def list_files(self) -> list[str]:
        """Return every tracked path, repository-relative with ``/`` separators."""
        ...

    def dirty_paths(self) -> list[str]:
        """Return tracked paths whose working-tree content differs from ``HEAD``."""
        ...

    def tag_exists(self, name: str) -> bool:
        """Return whether tag ``name`` exists."""
        ...

    def create_tag(self, name: str, sha: str, message: str) -> None:
        """Create an annotated tag ``name`` pointing at ``sha``."""
        ...

    def create_commit(
        self,
        *,
        branch: str,
        message: str,
        parents: Sequence[str],
        base: str,
        paths: Sequence[str] = (),
    ) -> str:
        """Write a commit and point ``branch`` at it.

        The tree is ``base``'s tree with ``paths`` replaced by their
        working-tree content. Neither the index nor the working tree is
        touched.

        Returns:
            The new commit's sha.
        """
        ...

    def set_head(self, branch: str) -> None:
        """Point ``HEAD`` at ``branch`` without modifying the working tree."""
        ...

    def restore_paths(self, paths: Sequence[str]) -> None:
        """Reset ``paths`` in the working tree to their ``HEAD`` content."""
        ...

    def upstream_remote(self) -> str | None:
        """Return the name of the canonical upstream remote, if any."""
        ...


__all__ = [
    'Commit',
    'Repository',
]
