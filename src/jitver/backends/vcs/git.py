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

"""Git backend for jitver.

The :class:`GitCLIBackend` implements the
:class:`~jitver.backends.vcs.Repository` protocol by delegating to the
``git`` CLI through :func:`run_git`.

Release commits are written with plumbing (``read-tree``,
``update-index``, ``write-tree``, ``commit-tree``, ``update-ref``)
against a temporary index, so that building an ``rc`` or ``release``
commit never disturbs the user's index or working tree. The ref update
is the last step: if anything before it fails, no branch moves.
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - the git CLI is this backend's only dependency
import tempfile
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from jitver.backends.vcs import Commit
from jitver.errors import E, RepositoryError
from jitver.logging import get_logger

log = get_logger('jitver.backends.git')

# Seconds. No call made here touches the network.
GIT_TIMEOUT_SECONDS = 120


@dataclass(frozen=True)
class GitResult:
    """Outcome of one ``git`` invocation.

    Attributes:
        args: Arguments after ``git``.
        return_code: Exit status.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    args: tuple[str, ...]
    return_code: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        """Whether git exited with status 0."""
        return self.return_code == 0

    def __str__(self) -> str:
        """Return the command line, for messages."""
        return ' '.join(('git', *self.args))


def run_git(
    args: Sequence[str],
    *,
    cwd: Path,
    env: dict[str, str] | None = None,
    input: str | None = None,  # noqa: A002 - mirrors subprocess.run
    timeout: float = GIT_TIMEOUT_SECONDS,
) -> GitResult:
    """Run ``git <args>`` in ``cwd`` and capture its output.

    Non-zero exits are returned. Callers decide whether they are errors.

    Args:
        args: Arguments after ``git``.
        cwd: Working directory.
        env: Variables layered over the current environment.
        input: Text for stdin.
        timeout: Seconds before the process is killed.

    Raises:
        RepositoryError: If git cannot be started or times out.
    """
    argv = ['git', *args]
    start = time.monotonic()
    try:
        proc = subprocess.run(  # noqa: S603 - argv is built by this module
            argv,
            cwd=cwd,
            env={**os.environ, **env} if env else None,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise RepositoryError(
            code=E.REPO_OPERATION_FAILED,
            message=f'`{" ".join(argv)}` did not finish within {timeout:g}s.',
            hint='Check for a stale .git/index.lock or a pending credential prompt.',
        ) from exc
    except FileNotFoundError as exc:
        raise RepositoryError(
            code=E.REPO_OPERATION_FAILED,
            message='The git executable was not found.',
            hint='Install git and make sure it is on PATH.',
        ) from exc

    result = GitResult(tuple(args), proc.returncode, proc.stdout, proc.stderr)
    log.debug(
        'git',
        args=list(args),
        return_code=proc.returncode,
        ms=round((time.monotonic() - start) * 1000, 1),
        stderr=proc.stderr[:300] if proc.returncode else '',
    )
    return result


# One record per commit: \x1e, then sha, parents, committer time and
# message each closed by \x1f, then the -z separated changed paths.
_LOG_ARGS = (
    '-c',
    'log.showRoot=true',
    '-c',
    'log.showSignature=false',
    'log',
    '-z',
    '--name-only',
    '--no-renames',
    '--no-color',
    '--format=%x1e%H%x1f%P%x1f%ct%x1f%B%x1f',
)


def _parse_log(stdout: str) -> list[Commit]:
    """Parse output produced with :data:`_LOG_ARGS`."""
    commits: list[Commit] = []
    for record in stdout.split('\x1e')[1:]:
        sha, parents, timestamp, message, tail = record.split('\x1f', 4)
        parent_shas = tuple(parents.split())
        paths: tuple[str, ...] = ()
        if len(parent_shas) <= 1:
            names = (p.strip('\n') for p in tail.split('\x00'))
            paths = tuple(p for p in names if p)
        commits.append(
            Commit(
                sha=sha.strip(),
                parents=parent_shas,
                paths=paths,
                message=message.rstrip('\n'),
                timestamp=int(timestamp),
            )
        )
    return commits


class GitCLIBackend:
    """Default :class:`~jitver.backends.vcs.Repository` implementation.

    Args:
        repo_root: Path to the git working tree root.
        upstream_urls: Remote URLs that identify the canonical upstream.
    """

    def __init__(self, repo_root: Path, upstream_urls: Sequence[str] = ()) -> None:
        """Initialize with the working tree root and upstream URLs."""
        self._root = repo_root
        self._upstream_urls = list(upstream_urls)
        self._upstream: str | None = None
        self._upstream_resolved = False

    @classmethod
    def discover(cls, start: Path, upstream_urls: Sequence[str] = ()) -> GitCLIBackend:
        """Find the repository containing ``start``.

        Raises:
            RepositoryError: If ``start`` is not inside a git working tree.
        """
        result = run_git(['rev-parse', '--show-toplevel'], cwd=start)
        if not result.ok:
            raise RepositoryError(
                code=E.REPO_NOT_FOUND,
                message=f'{start} is not inside a git working tree.',
                hint='Run jitver from a git checkout or pass --repo.',
            )
        return cls(Path(result.stdout.strip()), upstream_urls)

    @property
    def root(self) -> Path:
        """Absolute path of the working tree."""
        return self._root

    def _git(
        self,
        *args: str,
        check: bool = True,
        env: dict[str, str] | None = None,
        input: str | None = None,  # noqa: A002 - mirrors subprocess.run
    ) -> GitResult:
        """Run a git command, raising :class:`RepositoryError` on failure if ``check``."""
        result = run_git(args, cwd=self._root, env=env, input=input)
        if check and not result.ok:
            raise RepositoryError(
                code=E.REPO_OPERATION_FAILED,
                message=f'`{result}` failed ({result.return_code}): {result.stderr.strip()}',
            )
        return result

    def current_branch(self) -> str | None:
        """Return the checked-out branch name, or ``None`` if detached."""
        result = self._git('symbolic-ref', '--quiet', '--short', 'HEAD', check=False)
        return result.stdout.strip() if result.ok else None

    def head_sha(self) -> str:
        """Return the sha of ``HEAD``."""
        return self._git('rev-parse', 'HEAD').stdout.strip()

    def _resolve(self, ref: str) -> str | None:
        result = self._git('rev-parse', '--verify', '--quiet', f'{ref}^{{commit}}', check=False)
        return result.stdout.strip() if result.ok else None

    def branch_tip(self, name: str) -> str | None:
        """Return the tip of local branch ``name``, or of the upstream's copy."""
        sha = self._resolve(f'refs/heads/{name}')
        if sha is not None:
            return sha
        remote = self.upstream_remote()
        if remote is None:
            return None
        return self._resolve(f'refs/remotes/{remote}/{name}')

    def _log(self, *revs: str, what: str) -> list[Commit]:
        result = self._git(*_LOG_ARGS, *revs, '--', check=False)
        if not result.ok:
            raise RepositoryError(
                code=E.REPO_OPERATION_FAILED,
                message=f'Cannot read {what}: {result.stderr.strip()}',
            )
        return _parse_log(result.stdout)

    def commit(self, sha: str) -> Commit:
        """Load one commit and the paths it changed."""
        commits = self._log('-1', sha, what=f'commit {sha}')
        if not commits:
            raise RepositoryError(code=E.REPO_OPERATION_FAILED, message=f'Cannot read commit {sha}.')
        return commits[0]

    def log(self, tip: str, exclude: str | None = None) -> list[Commit]:
        """Load the commits in ``exclude..tip`` with one ``git log``."""
        revs = (tip, f'^{exclude}') if exclude is not None else (tip,)
        return self._log(*revs, what=f'history of {tip}')

    def is_ancestor(self, a: str, b: str) -> bool:
        """Ask ``git merge-base --is-ancestor``."""
        result = self._git('merge-base', '--is-ancestor', a, b, check=False)
        if result.return_code in (0, 1):
            return result.ok
        raise RepositoryError(
            code=E.REPO_OPERATION_FAILED,
            message=f'`{result}` failed ({result.return_code}): {result.stderr.strip()}',
        )

    def list_files(self) -> list[str]:
        """Return every tracked path."""
        result = self._git('ls-files', '-z')
        return [p for p in result.stdout.split('\x00') if p]

    def dirty_paths(self) -> list[str]:
        """Return tracked paths that differ from ``HEAD`` (staged or not)."""
        result = self._git('diff', '--name-only', '-z', 'HEAD')
        return [p for p in result.stdout.split('\x00') if p]

    def tag_exists(self, name: str) -> bool:
        """Return whether tag ``name`` exists."""
        return self._git('rev-parse', '--verify', '--quiet', f'refs/tags/{name}', check=False).ok

    def create_tag(self, name: str, sha: str, message: str) -> None:
        """Create an annotated tag."""
        self._git('tag', '--annotate', '--message', message, name, sha)
        log.info('tag_created', tag=name, sha=sha)

    def create_commit(
        self,
        *,
        branch: str,
        message: str,
        parents: Sequence[str],
        base: str,
        paths: Sequence[str] = (),
    ) -> str:
        """Write a commit through a temporary index and move ``branch`` to it."""
        with tempfile.TemporaryDirectory(prefix='jitver-index-') as tmp:
            env = {'GIT_INDEX_FILE': os.path.join(tmp, 'index')}
            self._git('read-tree', base, env=env)
            if paths:
                self._git('update-index', '--add', '--remove', '--', *paths, env=env)
            tree = self._git('write-tree', env=env).stdout.strip()

        parent_args: list[str] = []
        for parent in parents:
            parent_args.extend(['-p', parent])
        sha = self._git('commit-tree', tree, *parent_args, '-F', '-', input=message).stdout.strip()
        self._git('update-ref', f'refs/heads/{branch}', sha)
        log.info('commit_created', branch=branch, sha=sha, parents=list(parents))
        return sha

    def set_head(self, branch: str) -> None:
        """Switch ``HEAD`` to ``branch`` and reset the index, keeping the working tree."""
        self._git('symbolic-ref', 'HEAD', f'refs/heads/{branch}')
        self._git('reset', '--mixed', '--quiet')

    def restore_paths(self, paths: Sequence[str]) -> None:
        """Reset ``paths`` to their ``HEAD`` content.

        Paths that ``HEAD`` does not track (a changelog created by
        ``stage``) are removed from the working tree.
        """
        if not paths:
            return
        listed = self._git('ls-tree', '--name-only', '-z', 'HEAD', '--', *paths).stdout
        tracked = {p for p in listed.split('\x00') if p}
        if tracked:
            self._git('checkout', 'HEAD', '--', *sorted(tracked))
        for path in paths:
            if path not in tracked:
                (self._root / path).unlink(missing_ok=True)

    def upstream_remote(self) -> str | None:
        """Identify the upstream remote.

        Tries, in order:

        1. A remote whose URL is one of the configured ``upstream_urls``.
        2. The only remote, if there is exactly one.
        3. A remote named ``origin``.
        """
        if self._upstream_resolved:
            return self._upstream

        remotes = self._git('remote').stdout.split()
        chosen: str | None = None
        if self._upstream_urls:
            for remote in remotes:
                url = self._git('remote', 'get-url', remote).stdout.strip()
                if url in self._upstream_urls:
                    chosen = remote
                    break
        if chosen is None and len(remotes) == 1:
            chosen = remotes[0]
        if chosen is None and 'origin' in remotes:
            chosen = 'origin'
        if chosen is None and remotes:
            log.warning('upstream_remote_unknown', remotes=remotes, hint='Set repo.upstream_urls in the config.')

        self._upstream = chosen
        self._upstream_resolved = True
        return chosen


__all__ = [
    'GIT_TIMEOUT_SECONDS',
    'GitCLIBackend',
    'GitResult',
    'run_git',
]
