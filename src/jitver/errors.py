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

"""Structured error system for jitver.

Every error has a unique ``JV-NAMED-KEY`` code, a human-readable message
and an optional hint with a suggested fix.

Key Concepts (ELI5)::

    ┌──────────────────────────────┬─────────────────────────────────────────┐
    │ Concept                      │ ELI5 Explanation                        │
    ├──────────────────────────────┼─────────────────────────────────────────┤
    │ ErrorCode                    │ A named ID like "JV-DEP-UNSATISFIED".   │
    ├──────────────────────────────┼─────────────────────────────────────────┤
    │ JitverError                  │ The exception everything raises. It     │
    │                              │ carries code, message and hint.         │
    ├──────────────────────────────┼─────────────────────────────────────────┤
    │ ParseError, BumpError, ...   │ Categories of JitverError, so callers   │
    │                              │ can catch one family of failures.       │
    ├──────────────────────────────┼─────────────────────────────────────────┤
    │ explain()                    │ Looks up a code in the ERRORS catalog.  │
    └──────────────────────────────┴─────────────────────────────────────────┘

Code categories::

    JV-CONFIG-*       Configuration errors
    JV-VERSION-*      Version parsing errors
    JV-BUMP-*         Bump errors
    JV-CHANGELOG-*    Changelog placeholder errors
    JV-DEP-*          Internal dependency errors
    JV-GRAPH-*        Dependency graph errors
    JV-AUTODETECT-*   Project discovery errors
    JV-REPO-*         Repository (git) errors
    JV-WORKFLOW-*     Release workflow state errors

Usage::

    from jitver.errors import E, JitverError

    raise JitverError(
        code=E.WORKFLOW_NOTHING_STAGED,
        message='No projects have been staged for release.',
        hint="Run 'jitver stage' first.",
    )
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """All jitver diagnostic codes."""

    # Configuration
    CONFIG_INVALID_KEY = 'JV-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'JV-CONFIG-INVALID-VALUE'
    CONFIG_PARSE_ERROR = 'JV-CONFIG-PARSE-ERROR'

    # Versions and bumps
    VERSION_PARSE_ERROR = 'JV-VERSION-PARSE-ERROR'
    BUMP_NOT_FORWARD = 'JV-BUMP-NOT-FORWARD'
    BUMP_OVERFLOW = 'JV-BUMP-OVERFLOW'
    BUMP_SPEC_INVALID = 'JV-BUMP-SPEC-INVALID'

    # Changelogs and commit metadata
    CHANGELOG_PARSE_ERROR = 'JV-CHANGELOG-PARSE-ERROR'
    METADATA_PARSE_ERROR = 'JV-METADATA-PARSE-ERROR'
    MANIFEST_PARSE_ERROR = 'JV-MANIFEST-PARSE-ERROR'

    # Dependencies and graph
    DEP_UNSATISFIED = 'JV-DEP-UNSATISFIED'
    GRAPH_CYCLE_DETECTED = 'JV-GRAPH-CYCLE-DETECTED'

    # Discovery
    AUTODETECT_AMBIGUOUS = 'JV-AUTODETECT-AMBIGUOUS'
    PROJECT_NOT_FOUND = 'JV-PROJECT-NOT-FOUND'
    PROJECT_NOT_RELEASED = 'JV-PROJECT-NOT-RELEASED'
    PROJECT_NO_COMMITS = 'JV-PROJECT-NO-COMMITS'

    # Repository
    REPO_OPERATION_FAILED = 'JV-REPO-OPERATION-FAILED'
    REPO_NOT_FOUND = 'JV-REPO-NOT-FOUND'
    REPO_DIRTY = 'JV-REPO-DIRTY'
    TAG_EXISTS = 'JV-TAG-EXISTS'

    # Workflow
    WORKFLOW_NOTHING_STAGED = 'JV-WORKFLOW-NOTHING-STAGED'
    WORKFLOW_NO_REQUEST = 'JV-WORKFLOW-NO-REQUEST'
    WORKFLOW_NOT_APPLIED = 'JV-WORKFLOW-NOT-APPLIED'
    WORKFLOW_DEV_MODE = 'JV-WORKFLOW-DEV-MODE'
    WORKFLOW_NO_RELEASE_INFO = 'JV-WORKFLOW-NO-RELEASE-INFO'
    WORKFLOW_STATE_CORRUPTED = 'JV-WORKFLOW-STATE-CORRUPTED'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``JV-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class JitverError(Exception):
    """Base exception for all jitver errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


class JitverWarning(UserWarning):
    """Base warning for jitver, rendered with :func:`render_warning`."""

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for addressing this warning, or empty string."""
        return self.info.hint


class ParseError(JitverError):
    """A version string, changelog placeholder or metadata block is malformed."""


class BumpError(JitverError):
    """A bump cannot be applied to a version."""


class AutodetectionError(JitverError):
    """Project discovery found an ambiguity it will not resolve silently."""


class RepositoryError(JitverError):
    """An underlying repository operation failed. Always fatal."""


class CycleError(JitverError):
    """The internal dependency graph is not acyclic.

    Attributes:
        cycles: Each cycle as a list of qualified names, first node repeated
            at the end.
    """

    def __init__(self, cycles: Sequence[Sequence[str]]) -> None:
        """Build the message from the detected cycles."""
        self.cycles = [list(c) for c in cycles]
        rendered = '; '.join(' -> '.join(c) for c in self.cycles)
        super().__init__(
            code=E.GRAPH_CYCLE_DETECTED,
            message=f'Internal dependency cycle: {rendered}',
            hint="Internal dependencies must form a DAG. Remove one edge and run 'jitver show toposort'.",
        )


@dataclass(frozen=True)
class UnsatisfiedDependency:
    """One depender→dependee requirement that no release satisfies."""

    depender: str
    dependee: str
    requirement: str


class UnsatisfiedInternalDependency(JitverError):
    """One or more internal dependencies cannot be satisfied.

    Attributes:
        failures: Every unsatisfied edge, so the user can fix them all at once.
    """

    def __init__(self, failures: Sequence[UnsatisfiedDependency]) -> None:
        """Build the message from the unsatisfied edges."""
        self.failures = list(failures)
        lines = [
            f'{f.depender} requires {f.dependee} at {f.requirement}, which is not satisfied by any release'
            for f in self.failures
        ]
        super().__init__(
            code=E.DEP_UNSATISFIED,
            message='; '.join(lines),
            hint='Stage the dependee projects for release in the same batch, or lower the required commit.',
        )


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.CONFIG_INVALID_KEY: ErrorInfo(
        code=E.CONFIG_INVALID_KEY,
        message='Unknown key in .config/jitver/config.toml.',
        hint='Check the key for typos. Only [repo] and [projects."<qname>"] tables are read.',
    ),
    E.BUMP_NOT_FORWARD: ErrorInfo(
        code=E.BUMP_NOT_FORWARD,
        message='A "force" bump names a version that does not exceed the latest release.',
        hint='Pick a version strictly greater than the current one, or use a micro/minor/major bump.',
    ),
    E.BUMP_OVERFLOW: ErrorInfo(
        code=E.BUMP_OVERFLOW,
        message='A four-component version cannot hold a component above 65534.',
        hint='Use a higher-order bump, which resets the overflowing component.',
    ),
    E.CHANGELOG_PARSE_ERROR: ErrorInfo(
        code=E.CHANGELOG_PARSE_ERROR,
        message='A changelog "# rc:" header does not name a valid bump.',
        hint='Use one of: micro bump, minor bump, major bump, no bump, force <version>.',
    ),
    E.DEP_UNSATISFIED: ErrorInfo(
        code=E.DEP_UNSATISFIED,
        message='A project requires a commit of another project that no release contains.',
        hint='Release the dependee in the same batch or wait until it has been released.',
    ),
    E.GRAPH_CYCLE_DETECTED: ErrorInfo(
        code=E.GRAPH_CYCLE_DETECTED,
        message='Circular internal dependency detected.',
        hint="Run 'jitver show toposort' to see the cycle.",
    ),
    E.AUTODETECT_AMBIGUOUS: ErrorInfo(
        code=E.AUTODETECT_AMBIGUOUS,
        message='Two projects claim the same directory prefix.',
        hint='Mark one of them with `ignore = true` under [projects."<qname>"].',
    ),
    E.REPO_DIRTY: ErrorInfo(
        code=E.REPO_DIRTY,
        message='The working tree has modifications that would be lost.',
        hint='Commit or stash your changes, or pass --force.',
    ),
    E.WORKFLOW_NOT_APPLIED: ErrorInfo(
        code=E.WORKFLOW_NOT_APPLIED,
        message='No applied versions were found in the working tree.',
        hint="Run 'jitver release-workflow apply-versions' first.",
    ),
    E.WORKFLOW_DEV_MODE: ErrorInfo(
        code=E.WORKFLOW_DEV_MODE,
        message='Refusing to record development versions on the release branch.',
        hint='Run apply-versions on the rc branch, or pass --force.',
    ),
    E.TAG_EXISTS: ErrorInfo(
        code=E.TAG_EXISTS,
        message='A release tag already exists.',
        hint='Each release can only be tagged once. Check the tag name template.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"JV-DEP-UNSATISFIED"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def _render(kind: str, color: str, info: ErrorInfo, out: TextIO) -> None:
    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(info.message)
        console.print(f'[bold {color}]{kind}\\[{info.code.value}][/bold {color}][bold]: {msg}[/bold]')
        if info.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(info.hint)}')
        console.print()
    else:
        print(f'{kind}[{info.code.value}]: {info.message}', file=out)  # noqa: T201 - CLI output
        if info.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {info.hint}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


def render_error(exc: JitverError, *, file: TextIO | None = None) -> None:
    """Render an error in Rust-compiler style.

    Output format::

        error[JV-DEP-UNSATISFIED]: cargo:foo_cli requires cargo:foo_lib at ...
          |
          = hint: Stage the dependee projects for release in the same batch ...

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    _render('error', 'red', exc.info, file or sys.stderr)


def render_warning(exc: JitverWarning, *, file: TextIO | None = None) -> None:
    """Render a warning in the same style as :func:`render_error`."""
    _render('warning', 'yellow', exc.info, file or sys.stderr)


__all__ = [
    'E',
    'ERRORS',
    'AutodetectionError',
    'BumpError',
    'CycleError',
    'ErrorCode',
    'ErrorInfo',
    'JitverError',
    'JitverWarning',
    'ParseError',
    'RepositoryError',
    'UnsatisfiedDependency',
    'UnsatisfiedInternalDependency',
    'explain',
    'render_error',
    'render_warning',
]
