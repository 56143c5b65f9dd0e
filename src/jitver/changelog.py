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

"""Changelog scaffolds: where a release request is drafted.

``stage`` writes a placeholder section at the top of each relevant
project's ``CHANGELOG.md``. The user edits the bump and the notes, then
``confirm`` reads them back::

    # rc: micro bump

    - Fix the frobnicator when the widget count is zero.
    - Document the --frobnicate flag.

    # foo_lib 0.1.1 (2026-09-30)

    - ...

The ``# rc:`` section runs up to the next top-level ``# `` heading.
Re-staging replaces only that section. Everything below it is kept
byte-for-byte. On ``apply-versions`` the header becomes the released
version's heading.
"""

from __future__ import annotations

import datetime
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from jitver.backends.vcs import Commit
from jitver.errors import E, ParseError
from jitver.loaders._files import read_text, write_text_if_changed
from jitver.logging import get_logger
from jitver.project import Project
from jitver.version import MICRO, BumpSpec, Version, parse_bump_spec

logger = get_logger(__name__)

CHANGELOG_NAME = 'CHANGELOG.md'
RC_HEADER = '# rc:'
WRAP_WIDTH = 78


@dataclass(frozen=True)
class RcSection:
    """A parsed ``# rc:`` section.

    Attributes:
        bump: The requested bump, or ``None`` for ``no bump``.
        notes: The release notes body, stripped.
    """

    bump: BumpSpec | None
    notes: str


def changelog_path(project: Project) -> str:
    """Repository-relative path of a project's changelog."""
    return f'{project.prefix}{CHANGELOG_NAME}'


def _read(root: Path, path: str) -> str:
    return read_text(root, path) if (root / path).is_file() else ''


def split_rc_section(text: str) -> tuple[str | None, str, str]:
    """Split changelog text around a leading ``# rc:`` section.

    Returns:
        ``(header, body, rest)``: the header line (``None`` if the text
        does not start with an rc section), the section body, and the
        remainder starting at the next top-level heading.
    """
    lines = text.splitlines(keepends=True)
    if not lines or not lines[0].startswith(RC_HEADER):
        return None, '', text
    end = len(lines)
    for i in range(1, len(lines)):
        if lines[i].startswith('# '):
            end = i
            break
    return lines[0].rstrip('\n'), ''.join(lines[1:end]), ''.join(lines[end:])


def draft_rc_section(commits: Sequence[Commit], bump: BumpSpec = MICRO) -> str:
    """Render a fresh ``# rc:`` section listing commit summaries."""
    parts = [f'{RC_HEADER} {bump}\n\n']
    for commit in commits:
        parts.append(
            textwrap.fill(
                commit.summary,
                width=WRAP_WIDTH,
                initial_indent='- ',
                subsequent_indent='  ',
                break_long_words=False,
                break_on_hyphens=False,
            )
        )
        parts.append('\n')
    if commits:
        parts.append('\n')
    return ''.join(parts)


def stage_changelog(root: Path, project: Project, commits: Sequence[Commit], bump: BumpSpec = MICRO) -> list[str]:
    """Write a placeholder rc section for ``project``.

    Returns:
        The changed paths.
    """
    path = changelog_path(project)
    old = _read(root, path)
    _, _, rest = split_rc_section(old)
    changed = write_text_if_changed(root, path, old, draft_rc_section(commits, bump) + rest)
    logger.info('changelog_staged', project=project.qname, path=path, commits=len(commits))
    return changed


def scan_rc_info(root: Path, project: Project) -> RcSection | None:
    """Read a project's staged rc section.

    Returns:
        The section, or ``None`` if the project is not staged.

    Raises:
        ParseError: If the ``# rc:`` header does not name a valid bump.
    """
    path = changelog_path(project)
    header, body, _ = split_rc_section(_read(root, path))
    if header is None:
        return None
    try:
        bump = parse_bump_spec(header[len(RC_HEADER) :])
    except ParseError as exc:
        raise ParseError(
            code=E.CHANGELOG_PARSE_ERROR,
            message=f'{path} ({project.qname}): {exc.info.message}',
            hint=exc.hint,
        ) from exc
    return RcSection(bump=bump, notes=body.strip())


def finalize_changelog(root: Path, project: Project, version: Version, date: datetime.date) -> list[str]:
    """Replace the ``# rc:`` header with the released version's heading.

    Returns:
        The changed paths (empty if the project was not staged).
    """
    path = changelog_path(project)
    old = _read(root, path)
    header, body, rest = split_rc_section(old)
    if header is None:
        return []
    heading = f'# {project.user_facing_name} {version} ({date.isoformat()})\n'
    return write_text_if_changed(root, path, old, heading + body + rest)


__all__ = [
    'CHANGELOG_NAME',
    'RcSection',
    'changelog_path',
    'draft_rc_section',
    'finalize_changelog',
    'scan_rc_info',
    'split_rc_section',
    'stage_changelog',
]
