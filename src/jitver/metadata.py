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

"""Release request and release record wire format.

``confirm`` and ``commit`` attach a TOML block to the commit message of
the ``rc`` and ``release`` head commits. Downstream steps (``apply-versions``,
``tag``, ``show if-released``) read only these blocks and never re-derive
them from project files::

    Release request: foo_lib, foo_cli

    +++ jitver-rc-info-v1
    [[projects]]
    qname = "cargo:foo_lib"
    bump_spec = "micro bump"
    notes = "- Fix the frobnicator."

    [[projects]]
    qname = "cargo:foo_cli"
    bump_spec = "minor bump"
    notes = "- Add --frobnicate."

    [[projects.deps]]
    dependee = "cargo:foo_lib"
    requirement = "c7a1..."
    resolution = "batch"
    +++

Release records list every project, not only the released ones. ``age``
is ``0`` for a project released by that record and counts up by one in
each later record, so the latest record alone answers "what is the most
recent release of P, and from which commit".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import tomlkit
import tomlkit.exceptions

from jitver.errors import E, ParseError
from jitver.version import BumpSpec, parse_bump_spec

RC_INFO_MARKER = '+++ jitver-rc-info-v1'
RELEASE_INFO_MARKER = '+++ jitver-release-info-v1'
_BLOCK_END = '+++'


class Resolution(str, Enum):
    """How an internal dependency is satisfied."""

    RESOLVED = 'resolved'
    BATCH = 'batch'
    MANUAL = 'manual'
    UNSATISFIED = 'unsatisfied'


@dataclass(frozen=True)
class DependencyStatus:
    """Serialized state of one internal dependency of a requested project.

    Attributes:
        dependee: Qualified name of the project depended upon.
        requirement: The required commit sha, or the manual requirement text.
        resolution: How the requirement was satisfied at confirm time.
        min_version: The resolved minimum version, if already known.
    """

    dependee: str
    requirement: str
    resolution: Resolution
    min_version: str = ''


@dataclass(frozen=True)
class RequestedProject:
    """One project of a :class:`ReleaseRequest`."""

    qname: str
    bump: BumpSpec
    notes: str = ''
    deps: tuple[DependencyStatus, ...] = ()


@dataclass(frozen=True)
class ReleaseRequest:
    """The validated request carried by an ``rc`` commit.

    Attributes:
        projects: Requested projects in dependency order.
    """

    projects: tuple[RequestedProject, ...] = ()

    def get(self, qname: str) -> RequestedProject | None:
        """Return the entry for ``qname``, if requested."""
        for entry in self.projects:
            if entry.qname == qname:
                return entry
        return None

    @property
    def qnames(self) -> list[str]:
        """Requested qualified names, in order."""
        return [p.qname for p in self.projects]


@dataclass(frozen=True)
class ReleasedProject:
    """One project's entry in a :class:`ReleaseRecord`.

    Attributes:
        qname: Qualified project name.
        version: The version as of this record.
        commit: The source commit that version was released from, or
            ``None`` if the project has never been released.
        age: ``0`` if released by this record, else the number of records
            since it was.
        old_version: The previous version, for projects released here.
    """

    qname: str
    version: str
    commit: str | None
    age: int
    old_version: str = ''

    @property
    def released_here(self) -> bool:
        """Whether this record is the one that released the project."""
        return self.age == 0 and self.commit is not None


@dataclass(frozen=True)
class ReleaseRecord:
    """The outcome of one processed release request."""

    projects: tuple[ReleasedProject, ...] = ()
    dev_mode: bool = False
    sha: str = field(default='', compare=False)

    def lookup(self, qname: str) -> ReleasedProject | None:
        """Return the entry for ``qname``, if any."""
        for entry in self.projects:
            if entry.qname == qname:
                return entry
        return None

    def released(self) -> list[ReleasedProject]:
        """Entries released by this record."""
        return [p for p in self.projects if p.released_here]


def _extract_block(message: str, marker: str, sha: str) -> dict[str, Any] | None:  # noqa: ANN401 - TOML data
    pattern = r'^' + re.escape(marker) + r'[ \t]*\n(.*?)^' + re.escape(_BLOCK_END) + r'[ \t]*$'
    match = re.search(pattern, message, flags=re.DOTALL | re.MULTILINE)
    if match is None:
        if marker in message:
            raise ParseError(
                code=E.METADATA_PARSE_ERROR,
                message=f'Commit {sha or "?"}: unterminated {marker!r} block.',
            )
        return None
    try:
        return tomlkit.parse(match.group(1)).unwrap()
    except tomlkit.exceptions.TOMLKitError as exc:
        raise ParseError(
            code=E.METADATA_PARSE_ERROR,
            message=f'Commit {sha or "?"}: malformed {marker!r} block: {exc}',
        ) from exc


def _field(entry: dict[str, Any], key: str, sha: str) -> Any:  # noqa: ANN401 - TOML data
    if key not in entry:
        raise ParseError(
            code=E.METADATA_PARSE_ERROR,
            message=f'Commit {sha or "?"}: project entry is missing {key!r}.',
        )
    return entry[key]


def render_request(request: ReleaseRequest, summary: str) -> str:
    """Render ``request`` as a full ``rc`` commit message."""
    doc = tomlkit.document()
    projects = tomlkit.aot()
    for entry in request.projects:
        table = tomlkit.table()
        table.add('qname', entry.qname)
        table.add('bump_spec', str(entry.bump))
        table.add('notes', entry.notes)
        if entry.deps:
            deps = tomlkit.aot()
            for dep in entry.deps:
                dep_table = tomlkit.table()
                dep_table.add('dependee', dep.dependee)
                dep_table.add('requirement', dep.requirement)
                dep_table.add('resolution', dep.resolution.value)
                if dep.min_version:
                    dep_table.add('min_version', dep.min_version)
                deps.append(dep_table)
            table.add('deps', deps)
        projects.append(table)
    doc.add('projects', projects)
    return f'{summary}\n\n{RC_INFO_MARKER}\n{tomlkit.dumps(doc)}{_BLOCK_END}\n'


def parse_request(message: str, *, sha: str = '') -> ReleaseRequest | None:
    """Parse the release request in an ``rc`` commit message.

    Returns:
        The request, or ``None`` if the message carries none.

    Raises:
        ParseError: If the block is present but malformed.
    """
    data = _extract_block(message, RC_INFO_MARKER, sha)
    if data is None:
        return None

    entries: list[RequestedProject] = []
    for raw in data.get('projects', []):
        bump = parse_bump_spec(_field(raw, 'bump_spec', sha))
        if bump is None:
            raise ParseError(
                code=E.METADATA_PARSE_ERROR,
                message=f'Commit {sha or "?"}: {raw.get("qname")!r} is requested with "no bump".',
            )
        deps = tuple(
            DependencyStatus(
                dependee=_field(d, 'dependee', sha),
                requirement=_field(d, 'requirement', sha),
                resolution=Resolution(_field(d, 'resolution', sha)),
                min_version=d.get('min_version', ''),
            )
            for d in raw.get('deps', [])
        )
        entries.append(
            RequestedProject(
                qname=_field(raw, 'qname', sha),
                bump=bump,
                notes=raw.get('notes', ''),
                deps=deps,
            )
        )
    return ReleaseRequest(projects=tuple(entries))


def render_record(record: ReleaseRecord, summary: str) -> str:
    """Render ``record`` as a full ``release`` commit message."""
    doc = tomlkit.document()
    doc.add('dev_mode', record.dev_mode)
    projects = tomlkit.aot()
    for entry in record.projects:
        table = tomlkit.table()
        table.add('qname', entry.qname)
        table.add('version', entry.version)
        if entry.old_version:
            table.add('old_version', entry.old_version)
        if entry.commit is not None:
            table.add('commit', entry.commit)
        table.add('age', entry.age)
        projects.append(table)
    doc.add('projects', projects)
    return f'{summary}\n\n{RELEASE_INFO_MARKER}\n{tomlkit.dumps(doc)}{_BLOCK_END}\n'


def parse_record(message: str, *, sha: str = '') -> ReleaseRecord | None:
    """Parse the release record in a ``release`` commit message.

    Returns:
        The record, or ``None`` if the message carries none.

    Raises:
        ParseError: If the block is present but malformed.
    """
    data = _extract_block(message, RELEASE_INFO_MARKER, sha)
    if data is None:
        return None

    entries = tuple(
        ReleasedProject(
            qname=_field(raw, 'qname', sha),
            version=_field(raw, 'version', sha),
            commit=raw.get('commit'),
            age=int(_field(raw, 'age', sha)),
            old_version=raw.get('old_version', ''),
        )
        for raw in data.get('projects', [])
    )
    return ReleaseRecord(projects=entries, dev_mode=bool(data.get('dev_mode', False)), sha=sha)


__all__ = [
    'RC_INFO_MARKER',
    'RELEASE_INFO_MARKER',
    'DependencyStatus',
    'ReleaseRecord',
    'ReleaseRequest',
    'ReleasedProject',
    'RequestedProject',
    'Resolution',
    'parse_record',
    'parse_request',
    'render_record',
    'render_request',
]
