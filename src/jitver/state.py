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

"""Applied-versions state, carried from ``apply-versions`` to ``commit``.

``apply-versions`` rewrites project files in place. What it decided
(which versions, from which source commit, which files it touched, which
dependencies still lean on the batch) is saved to a JSON state file in
the working tree so that ``commit`` can write the release record without
recomputing anything.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ AppliedState        │ The receipt apply-versions hands to commit.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Atomic save         │ Write to a temp file first, then rename.       │
    │                     │ If we crash mid-write, the old file is fine.   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ SHA validation      │ The receipt is only valid for the commit it    │
    │                     │ was made from. A different HEAD is refused.    │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import datetime
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from jitver.errors import E, JitverError
from jitver.logging import get_logger
from jitver.metadata import DependencyStatus, Resolution

logger = get_logger(__name__)

STATE_FILENAME = '.jitver-state.json'


@dataclass(frozen=True)
class AppliedProject:
    """What ``apply-versions`` did to one project.

    Attributes:
        qname: Qualified project name.
        old_version: The project's baseline (latest released) version.
        new_version: The version written to its files.
        released: Whether the project is released by this batch.
        deps: Dependency states of released projects.
    """

    qname: str
    old_version: str
    new_version: str
    released: bool
    deps: tuple[DependencyStatus, ...] = ()


@dataclass
class AppliedState:
    """The full outcome of one ``apply-versions`` run.

    Attributes:
        source_commit: ``HEAD`` when versions were applied.
        dev_mode: Whether versions are development identifiers.
        projects: Per-project outcome, in dependency order.
        changed_paths: Every file rewritten.
        created_at: ISO timestamp.
    """

    source_commit: str
    dev_mode: bool
    projects: list[AppliedProject] = field(default_factory=list)
    changed_paths: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat())

    def get(self, qname: str) -> AppliedProject | None:
        """Return the entry for ``qname``, if any."""
        for project in self.projects:
            if project.qname == qname:
                return project
        return None

    def validate_sha(self, current_sha: str) -> None:
        """Ensure ``HEAD`` has not moved since versions were applied.

        Raises:
            JitverError: If it has.
        """
        if self.source_commit != current_sha:
            raise JitverError(
                code=E.WORKFLOW_STATE_CORRUPTED,
                message=f'Versions were applied at {self.source_commit!r}, but HEAD is now {current_sha!r}.',
                hint=f'Discard the working-tree changes, delete {STATE_FILENAME} and re-run apply-versions.',
            )

    def save(self, path: Path) -> None:
        """Atomically save the state to a JSON file.

        Raises:
            OSError: If the file cannot be written.
        """
        data = {
            'source_commit': self.source_commit,
            'dev_mode': self.dev_mode,
            'created_at': self.created_at,
            'changed_paths': self.changed_paths,
            'projects': [
                {
                    'qname': p.qname,
                    'old_version': p.old_version,
                    'new_version': p.new_version,
                    'released': p.released,
                    'deps': [
                        {
                            'dependee': d.dependee,
                            'requirement': d.requirement,
                            'resolution': d.resolution.value,
                            'min_version': d.min_version,
                        }
                        for d in p.deps
                    ],
                }
                for p in self.projects
            ],
        }
        content = json.dumps(data, indent=2) + '\n'

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix='.jitver-state-', suffix='.tmp')
        closed = False
        try:
            os.write(fd, content.encode('utf-8'))
            os.close(fd)
            closed = True
            os.replace(tmp_path, path)
        except BaseException:
            if not closed:
                os.close(fd)
            Path(tmp_path).unlink(missing_ok=True)
            raise

        logger.debug('state_saved', path=str(path), projects=len(self.projects))

    @classmethod
    def load(cls, path: Path) -> AppliedState:
        """Load state from a JSON file.

        Raises:
            JitverError: If the file is missing, or its JSON is malformed.
        """
        try:
            text = path.read_text(encoding='utf-8')
        except FileNotFoundError as exc:
            raise JitverError(
                code=E.WORKFLOW_NOT_APPLIED,
                message=f'No applied versions found ({path.name} is missing).',
                hint="Run 'jitver release-workflow apply-versions' first.",
            ) from exc

        try:
            data = json.loads(text)
            projects = [
                AppliedProject(
                    qname=p['qname'],
                    old_version=p['old_version'],
                    new_version=p['new_version'],
                    released=bool(p['released']),
                    deps=tuple(
                        DependencyStatus(
                            dependee=d['dependee'],
                            requirement=d['requirement'],
                            resolution=Resolution(d['resolution']),
                            min_version=d.get('min_version', ''),
                        )
                        for d in p.get('deps', [])
                    ),
                )
                for p in data['projects']
            ]
            state = cls(
                source_commit=data['source_commit'],
                dev_mode=bool(data['dev_mode']),
                projects=projects,
                changed_paths=list(data.get('changed_paths', [])),
                created_at=data.get('created_at', ''),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise JitverError(
                code=E.WORKFLOW_STATE_CORRUPTED,
                message=f'State file {path} is corrupted: {exc}',
                hint=f'Discard the working-tree changes, delete {path.name} and re-run apply-versions.',
            ) from exc

        logger.debug('state_loaded', path=str(path), projects=len(projects))
        return state


__all__ = [
    'STATE_FILENAME',
    'AppliedProject',
    'AppliedState',
]
