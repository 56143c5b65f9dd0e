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

"""Tests for jitver.state module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from jitver.errors import E, JitverError
from jitver.metadata import DependencyStatus, Resolution
from jitver.state import STATE_FILENAME, AppliedProject, AppliedState


def _state() -> AppliedState:
    return AppliedState(
        source_commit='a' * 40,
        dev_mode=False,
        projects=[
            AppliedProject(qname='cargo:foo_lib', old_version='0.1.1', new_version='0.1.2', released=True),
            AppliedProject(
                qname='cargo:foo_cli',
                old_version='0.1.0',
                new_version='0.2.0',
                released=True,
                deps=(DependencyStatus('cargo:foo_lib', 'b' * 40, Resolution.BATCH, '0.1.2'),),
            ),
            AppliedProject(qname='pypa:bar', old_version='0.0.0', new_version='0.0.0', released=False),
        ],
        changed_paths=['foo_lib/Cargo.toml', 'foo_cli/Cargo.toml'],
    )


class TestSaveLoad:
    """AppliedState persists to JSON."""

    def test_roundtrip(self, tmp_path: Path) -> None:
        """Loading a saved state gives it back unchanged."""
        path = tmp_path / STATE_FILENAME
        state = _state()
        state.save(path)
        loaded = AppliedState.load(path)
        assert loaded == state, f'Got {loaded!r}'

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        """The atomic save cleans up after itself."""
        _state().save(tmp_path / STATE_FILENAME)
        assert [p.name for p in tmp_path.iterdir()] == [STATE_FILENAME]

    def test_overwrite(self, tmp_path: Path) -> None:
        """Saving again replaces the previous state."""
        path = tmp_path / STATE_FILENAME
        _state().save(path)
        AppliedState(source_commit='c' * 40, dev_mode=True).save(path)
        loaded = AppliedState.load(path)
        assert loaded.source_commit == 'c' * 40
        assert loaded.dev_mode is True
        assert loaded.projects == []

    def test_missing(self, tmp_path: Path) -> None:
        """No state file means apply-versions has not run."""
        with pytest.raises(JitverError) as exc_info:
            AppliedState.load(tmp_path / STATE_FILENAME)
        assert exc_info.value.code == E.WORKFLOW_NOT_APPLIED
        assert 'apply-versions' in exc_info.value.hint

    def test_corrupt_json(self, tmp_path: Path) -> None:
        """Unparseable JSON is reported as corruption."""
        path = tmp_path / STATE_FILENAME
        path.write_text('{not json', encoding='utf-8')
        with pytest.raises(JitverError) as exc_info:
            AppliedState.load(path)
        assert exc_info.value.code == E.WORKFLOW_STATE_CORRUPTED

    def test_missing_keys(self, tmp_path: Path) -> None:
        """Well-formed JSON with the wrong shape is corruption too."""
        path = tmp_path / STATE_FILENAME
        path.write_text(json.dumps({'source_commit': 'a'}), encoding='utf-8')
        with pytest.raises(JitverError) as exc_info:
            AppliedState.load(path)
        assert exc_info.value.code == E.WORKFLOW_STATE_CORRUPTED


class TestQueries:
    """Lookups and HEAD validation."""

    def test_get(self) -> None:
        """Entries are found by qualified name."""
        entry = _state().get('cargo:foo_cli')
        assert entry is not None and entry.new_version == '0.2.0'
        assert _state().get('cargo:nope') is None

    def test_validate_sha_same(self) -> None:
        """The commit versions were applied at passes."""
        _state().validate_sha('a' * 40)

    def test_validate_sha_moved(self) -> None:
        """A different HEAD is refused."""
        with pytest.raises(JitverError) as exc_info:
            _state().validate_sha('d' * 40)
        assert exc_info.value.code == E.WORKFLOW_STATE_CORRUPTED
