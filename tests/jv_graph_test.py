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

"""Tests for jitver.graph module."""

from __future__ import annotations

import pytest
from jitver.errors import E, CycleError
from jitver.graph import build_graph, detect_cycles, topo_sort, toposort
from jitver.project import DepRequirement, InternalDependency, Project, ProjectMetadata
from jitver.version import Scheme, SemverVersion


def _project(name: str, deps: list[str] | None = None) -> Project:
    """Create a minimal Project depending on ``deps``."""
    qname = f'cargo:{name}'
    return Project(
        meta=ProjectMetadata(
            qname=qname,
            name=name,
            prefix=f'{name}/',
            manifest=f'{name}/Cargo.toml',
            scheme=Scheme.SEMVER,
            loader='cargo',
        ),
        version=SemverVersion(0, 0, 0),
        user_facing_name=name,
        internal_deps=tuple(
            InternalDependency(qname, f'cargo:{d}', DepRequirement.commit('a' * 40)) for d in deps or []
        ),
    )


def _assert_partial_order(order: list[Project]) -> None:
    position = {p.qname: i for i, p in enumerate(order)}
    for project in order:
        for dep in project.internal_deps:
            assert position[dep.dependee] < position[project.qname], (
                f'{dep.dependee} must come before {project.qname}: {list(position)}'
            )


class TestBuildGraph:
    """build_graph creates forward and reverse edges."""

    def test_empty(self) -> None:
        """Empty project list produces empty graph."""
        assert len(build_graph([])) == 0

    def test_edges(self) -> None:
        """Forward edges point from depender to dependee."""
        graph = build_graph([_project('foo_lib'), _project('foo_cli', ['foo_lib'])])
        assert graph.edges['cargo:foo_cli'] == ['cargo:foo_lib'], f'Got {graph.edges}'
        assert graph.reverse_edges['cargo:foo_lib'] == ['cargo:foo_cli'], f'Got {graph.reverse_edges}'

    def test_outside_edges_dropped(self) -> None:
        """Edges to projects outside the set are left out."""
        graph = build_graph([_project('foo_cli', ['elsewhere'])])
        assert graph.edges['cargo:foo_cli'] == [], f'Got {graph.edges}'


class TestTopoSort:
    """Dependees always come before dependers."""

    def test_chain(self) -> None:
        """A chain sorts in dependency order regardless of input order."""
        projects = [_project('c', ['b']), _project('b', ['a']), _project('a')]
        assert [p.user_facing_name for p in toposort(projects)] == ['a', 'b', 'c']

    def test_diamond(self) -> None:
        """Both middle projects follow the base and precede the top."""
        projects = [
            _project('top', ['left', 'right']),
            _project('left', ['base']),
            _project('right', ['base']),
            _project('base'),
        ]
        order = toposort(projects)
        _assert_partial_order(order)
        assert order[0].user_facing_name == 'base'
        assert order[-1].user_facing_name == 'top'

    def test_levels(self) -> None:
        """Projects with no dependencies form level 0."""
        levels = topo_sort(build_graph([_project('lib'), _project('cli', ['lib']), _project('other')]))
        names = [sorted(p.user_facing_name for p in level) for level in levels]
        assert names == [['lib', 'other'], ['cli']], f'Got {names}'

    def test_every_project_once(self) -> None:
        """The order is a permutation of the input."""
        projects = [_project(n) for n in ('x', 'y', 'z')]
        assert sorted(p.qname for p in toposort(projects)) == ['cargo:x', 'cargo:y', 'cargo:z']


class TestCycles:
    """Cycles abort the sort instead of producing a partial order."""

    def test_two_cycle(self) -> None:
        """A <-> B raises CycleError naming both."""
        projects = [_project('a', ['b']), _project('b', ['a'])]
        with pytest.raises(CycleError) as exc_info:
            toposort(projects)
        assert exc_info.value.code == E.GRAPH_CYCLE_DETECTED
        assert exc_info.value.cycles, 'Expected at least one cycle'
        members = set(exc_info.value.cycles[0])
        assert members == {'cargo:a', 'cargo:b'}, f'Got {exc_info.value.cycles}'
        assert 'cargo:a' in str(exc_info.value)

    def test_cycle_beside_acyclic_part(self) -> None:
        """A cycle anywhere fails the whole sort."""
        projects = [_project('ok'), _project('a', ['b']), _project('b', ['c']), _project('c', ['a'])]
        with pytest.raises(CycleError):
            toposort(projects)

    def test_detect_cycles_closed_path(self) -> None:
        """Each reported cycle starts and ends with the same project."""
        cycles = detect_cycles(build_graph([_project('a', ['b']), _project('b', ['a'])]))
        assert len(cycles) == 1, f'Got {cycles}'
        assert cycles[0][0] == cycles[0][-1], f'Got {cycles}'

    def test_detect_cycles_none(self) -> None:
        """Acyclic graphs report nothing."""
        assert detect_cycles(build_graph([_project('a'), _project('b', ['a'])])) == []

    def test_self_loop(self) -> None:
        """A project depending on itself is a cycle."""
        with pytest.raises(CycleError):
            toposort([_project('a', ['a'])])
