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

"""Release graph and topological sort.

Builds a directed graph whose edges are internal dependencies, detects
cycles, and orders projects so every dependee comes before its
dependers. The order drives rewriting in ``apply-versions`` and the
build or publish order printed by ``show toposort``.

Edge Direction::

    Forward edges (``edges``): depender → dependee (who needs what)
    Reverse edges (``reverse_edges``): dependee → depender (who uses me)

    cargo:foo_cli ──→ cargo:foo_lib ←── pypa:foo-py

Levels::

    Level 0 (no deps):    [cargo:foo_lib]
    Level 1 (deps on L0): [cargo:foo_cli, pypa:foo-py]

The order of projects within a level is not part of the contract and
may differ between invocations. Only "dependee before depender" is
guaranteed.

Cycles are never prevented upstream. Detection here, at ``confirm`` and
``show toposort``, is the only place they are caught.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from jitver.errors import CycleError
from jitver.logging import get_logger
from jitver.project import Project

logger = get_logger(__name__)


@dataclass
class DependencyGraph:
    """A directed graph of internal project dependencies.

    Attributes:
        projects: Mapping from qualified name to :class:`Project`.
        edges: Forward adjacency list (depender → dependees).
        reverse_edges: Reverse adjacency list (dependee → dependers).
    """

    projects: dict[str, Project] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        """Sorted qualified names of all projects in the graph."""
        return sorted(self.projects)

    def __len__(self) -> int:
        """Return the number of projects in the graph."""
        return len(self.projects)


def build_graph(projects: Iterable[Project]) -> DependencyGraph:
    """Build the dependency graph over ``projects``.

    Edges to projects outside ``projects`` are left out.
    """
    graph = DependencyGraph()
    projects = list(projects)
    for project in projects:
        graph.projects[project.qname] = project
        graph.edges[project.qname] = []
        graph.reverse_edges[project.qname] = []

    for project in projects:
        for dep in project.internal_deps:
            if dep.dependee in graph.projects and dep.dependee not in graph.edges[project.qname]:
                graph.edges[project.qname].append(dep.dependee)
                graph.reverse_edges[dep.dependee].append(project.qname)

    logger.debug(
        'built_dependency_graph',
        projects=len(graph.projects),
        edges=sum(len(deps) for deps in graph.edges.values()),
    )
    return graph


def detect_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Detect cycles in the dependency graph using DFS.

    Returns:
        Each cycle as a list of qualified names with the first repeated at
        the end (``[a, b, a]``). Empty if the graph is acyclic.
    """
    _white, _gray, _black = 0, 1, 2
    color: dict[str, int] = {name: _white for name in graph.projects}
    parent: dict[str, str | None] = {name: None for name in graph.projects}
    cycles: list[list[str]] = []

    def _dfs(node: str) -> None:
        color[node] = _gray
        for neighbor in graph.edges.get(node, []):
            if color[neighbor] == _gray:
                cycle = [neighbor]
                current = node
                while current != neighbor:
                    cycle.append(current)
                    p = parent.get(current)
                    if p is None:
                        break
                    current = p
                cycle.append(neighbor)
                cycle.reverse()
                cycles.append(cycle)
            elif color[neighbor] == _white:
                parent[neighbor] = node
                _dfs(neighbor)
        color[node] = _black

    for name in graph.names:
        if color[name] == _white:
            _dfs(name)

    if cycles:
        logger.warning('cycles_detected', count=len(cycles))
    return cycles


def topo_sort(graph: DependencyGraph) -> list[list[Project]]:
    """Topological sort with level grouping (Kahn's algorithm).

    Level 0 holds projects with no internal dependencies, level 1 those
    depending only on level 0, and so on.

    Raises:
        CycleError: If the graph contains a cycle. A partial order is
            never returned.
    """
    in_degree = {name: len(graph.edges[name]) for name in graph.projects}
    queue: deque[str] = deque(name for name in graph.projects if in_degree[name] == 0)

    levels: list[list[Project]] = []
    processed = 0
    while queue:
        level_names = list(queue)
        queue.clear()
        levels.append([graph.projects[name] for name in level_names])
        processed += len(level_names)
        for name in level_names:
            for depender in graph.reverse_edges.get(name, []):
                in_degree[depender] -= 1
                if in_degree[depender] == 0:
                    queue.append(depender)

    if processed != len(graph.projects):
        raise CycleError(detect_cycles(graph))

    logger.debug('topo_sort_complete', levels=len(levels), projects=processed)
    return levels


def toposort(projects: Iterable[Project]) -> list[Project]:
    """Order ``projects`` so that dependees precede dependers.

    Raises:
        CycleError: If the projects' internal dependencies form a cycle.
    """
    return [project for level in topo_sort(build_graph(projects)) for project in level]


__all__ = [
    'DependencyGraph',
    'build_graph',
    'detect_cycles',
    'topo_sort',
    'toposort',
]
