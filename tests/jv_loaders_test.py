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

"""Tests for the bundled ecosystem loaders."""

from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest
import tomlkit
from jitver.errors import E, ParseError
from jitver.loaders import Loader, default_loaders
from jitver.loaders.cargo import CargoLoader
from jitver.loaders.dotnet import DotnetLoader
from jitver.loaders.npm import NpmLoader
from jitver.loaders.pypa import PypaLoader
from jitver.project import DepKind, DepRequirement
from jitver.version import Pep440Version, QuadVersion, Scheme, SemverVersion


def _write(root: Path, path: str, text: str) -> None:
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(textwrap.dedent(text).lstrip(), encoding='utf-8')


PYPROJECT = """
    [project]
    name = "Foo_CLI"
    version = "0.0.0.dev0"
    dependencies = [
        "foo-lib[cli]; python_version >= '3.10'",
        "click>=8",
    ]

    [project.optional-dependencies]
    docs = ["foo-docs"]

    [tool.jitver.internal-deps]
    foo_lib = "c7a1e2c7a1e2c7a1e2c7a1e2c7a1e2c7a1e2c7a1"
    foo-docs = "manual:>=1.2,<2"
"""

CARGO = """
    [package]
    name = "foo_cli"
    version = "0.1.0"

    [dependencies]
    foo_lib = { path = "../foo_lib", version = "0.1.0" }
    serde = "1"

    [dev-dependencies.foo_test]
    path = "../foo_test"

    [build-dependencies]
    foo_build = { path = "../foo_build", package = "foo-build" }

    [package.metadata.jitver.internal-deps]
    foo_lib = "c7a1e2c7a1e2c7a1e2c7a1e2c7a1e2c7a1e2c7a1"
    foo-build = "manual:^0.3"
"""

PACKAGE_JSON = """
    {
      "name": "@scope/cli",
      "version": "0.1.0",
      "bin": {"scope-cli": "cli.js"},
      "dependencies": {"@scope/lib": "0.1.0", "chalk": "^5"},
      "devDependencies": {"@scope/testing": "*"},
      "optionalDependencies": {"@scope/extra": "0.1.0"},
      "jitver": {
        "internalDeps": {
          "@scope/lib": "c7a1e2c7a1e2c7a1e2c7a1e2c7a1e2c7a1e2c7a1",
          "@scope/extra": "manual:^0.3"
        }
      }
    }
"""

ASSEMBLY_INFO = """
    using System.Reflection;

    [assembly: AssemblyTitle("Tool")]
    [assembly: AssemblyVersion("1.2.3.4")]
    [assembly: AssemblyFileVersion("1.2.3.4")]
"""


class TestDefaultLoaders:
    """default_loaders() returns the bundled set."""

    def test_bundled(self, tmp_path: Path) -> None:
        """All bundled loaders conform to the protocol, highest priority first."""
        loaders = default_loaders(tmp_path)
        assert [loader.name for loader in loaders] == ['pypa', 'cargo', 'npm', 'dotnet']
        assert all(isinstance(loader, Loader) for loader in loaders)
        priorities = [loader.priority for loader in loaders]
        assert priorities == sorted(priorities, reverse=True)


class TestPypaLoader:
    """Tests for PypaLoader."""

    def test_detect(self, tmp_path: Path) -> None:
        """A named pyproject.toml is a project with a canonical qname."""
        _write(tmp_path, 'foo_cli/pyproject.toml', PYPROJECT)
        meta = PypaLoader(tmp_path).detect('foo_cli/pyproject.toml')
        assert meta is not None
        assert meta.qname == 'pypa:foo-cli'
        assert meta.name == 'Foo_CLI'
        assert meta.prefix == 'foo_cli/'
        assert meta.scheme == Scheme.PEP440

    def test_detect_ignores_others(self, tmp_path: Path) -> None:
        """Other files and nameless pyprojects are not projects."""
        _write(tmp_path, 'pyproject.toml', '[tool.ruff]\nline-length = 100\n')
        loader = PypaLoader(tmp_path)
        assert loader.detect('pyproject.toml') is None
        assert loader.detect('setup.py') is None

    def test_read_version(self, tmp_path: Path) -> None:
        """The static version is parsed as PEP 440."""
        _write(tmp_path, 'foo_cli/pyproject.toml', PYPROJECT)
        loader = PypaLoader(tmp_path)
        meta = loader.detect('foo_cli/pyproject.toml')
        assert meta is not None
        assert loader.read_version(meta) == Pep440Version(release=(0, 0, 0), dev=0)

    def test_dynamic_version(self, tmp_path: Path) -> None:
        """A missing static version is an error."""
        _write(tmp_path, 'pyproject.toml', '[project]\nname = "foo"\ndynamic = ["version"]\n')
        loader = PypaLoader(tmp_path)
        meta = loader.detect('pyproject.toml')
        assert meta is not None
        with pytest.raises(ParseError) as exc_info:
            loader.read_version(meta)
        assert exc_info.value.code == E.MANIFEST_PARSE_ERROR

    def test_read_internal_deps(self, tmp_path: Path) -> None:
        """Anchors become commit or manual requirements, the rest are unavailable."""
        _write(tmp_path, 'foo_cli/pyproject.toml', PYPROJECT)
        loader = PypaLoader(tmp_path)
        meta = loader.detect('foo_cli/pyproject.toml')
        assert meta is not None
        deps = {d.dependee: d for d in loader.read_internal_deps(meta)}
        assert set(deps) == {'pypa:foo-lib', 'pypa:click', 'pypa:foo-docs'}
        assert deps['pypa:foo-lib'].requirement == DepRequirement.commit('c7a1e2' * 6 + 'c7a1')
        assert deps['pypa:foo-docs'].requirement == DepRequirement.manual('>=1.2,<2')
        assert deps['pypa:click'].requirement.kind == DepKind.UNAVAILABLE
        assert all(d.depender == 'pypa:foo-cli' for d in deps.values())

    def test_invalid_dependency(self, tmp_path: Path) -> None:
        """Unparseable PEP 508 entries are reported."""
        _write(tmp_path, 'pyproject.toml', '[project]\nname = "foo"\nversion = "1.0"\ndependencies = ["foo >>> 1"]\n')
        loader = PypaLoader(tmp_path)
        meta = loader.detect('pyproject.toml')
        assert meta is not None
        with pytest.raises(ParseError, match='invalid dependency'):
            loader.read_internal_deps(meta)

    def test_write_version(self, tmp_path: Path) -> None:
        """Only the version line changes."""
        _write(tmp_path, 'foo_cli/pyproject.toml', PYPROJECT)
        loader = PypaLoader(tmp_path)
        meta = loader.detect('foo_cli/pyproject.toml')
        assert meta is not None
        before = (tmp_path / 'foo_cli/pyproject.toml').read_text(encoding='utf-8')
        assert loader.write_version(meta, Pep440Version(release=(0, 2, 0))) == ['foo_cli/pyproject.toml']
        after = (tmp_path / 'foo_cli/pyproject.toml').read_text(encoding='utf-8')
        assert after == before.replace('version = "0.0.0.dev0"', 'version = "0.2.0"')
        assert loader.write_version(meta, Pep440Version(release=(0, 2, 0))) == []

    def test_write_requirement_keeps_extras_and_markers(self, tmp_path: Path) -> None:
        """The rewritten entry keeps its extras and environment marker."""
        _write(tmp_path, 'foo_cli/pyproject.toml', PYPROJECT)
        loader = PypaLoader(tmp_path)
        meta = loader.detect('foo_cli/pyproject.toml')
        assert meta is not None
        changed = loader.write_internal_dep_requirement(meta, 'pypa:foo-lib', Pep440Version(release=(0, 1, 2)))
        assert changed == ['foo_cli/pyproject.toml']
        doc = tomlkit.parse((tmp_path / 'foo_cli/pyproject.toml').read_text(encoding='utf-8')).unwrap()
        assert doc['project']['dependencies'] == [
            'foo-lib[cli]>=0.1.2; python_version >= "3.10"',
            'click>=8',
        ]
        assert doc['project']['optional-dependencies']['docs'] == ['foo-docs']


class TestCargoLoader:
    """Tests for CargoLoader."""

    def test_detect(self, tmp_path: Path) -> None:
        """Packages are projects, virtual workspaces are not."""
        _write(tmp_path, 'foo_cli/Cargo.toml', CARGO)
        _write(tmp_path, 'Cargo.toml', '[workspace]\nmembers = ["foo_cli"]\n')
        loader = CargoLoader(tmp_path)
        meta = loader.detect('foo_cli/Cargo.toml')
        assert meta is not None
        assert meta.qname == 'cargo:foo_cli'
        assert meta.prefix == 'foo_cli/'
        assert meta.scheme == Scheme.SEMVER
        assert loader.detect('Cargo.toml') is None
        assert loader.detect('foo_cli/Cargo.lock') is None

    def test_read_version(self, tmp_path: Path) -> None:
        """The package version is parsed as semver."""
        _write(tmp_path, 'foo_cli/Cargo.toml', CARGO)
        loader = CargoLoader(tmp_path)
        meta = loader.detect('foo_cli/Cargo.toml')
        assert meta is not None
        assert loader.read_version(meta) == SemverVersion(0, 1, 0)

    def test_read_internal_deps(self, tmp_path: Path) -> None:
        """Path dependencies in all three sections are internal candidates."""
        _write(tmp_path, 'foo_cli/Cargo.toml', CARGO)
        loader = CargoLoader(tmp_path)
        meta = loader.detect('foo_cli/Cargo.toml')
        assert meta is not None
        deps = {d.dependee: d.requirement for d in loader.read_internal_deps(meta)}
        assert deps == {
            'cargo:foo_lib': DepRequirement.commit('c7a1e2' * 6 + 'c7a1'),
            'cargo:foo_test': DepRequirement.unavailable(),
            'cargo:foo-build': DepRequirement.manual('^0.3'),
        }

    def test_write_requirement(self, tmp_path: Path) -> None:
        """The path dependency's version becomes a lower bound."""
        _write(tmp_path, 'foo_cli/Cargo.toml', CARGO)
        loader = CargoLoader(tmp_path)
        meta = loader.detect('foo_cli/Cargo.toml')
        assert meta is not None
        changed = loader.write_internal_dep_requirement(meta, 'cargo:foo_lib', SemverVersion(0, 1, 2))
        assert changed == ['foo_cli/Cargo.toml']
        doc = tomlkit.parse((tmp_path / 'foo_cli/Cargo.toml').read_text(encoding='utf-8')).unwrap()
        assert doc['dependencies']['foo_lib'] == {'path': '../foo_lib', 'version': '>=0.1.2'}
        assert doc['dependencies']['serde'] == '1'

    def test_write_version(self, tmp_path: Path) -> None:
        """The package version is rewritten."""
        _write(tmp_path, 'foo_cli/Cargo.toml', CARGO)
        loader = CargoLoader(tmp_path)
        meta = loader.detect('foo_cli/Cargo.toml')
        assert meta is not None
        loader.write_version(meta, SemverVersion(0, 2, 0))
        assert loader.read_version(meta) == SemverVersion(0, 2, 0)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Broken manifests are reported with their path."""
        _write(tmp_path, 'Cargo.toml', '[package\nname = "x"\n')
        with pytest.raises(ParseError, match='Cargo.toml') as exc_info:
            CargoLoader(tmp_path).detect('Cargo.toml')
        assert exc_info.value.code == E.MANIFEST_PARSE_ERROR


class TestNpmLoader:
    """Tests for NpmLoader."""

    def test_detect(self, tmp_path: Path) -> None:
        """Scoped names are kept. Manifests without content are skipped."""
        _write(tmp_path, 'cli/package.json', PACKAGE_JSON)
        _write(tmp_path, 'package.json', '{"name": "monorepo", "private": true, "scripts": {}}')
        loader = NpmLoader(tmp_path)
        meta = loader.detect('cli/package.json')
        assert meta is not None
        assert meta.qname == 'npm:@scope/cli'
        assert meta.name == '@scope/cli'
        assert meta.prefix == 'cli/'
        assert meta.scheme == Scheme.SEMVER
        assert loader.detect('package.json') is None
        assert loader.detect('cli/package-lock.json') is None

    def test_read_version(self, tmp_path: Path) -> None:
        """The version field is parsed as semver."""
        _write(tmp_path, 'cli/package.json', PACKAGE_JSON)
        loader = NpmLoader(tmp_path)
        meta = loader.detect('cli/package.json')
        assert meta is not None
        assert loader.read_version(meta) == SemverVersion(0, 1, 0)

    def test_missing_version(self, tmp_path: Path) -> None:
        """A package without a version string cannot be versioned."""
        _write(tmp_path, 'cli/package.json', '{"name": "cli", "main": "index.js"}')
        loader = NpmLoader(tmp_path)
        meta = loader.detect('cli/package.json')
        assert meta is not None
        with pytest.raises(ParseError) as exc_info:
            loader.read_version(meta)
        assert exc_info.value.code == E.MANIFEST_PARSE_ERROR

    def test_read_internal_deps(self, tmp_path: Path) -> None:
        """Entries of all three sections carry their anchors."""
        _write(tmp_path, 'cli/package.json', PACKAGE_JSON)
        loader = NpmLoader(tmp_path)
        meta = loader.detect('cli/package.json')
        assert meta is not None
        deps = {d.dependee: d.requirement for d in loader.read_internal_deps(meta)}
        assert deps == {
            'npm:@scope/lib': DepRequirement.commit('c7a1e2' * 6 + 'c7a1'),
            'npm:chalk': DepRequirement.unavailable(),
            'npm:@scope/testing': DepRequirement.unavailable(),
            'npm:@scope/extra': DepRequirement.manual('^0.3'),
        }

    def test_write_requirement(self, tmp_path: Path) -> None:
        """The dependency entry becomes a lower bound and nothing else moves."""
        _write(tmp_path, 'cli/package.json', PACKAGE_JSON)
        loader = NpmLoader(tmp_path)
        meta = loader.detect('cli/package.json')
        assert meta is not None
        changed = loader.write_internal_dep_requirement(meta, 'npm:@scope/lib', SemverVersion(0, 1, 2))
        assert changed == ['cli/package.json']
        data = json.loads((tmp_path / 'cli/package.json').read_text(encoding='utf-8'))
        assert data['dependencies'] == {'@scope/lib': '>=0.1.2', 'chalk': '^5'}
        assert list(data)[:4] == ['name', 'version', 'bin', 'dependencies']
        assert data['jitver']['internalDeps']['@scope/extra'] == 'manual:^0.3'
        assert loader.write_internal_dep_requirement(meta, 'npm:@scope/lib', SemverVersion(0, 1, 2)) == []

    def test_write_version(self, tmp_path: Path) -> None:
        """The version is rewritten. Writing the same version changes nothing."""
        _write(tmp_path, 'cli/package.json', PACKAGE_JSON)
        loader = NpmLoader(tmp_path)
        meta = loader.detect('cli/package.json')
        assert meta is not None
        assert loader.write_version(meta, SemverVersion(0, 1, 0)) == []
        assert loader.write_version(meta, SemverVersion(0, 2, 0)) == ['cli/package.json']
        assert loader.read_version(meta) == SemverVersion(0, 2, 0)

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Broken manifests are reported with their path."""
        _write(tmp_path, 'package.json', '{"name": ')
        with pytest.raises(ParseError, match='package.json') as exc_info:
            NpmLoader(tmp_path).detect('package.json')
        assert exc_info.value.code == E.MANIFEST_PARSE_ERROR

    def test_not_an_object(self, tmp_path: Path) -> None:
        """A top-level array is rejected."""
        _write(tmp_path, 'package.json', '[]')
        with pytest.raises(ParseError, match='not a JSON object'):
            NpmLoader(tmp_path).detect('package.json')


class TestDotnetLoader:
    """Tests for DotnetLoader."""

    def test_detect(self, tmp_path: Path) -> None:
        """The project is named after the directory holding Properties/."""
        loader = DotnetLoader(tmp_path)
        meta = loader.detect('src/Tool/Properties/AssemblyInfo.cs')
        assert meta is not None
        assert meta.qname == 'dotnet:Tool'
        assert meta.prefix == 'src/Tool/'
        assert meta.scheme == Scheme.QUAD
        assert loader.detect('src/Tool/Program.cs') is None

    def test_read_and_write_version(self, tmp_path: Path) -> None:
        """Both version attributes are rewritten, nothing else."""
        _write(tmp_path, 'Tool/Properties/AssemblyInfo.cs', ASSEMBLY_INFO)
        loader = DotnetLoader(tmp_path)
        meta = loader.detect('Tool/Properties/AssemblyInfo.cs')
        assert meta is not None
        assert loader.read_version(meta) == QuadVersion(1, 2, 3, 4)

        assert loader.write_version(meta, QuadVersion(1, 3, 0, 0)) == ['Tool/Properties/AssemblyInfo.cs']
        text = (tmp_path / 'Tool/Properties/AssemblyInfo.cs').read_text(encoding='utf-8')
        assert '[assembly: AssemblyVersion("1.3.0.0")]' in text
        assert '[assembly: AssemblyFileVersion("1.3.0.0")]' in text
        assert '[assembly: AssemblyTitle("Tool")]' in text

    def test_no_version_attribute(self, tmp_path: Path) -> None:
        """A file without AssemblyVersion is an error."""
        _write(tmp_path, 'Tool/Properties/AssemblyInfo.cs', 'using System;\n')
        loader = DotnetLoader(tmp_path)
        meta = loader.detect('Tool/Properties/AssemblyInfo.cs')
        assert meta is not None
        with pytest.raises(ParseError):
            loader.read_version(meta)

    def test_no_internal_deps(self, tmp_path: Path) -> None:
        """Assemblies have nothing to resolve."""
        loader = DotnetLoader(tmp_path)
        meta = loader.detect('Tool/Properties/AssemblyInfo.cs')
        assert meta is not None
        assert loader.read_internal_deps(meta) == []
        assert loader.write_internal_dep_requirement(meta, 'dotnet:Other', QuadVersion(1, 0, 0, 0)) == []
