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

"""Central configuration for jitver.

Configuration lives in ``.config/jitver/config.toml`` at the repository
root and is read once per invocation. It is an override surface: every
key is optional and autodetection fills in the rest.

Example::

    [repo]
    rc_name = "rc"
    release_name = "release"
    release_tag_name_format = "{project_slug}@{version}"
    upstream_urls = ["git@github.com:example/monorepo.git"]

    [projects."pypa:internal-tools"]
    ignore = true

Unknown keys are rejected with a "did you mean" hint rather than
silently ignored, since a typo in ``ignore`` would otherwise release a
project the user meant to exclude.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from jitver.errors import E, JitverError
from jitver.logging import get_logger

logger = get_logger(__name__)

CONFIG_PATH = Path('.config') / 'jitver' / 'config.toml'

DEFAULT_TAG_FORMAT = '{project_slug}@{version}'

VALID_SECTIONS: frozenset[str] = frozenset({'repo', 'projects'})

_REPO_TYPE_MAP: dict[str, type] = {
    'rc_name': str,
    'release_name': str,
    'release_tag_name_format': str,
    'upstream_urls': list,
}

_PROJECT_TYPE_MAP: dict[str, type] = {
    'ignore': bool,
}

_TAG_FIELDS = ('{project_slug}', '{version}')


@dataclass(frozen=True)
class ProjectConfig:
    """Per-project overrides from ``[projects."<qname>"]``.

    Attributes:
        ignore: Force the project out of the registry.
    """

    ignore: bool = False


@dataclass(frozen=True)
class JitverConfig:
    """Validated jitver configuration.

    Attributes:
        rc_name: Branch that receives release requests.
        release_name: Branch that records completed releases.
        release_tag_name_format: Tag template over ``{project_slug}``
            and ``{version}``.
        upstream_urls: Remote URLs identifying the canonical upstream.
        projects: Overrides keyed by qualified project name.
        config_path: The file the config was read from, if any.
    """

    rc_name: str = 'rc'
    release_name: str = 'release'
    release_tag_name_format: str = DEFAULT_TAG_FORMAT
    upstream_urls: list[str] = field(default_factory=list)
    projects: dict[str, ProjectConfig] = field(default_factory=dict)
    config_path: Path | None = None

    def project(self, qname: str) -> ProjectConfig:
        """Return the overrides for ``qname`` (defaults if none)."""
        return self.projects.get(qname, ProjectConfig())

    def tag_name(self, project_slug: str, version: str) -> str:
        """Render the release tag name for one project."""
        return self.release_tag_name_format.replace('{project_slug}', project_slug).replace('{version}', version)


def _unknown_key(key: str, valid: set[str] | frozenset[str], where: str) -> JitverError:
    suggestion = difflib.get_close_matches(key, valid, n=1, cutoff=0.6)
    hint = f"Did you mean '{suggestion[0]}'?" if suggestion else f'Valid keys: {", ".join(sorted(valid))}.'
    return JitverError(
        code=E.CONFIG_INVALID_KEY,
        message=f"Unknown key '{key}' in {where}",
        hint=hint,
    )


def _validate_table(
    raw: dict[str, Any],  # noqa: ANN401 - dynamic config
    type_map: dict[str, type],
    where: str,
) -> None:
    for key, value in raw.items():
        if key not in type_map:
            raise _unknown_key(key, set(type_map), where)
        expected = type_map[key]
        if not isinstance(value, expected):
            raise JitverError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'{key}' in {where} must be {expected.__name__}, got {type(value).__name__}",
            )


def _parse_repo_section(raw: dict[str, Any]) -> dict[str, Any]:  # noqa: ANN401 - dynamic config
    _validate_table(raw, _REPO_TYPE_MAP, '[repo]')

    for key in ('rc_name', 'release_name'):
        if key in raw and not raw[key].strip():
            raise JitverError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'{key}' in [repo] must not be empty",
            )

    urls = raw.get('upstream_urls', [])
    for url in urls:
        if not isinstance(url, str):
            raise JitverError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'upstream_urls' in [repo] must contain strings, got {type(url).__name__}",
            )

    fmt = raw.get('release_tag_name_format')
    if fmt is not None and '{version}' not in fmt:
        raise JitverError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'release_tag_name_format' must contain {{version}}, got {fmt!r}",
            hint=f'Supported fields: {", ".join(_TAG_FIELDS)}. Example: "{DEFAULT_TAG_FORMAT}".',
        )
    return dict(raw)


def load_config(repo_root: Path) -> JitverConfig:
    """Load and validate ``.config/jitver/config.toml``.

    Args:
        repo_root: The repository working tree root.

    Returns:
        A validated :class:`JitverConfig`. Defaults if the file is absent.

    Raises:
        JitverError: If the file cannot be parsed or holds invalid config.
    """
    config_path = repo_root / CONFIG_PATH
    if not config_path.is_file():
        logger.debug('no_jitver_config', path=str(config_path))
        return JitverConfig()

    try:
        doc = tomlkit.parse(config_path.read_text(encoding='utf-8'))
    except (OSError, tomlkit.exceptions.TOMLKitError) as exc:
        raise JitverError(
            code=E.CONFIG_PARSE_ERROR,
            message=f'Failed to parse {config_path}: {exc}',
        ) from exc

    raw: dict[str, Any] = doc.unwrap()  # noqa: ANN401 - dynamic config
    for key in raw:
        if key not in VALID_SECTIONS:
            raise _unknown_key(key, VALID_SECTIONS, str(CONFIG_PATH))
        if not isinstance(raw[key], dict):
            raise JitverError(
                code=E.CONFIG_INVALID_VALUE,
                message=f'[{key}] must be a table, got {type(raw[key]).__name__}',
            )

    repo_kwargs = _parse_repo_section(raw.get('repo', {}))

    projects: dict[str, ProjectConfig] = {}
    for qname, section in raw.get('projects', {}).items():
        where = f'[projects."{qname}"]'
        if not isinstance(section, dict):
            raise JitverError(
                code=E.CONFIG_INVALID_VALUE,
                message=f'{where} must be a table, got {type(section).__name__}',
            )
        _validate_table(section, _PROJECT_TYPE_MAP, where)
        projects[qname] = ProjectConfig(**section)

    logger.debug('config_loaded', path=str(config_path), projects=len(projects))
    return JitverConfig(**repo_kwargs, projects=projects, config_path=config_path)


__all__ = [
    'CONFIG_PATH',
    'DEFAULT_TAG_FORMAT',
    'JitverConfig',
    'ProjectConfig',
    'load_config',
]
