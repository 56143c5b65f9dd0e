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

"""File helpers shared by the ecosystem loaders."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions
from tomlkit.toml_document import TOMLDocument

from jitver.errors import E, JitverError, ParseError


def read_text(root: Path, path: str) -> str:
    """Read a repository-relative file.

    Raises:
        JitverError: If the file cannot be read.
    """
    try:
        return (root / path).read_text(encoding='utf-8')
    except OSError as exc:
        raise JitverError(
            code=E.MANIFEST_PARSE_ERROR,
            message=f'Cannot read {path}: {exc}',
        ) from exc


def write_text_if_changed(root: Path, path: str, old: str, new: str) -> list[str]:
    """Write ``new`` over ``path`` unless it equals ``old``.

    Returns:
        ``[path]`` if the file was rewritten, else ``[]``.
    """
    if new == old:
        return []
    try:
        (root / path).write_text(new, encoding='utf-8')
    except OSError as exc:
        raise JitverError(
            code=E.MANIFEST_PARSE_ERROR,
            message=f'Cannot write {path}: {exc}',
            hint=f'Check file permissions for {path}.',
        ) from exc
    return [path]


def read_toml(root: Path, path: str) -> tuple[str, TOMLDocument]:
    """Read and parse a TOML manifest, keeping the text for change detection.

    Raises:
        ParseError: If the file is not valid TOML.
    """
    text = read_text(root, path)
    try:
        return text, tomlkit.parse(text)
    except tomlkit.exceptions.TOMLKitError as exc:
        raise ParseError(
            code=E.MANIFEST_PARSE_ERROR,
            message=f'Cannot parse {path}: {exc}',
            hint=f'Check that {path} contains valid TOML.',
        ) from exc


def table(doc: dict, *keys: str) -> dict:
    """Walk nested tables, returning ``{}`` where any level is absent."""
    node: object = doc
    for key in keys:
        if not isinstance(node, dict):
            return {}
        node = node.get(key, {})
    return node if isinstance(node, dict) else {}


def dirname_prefix(path: str) -> str:
    """Return the ``/``-terminated directory of ``path``, ``''`` at the root."""
    head, _, _ = path.rpartition('/')
    return f'{head}/' if head else ''


def read_json(root: Path, path: str) -> tuple[str, dict[str, Any]]:
    """Read and parse a JSON manifest whose top level is an object.

    Raises:
        ParseError: If the file is not valid JSON or not an object.
    """
    text = read_text(root, path)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            code=E.MANIFEST_PARSE_ERROR,
            message=f'Cannot parse {path}: {exc}',
            hint=f'Check that {path} contains valid JSON.',
        ) from exc
    if not isinstance(data, dict):
        raise ParseError(
            code=E.MANIFEST_PARSE_ERROR,
            message=f'{path} is not a JSON object.',
        )
    return text, data


def dump_json(data: dict[str, Any]) -> str:
    """Serialize a package manifest the way npm writes it."""
    return json.dumps(data, indent=2, ensure_ascii=False) + '\n'
