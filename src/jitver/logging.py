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

"""Structured logging for jitver.

jitver logs through `structlog <https://www.structlog.org/>`_ on top of
the stdlib root logger. All log output goes to stderr. stdout carries
only command output, so ``jitver show toposort | xargs ...`` works.

Two renderings, chosen per run:

- Console (default): short colored lines, no timestamps. A jitver run
  lasts seconds and is read by the person who started it.
- JSON (``--json-log``): one object per line with an ISO timestamp and
  the logger name, for CI logs.

The CLI binds the running subcommand and repository root as context, so
every event of a CI job says which release step emitted it::

    {"event": "rc_commit_created", "command": "confirm", "repo": "/src/mono", ...}

Usage::

    from jitver.logging import bind_command, configure_logging, get_logger

    configure_logging(verbose=True)
    bind_command('stage', repo='/src/mono')
    log = get_logger(__name__)
    log.info('staged', projects=['foo_lib'])
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


def _level_for(verbose: bool, quiet: bool) -> int:
    """``--quiet`` wins over ``--verbose``."""
    if quiet:
        return logging.WARNING
    return logging.DEBUG if verbose else logging.INFO


def _render_processors(json_log: bool, stream: TextIO) -> list[structlog.types.Processor]:
    if json_log:
        return [
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt='iso', utc=True),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    return [structlog.dev.ConsoleRenderer(colors=stream.isatty())]


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Route structlog events to a stderr handler on the root logger.

    Safe to call more than once: each call replaces the previous handler.

    Args:
        verbose: Show debug events (history walks, git invocations).
        quiet: Show only warnings and errors.
        json_log: Render JSON lines instead of console lines.
        stream: Destination, ``sys.stderr`` by default.
    """
    out = stream if stream is not None else sys.stderr

    handler = logging.StreamHandler(out)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_render_processors(json_log, out),
            ],
        )
    )
    logging.basicConfig(level=_level_for(verbose, quiet), handlers=[handler], force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Module loggers are created at import, before this runs.
        cache_logger_on_first_use=False,
    )


def bind_command(command: str, *, repo: str) -> None:
    """Attach the running subcommand and repository to every later event."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(command=command, repo=repo)


def get_logger(name: str = 'jitver') -> structlog.stdlib.BoundLogger:
    """Return a logger. Modules pass ``__name__``."""
    return structlog.get_logger(name)


__all__ = [
    'bind_command',
    'configure_logging',
    'get_logger',
]
