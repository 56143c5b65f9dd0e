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

"""CLI entry point for jitver.

Subcommands::

    jitver status                              Relevant commits per project
    jitver stage [--force] [NAME ...]          Write changelog scaffolds
    jitver confirm [--force]                   Commit a release request to rc
    jitver release-workflow apply-versions     Rewrite project versions
    jitver release-workflow commit             Record the release on release
    jitver release-workflow tag                Tag released projects
    jitver show toposort                       Projects in dependency order
    jitver show if-released NAME ...           Was NAME released at HEAD?
    jitver show version NAME                   A project's current version
    jitver explain CODE                        Explain an error code

Usage::

    # On main, after merging some work:
    jitver status
    jitver stage
    $EDITOR */CHANGELOG.md
    jitver confirm
    git push origin rc

    # On CI, checked out at rc:
    jitver release-workflow apply-versions
    jitver release-workflow commit
    jitver release-workflow tag
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich_argparse import RichHelpFormatter

from jitver import __version__
from jitver.errors import E, JitverError, JitverWarning, explain, render_error, render_warning
from jitver.graph import toposort
from jitver.logging import bind_command, configure_logging, get_logger
from jitver.workflow import (
    Session,
    apply_versions,
    commit_release,
    confirm,
    current_state,
    if_released,
    stage,
    status,
    tag_release,
)

logger = get_logger(__name__)


def _session(args: argparse.Namespace) -> Session:
    return Session.open(Path(args.repo))


def _cmd_status(args: argparse.Namespace) -> int:
    """Handle the ``status`` subcommand."""
    session = _session(args)
    logger.debug('workflow_state', state=current_state(session).value)
    for entry in status(session):
        print(entry.describe())  # noqa: T201 - CLI output
    return 0


def _cmd_stage(args: argparse.Namespace) -> int:
    """Handle the ``stage`` subcommand."""
    session = _session(args)
    staged = stage(session, args.names, force=args.force)
    if not staged:
        print('No projects have relevant commits to stage.')  # noqa: T201 - CLI output
        return 0
    for project in staged:
        print(f'{project.user_facing_name}: staged')  # noqa: T201 - CLI output
    return 0


def _cmd_confirm(args: argparse.Namespace) -> int:
    """Handle the ``confirm`` subcommand."""
    session = _session(args)
    result = confirm(session, force=args.force)
    if result is None:
        print('No releases seem to have been staged.')  # noqa: T201 - CLI output
        return 0
    for preview in result.previews:
        print(preview.describe())  # noqa: T201 - CLI output
    print(f'Release request committed to {session.config.rc_name} as {result.sha[:12]}.')  # noqa: T201 - CLI output
    return 0


def _cmd_apply_versions(args: argparse.Namespace) -> int:
    """Handle ``release-workflow apply-versions``."""
    state = apply_versions(_session(args), force=args.force)
    for project in state.projects:
        if project.released or state.dev_mode:
            print(f'{project.qname}: {project.old_version} -> {project.new_version}')  # noqa: T201 - CLI output
    return 0


def _cmd_commit(args: argparse.Namespace) -> int:
    """Handle ``release-workflow commit``."""
    record = commit_release(_session(args), force=args.force)
    print(f'Release recorded as {record.sha[:12]}.')  # noqa: T201 - CLI output
    return 0


def _cmd_tag(args: argparse.Namespace) -> int:
    """Handle ``release-workflow tag``."""
    for tag in tag_release(_session(args)):
        print(tag)  # noqa: T201 - CLI output
    return 0


def _cmd_show_toposort(args: argparse.Namespace) -> int:
    """Handle ``show toposort``."""
    for project in toposort(_session(args).registry):
        print(project.user_facing_name)  # noqa: T201 - CLI output
    return 0


def _cmd_show_if_released(args: argparse.Namespace) -> int:
    """Handle ``show if-released``.

    A known project that was not released is a warning, not an error,
    unless ``--exit-code`` is given.
    """
    results = if_released(_session(args), args.names)
    all_released = True
    for project, released in results:
        all_released = all_released and released
        if args.tf:
            print('true' if released else 'false')  # noqa: T201 - CLI output
        elif not released:
            render_warning(
                JitverWarning(
                    code=E.PROJECT_NOT_RELEASED,
                    message=f'{project.user_facing_name} was not released in this release commit.',
                )
            )
        else:
            print(f'{project.user_facing_name}: released')  # noqa: T201 - CLI output
    return 1 if args.exit_code and not all_released else 0


def _cmd_show_version(args: argparse.Namespace) -> int:
    """Handle ``show version``."""
    (project,) = _session(args).registry.lookup_names([args.name])
    print(project.version)  # noqa: T201 - CLI output
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return 1
    print(result)  # noqa: T201 - CLI output
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = argparse.ArgumentParser(
        prog='jitver',
        description='Just-in-time versioning for monorepos.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--repo', '-C', default='.', help='Path inside the repository (default: current directory).')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only log warnings and errors.')
    parser.add_argument('--json-log', action='store_true', help='Log JSON lines to stderr.')
    parser.set_defaults(handler=None)

    subparsers = parser.add_subparsers(dest='command')

    status_parser = subparsers.add_parser(
        'status',
        help='Show relevant commits per project since its last release.',
        formatter_class=RichHelpFormatter,
    )
    status_parser.set_defaults(handler=_cmd_status)

    stage_parser = subparsers.add_parser(
        'stage',
        help='Write release scaffolds into project changelogs.',
        formatter_class=RichHelpFormatter,
    )
    stage_parser.add_argument('names', nargs='*', metavar='NAME', help='Projects to stage (default: all relevant).')
    stage_parser.add_argument('--force', '-f', action='store_true', help='Stage projects with no relevant commits.')
    stage_parser.set_defaults(handler=_cmd_stage)

    confirm_parser = subparsers.add_parser(
        'confirm',
        help='Validate staged changelogs and commit a release request to rc.',
        formatter_class=RichHelpFormatter,
    )
    confirm_parser.add_argument('--force', '-f', action='store_true', help='Proceed with a dirty working tree.')
    confirm_parser.set_defaults(handler=_cmd_confirm)

    workflow_parser = subparsers.add_parser(
        'release-workflow',
        help='CI-side release steps.',
        formatter_class=RichHelpFormatter,
    )
    workflow_sub = workflow_parser.add_subparsers(dest='workflow_command')
    apply_parser = workflow_sub.add_parser(
        'apply-versions',
        help='Rewrite project files with release (or development) versions.',
        formatter_class=RichHelpFormatter,
    )
    apply_parser.add_argument('--force', '-f', action='store_true', help='Proceed with a dirty working tree.')
    apply_parser.set_defaults(handler=_cmd_apply_versions)
    commit_parser = workflow_sub.add_parser(
        'commit',
        help='Record the applied versions on the release branch.',
        formatter_class=RichHelpFormatter,
    )
    commit_parser.add_argument('--force', '-f', action='store_true', help='Record development versions too.')
    commit_parser.set_defaults(handler=_cmd_commit)
    tag_parser = workflow_sub.add_parser(
        'tag',
        help='Tag every project released by the HEAD release commit.',
        formatter_class=RichHelpFormatter,
    )
    tag_parser.set_defaults(handler=_cmd_tag)

    show_parser = subparsers.add_parser(
        'show',
        help='Query projects and releases.',
        formatter_class=RichHelpFormatter,
    )
    show_sub = show_parser.add_subparsers(dest='show_command')
    toposort_parser = show_sub.add_parser(
        'toposort',
        help='Print projects so that dependencies come first.',
        formatter_class=RichHelpFormatter,
    )
    toposort_parser.set_defaults(handler=_cmd_show_toposort)
    released_parser = show_sub.add_parser(
        'if-released',
        help='Report whether projects were released by the HEAD release commit.',
        formatter_class=RichHelpFormatter,
    )
    released_parser.add_argument('names', nargs='+', metavar='NAME', help='Projects to check.')
    released_parser.add_argument('--exit-code', action='store_true', help='Exit 1 if any project was not released.')
    released_parser.add_argument('--tf', action='store_true', help='Print "true" or "false" per project.')
    released_parser.set_defaults(handler=_cmd_show_if_released)
    version_parser = show_sub.add_parser(
        'version',
        help="Print a project's current version.",
        formatter_class=RichHelpFormatter,
    )
    version_parser.add_argument('name', metavar='NAME', help='Project name.')
    version_parser.set_defaults(handler=_cmd_show_version)

    explain_parser = subparsers.add_parser(
        'explain',
        help='Explain an error code.',
        formatter_class=RichHelpFormatter,
    )
    explain_parser.add_argument('code', metavar='CODE', help='Error code, e.g. JV-DEP-UNSATISFIED.')
    explain_parser.set_defaults(handler=_cmd_explain)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    if args.handler is None:
        parser.print_help()  # noqa: T201 - CLI output
        print(f'\n{parser.prog}: error: please provide a command', file=sys.stderr)  # noqa: T201 - CLI output
        return 2

    subcommand = getattr(args, 'workflow_command', None) or getattr(args, 'show_command', None)
    bind_command(f'{args.command} {subcommand}' if subcommand else args.command, repo=args.repo)

    try:
        return args.handler(args)
    except JitverError as exc:
        render_error(exc)
        return 1
    except KeyboardInterrupt:
        logger.info('interrupted')
        return 130


def _main() -> None:
    """Wrapper for pyproject.toml [project.scripts] entry point."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
