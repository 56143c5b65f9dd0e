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

"""The release workflow state machine.

Key Concepts (ELI5)::

    ┌──────────────────┬────────────────────────────────────────────────────┐
    │ State            │ How you get there                                  │
    ├──────────────────┼────────────────────────────────────────────────────┤
    │ DEVELOPMENT      │ Normal work on the main branch.                    │
    ├──────────────────┼────────────────────────────────────────────────────┤
    │ STAGED           │ ``stage`` wrote ``# rc:`` scaffolds in changelogs. │
    ├──────────────────┼────────────────────────────────────────────────────┤
    │ REQUESTED        │ ``confirm`` validated the scaffolds and wrote a    │
    │                  │ release request commit on ``rc``.                  │
    ├──────────────────┼────────────────────────────────────────────────────┤
    │ VERSIONS_APPLIED │ ``apply-versions`` rewrote project files (on CI,   │
    │                  │ checked out at ``rc``).                            │
    ├──────────────────┼────────────────────────────────────────────────────┤
    │ RELEASED         │ ``commit`` wrote the release record on ``release``.│
    ├──────────────────┼────────────────────────────────────────────────────┤
    │ TAGGED           │ ``tag`` created one tag per released project.      │
    └──────────────────┴────────────────────────────────────────────────────┘

Branch layout after two releases::

    main:     A───B───C───D───E
                       \\       \\
    rc:                 R1      R2        (parent: the main commit)
                         \\       \\
    release:              X1──────X2      (parents: previous release, rc)

Every step that writes to a branch (``confirm``, ``commit``, ``tag``)
finishes all validation before the first git object is written. A
failed step leaves the repository as it was.
"""

from __future__ import annotations

import datetime
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from jitver.backends.vcs import Commit, Repository
from jitver.backends.vcs.git import GitCLIBackend
from jitver.changelog import changelog_path, finalize_changelog, scan_rc_info, stage_changelog
from jitver.config import JitverConfig, load_config
from jitver.errors import E, BumpError, JitverError, ParseError
from jitver.graph import toposort
from jitver.history import HistoryWalker, relevant_commits
from jitver.loaders import Loader, default_loaders
from jitver.logging import get_logger
from jitver.metadata import (
    ReleasedProject,
    ReleaseRecord,
    ReleaseRequest,
    RequestedProject,
    Resolution,
    parse_record,
    parse_request,
    render_record,
    render_request,
)
from jitver.project import DepRequirement, InternalDependency, Project, ProjectRegistry, discover
from jitver.resolver import DependencyResolver, DependencyState, ReleaseHistory
from jitver.state import STATE_FILENAME, AppliedProject, AppliedState
from jitver.version import DEV_MODE, Version, bump

logger = get_logger(__name__)


class WorkflowState(str, Enum):
    """Where a repository stands in the release workflow."""

    DEVELOPMENT = 'development'
    STAGED = 'staged'
    REQUESTED = 'requested'
    VERSIONS_APPLIED = 'versions-applied'
    RELEASED = 'released'
    TAGGED = 'tagged'


class Session:
    """Everything one jitver invocation knows about a repository.

    The registry, release history and latest release record are computed
    on first use and then cached for the rest of the invocation.

    Args:
        repo: The repository.
        config: Central config.
        loaders: Ecosystem loaders. Defaults to the bundled set.
        today: Date used for dev versions and changelog headings.
    """

    def __init__(
        self,
        repo: Repository,
        config: JitverConfig,
        loaders: Sequence[Loader] | None = None,
        today: datetime.date | None = None,
    ) -> None:
        """Initialize; nothing is read until first needed."""
        self.repo = repo
        self.config = config
        self.loaders = list(loaders) if loaders is not None else list(default_loaders(repo.root))
        self.today = today or datetime.date.today()
        self.walker = HistoryWalker(repo)
        self._registry: ProjectRegistry | None = None
        self._history: ReleaseHistory | None = None
        self._latest_record: ReleaseRecord | None = None
        self._latest_record_loaded = False

    @classmethod
    def open(cls, path: Path) -> Session:
        """Open the git repository containing ``path``."""
        root = GitCLIBackend.discover(path).root
        config = load_config(root)
        return cls(GitCLIBackend(root, config.upstream_urls), config)

    @property
    def state_path(self) -> Path:
        """Location of the applied-versions state file."""
        return self.repo.root / STATE_FILENAME

    @property
    def release_tip(self) -> str | None:
        """Tip of the ``release`` branch, if it exists."""
        return self.repo.branch_tip(self.config.release_name)

    @property
    def latest_record(self) -> ReleaseRecord | None:
        """Release record at the tip of the ``release`` branch."""
        if not self._latest_record_loaded:
            tip = self.release_tip
            if tip is not None:
                self._latest_record = parse_record(self.walker.commit(tip).message, sha=tip)
            self._latest_record_loaded = True
        return self._latest_record

    @property
    def registry(self) -> ProjectRegistry:
        """The project registry."""
        if self._registry is None:
            self._registry = discover(self.repo, self.config, self.loaders, self.latest_record)
        return self._registry

    @property
    def history(self) -> ReleaseHistory:
        """Every past release."""
        if self._history is None:
            self._history = ReleaseHistory.load(self.walker, self.registry, self.release_tip)
        return self._history

    @property
    def resolver(self) -> DependencyResolver:
        """A resolver over :attr:`history`."""
        return DependencyResolver(self.walker, self.history)

    def loader_for(self, project: Project) -> Loader:
        """Return the loader that detected ``project``."""
        for loader in self.loaders:
            if loader.name == project.meta.loader:
                return loader
        raise JitverError(
            code=E.PROJECT_NOT_FOUND,
            message=f'No loader named {project.meta.loader!r} for {project.qname}.',
        )


def _raise_collected(errors: Sequence[JitverError]) -> None:
    """Raise every collected error at once.

    Several errors of one plain kind (``ParseError``, ``BumpError``) are
    joined into one error of that kind. Mixed kinds become a
    :class:`JitverError`.
    """
    if not errors:
        return
    if len(errors) == 1:
        raise errors[0]
    kind: type[JitverError] = type(errors[0])
    if any(type(e) is not kind for e in errors) or kind.__init__ is not JitverError.__init__:
        kind = JitverError
    raise kind(
        code=errors[0].code,
        message='; '.join(e.info.message for e in errors),
        hint=errors[0].hint,
    )


def _require_clean(repo: Repository, allowed: Collection[str] = ()) -> None:
    dirty = [p for p in repo.dirty_paths() if p not in allowed]
    if dirty:
        shown = ', '.join(dirty[:5]) + (' ...' if len(dirty) > 5 else '')
        raise JitverError(
            code=E.REPO_DIRTY,
            message=f'Refusing to proceed with modified files: {shown}',
            hint='Commit or stash your changes, or pass --force.',
        )


def current_state(session: Session) -> WorkflowState:
    """Derive the workflow state from branches, changelogs and the state file."""
    if session.state_path.exists():
        return WorkflowState.VERSIONS_APPLIED

    branch = session.repo.current_branch()
    if branch == session.config.release_name:
        head = session.repo.head_sha()
        record = parse_record(session.walker.commit(head).message, sha=head)
        if record is not None:
            tags = [tag_name(session, entry) for entry in record.released()]
            if tags and all(session.repo.tag_exists(t) for t in tags):
                return WorkflowState.TAGGED
        return WorkflowState.RELEASED
    if branch == session.config.rc_name:
        return WorkflowState.REQUESTED

    for project in session.registry:
        try:
            if scan_rc_info(session.repo.root, project) is not None:
                return WorkflowState.STAGED
        except ParseError:
            return WorkflowState.STAGED
    return WorkflowState.DEVELOPMENT


@dataclass(frozen=True)
class ProjectStatus:
    """Relevant history of one project."""

    project: Project
    commits: list[Commit]

    def describe(self) -> str:
        """``<name>: N relevant commit(s) since <version>``."""
        release = self.project.latest_release
        since = release.version if release is not None and release.commit is not None else 'the beginning of history'
        return f'{self.project.user_facing_name}: {len(self.commits)} relevant commit(s) since {since}'


def status(session: Session) -> list[ProjectStatus]:
    """Count relevant commits per project since its last release."""
    relevant = relevant_commits(session.walker, session.registry, session.repo.head_sha())
    return [ProjectStatus(p, relevant[p.qname]) for p in session.registry]


def stage(session: Session, names: Sequence[str] = (), *, force: bool = False) -> list[Project]:
    """Write ``# rc:`` scaffolds into the changelogs of relevant projects.

    Args:
        session: The session.
        names: Projects to stage. Empty means every project.
        force: Stage projects even if they have no relevant commits.

    Returns:
        The projects staged.
    """
    registry = session.registry
    targets = registry.lookup_names(names) if names else list(registry)
    relevant = relevant_commits(session.walker, registry, session.repo.head_sha())

    staged: list[Project] = []
    for project in targets:
        commits = relevant[project.qname]
        if not commits and not force:
            if names:
                logger.warning(
                    'project_has_no_commits',
                    project=project.user_facing_name,
                    hint='Pass --force to stage it.',
                )
            continue
        stage_changelog(session.repo.root, project, commits)
        staged.append(project)

    logger.info('staged', projects=[p.user_facing_name for p in staged])
    return staged


@dataclass(frozen=True)
class VersionPreview:
    """A project's current and prospective version."""

    project: Project
    old: Version
    new: Version

    def describe(self) -> str:
        """``<name>: <old> -> <new>``."""
        return f'{self.project.user_facing_name}: {self.old} -> {self.new}'


@dataclass(frozen=True)
class ConfirmResult:
    """The outcome of a successful ``confirm``."""

    sha: str
    request: ReleaseRequest
    previews: list[VersionPreview]


def confirm(session: Session, *, force: bool = False) -> ConfirmResult | None:
    """Validate staged changelogs and commit a release request to ``rc``.

    Returns:
        The result, or ``None`` if nothing is staged.

    Raises:
        JitverError: On any validation failure. Nothing is written then.
    """
    repo = session.repo
    registry = session.registry
    head = repo.head_sha()

    if not force:
        _require_clean(repo, {changelog_path(p) for p in registry})

    order = toposort(registry)

    errors: list[JitverError] = []
    staged: list[tuple[Project, RequestedProject, VersionPreview]] = []
    for project in order:
        try:
            section = scan_rc_info(repo.root, project)
            if section is None or section.bump is None:
                continue
            old = project.baseline_version()
            new = bump(old, section.bump, today=session.today)
        except (ParseError, BumpError) as exc:
            errors.append(exc)
            continue
        entry = RequestedProject(qname=project.qname, bump=section.bump, notes=section.notes)
        staged.append((project, entry, VersionPreview(project, old, new)))
    _raise_collected(errors)

    if not staged:
        logger.info('nothing_staged', hint="Run 'jitver stage' and edit the changelogs first.")
        return None

    batch = [project.qname for project, _, _ in staged]
    states = session.resolver.validate_batch(registry, batch, head)

    request = ReleaseRequest(
        projects=tuple(
            RequestedProject(
                qname=entry.qname,
                bump=entry.bump,
                notes=entry.notes,
                deps=tuple(s.to_status() for s in states[entry.qname]),
            )
            for _, entry, _ in staged
        )
    )
    paths = sorted(changelog_path(project) for project, _, _ in staged)
    summary = 'Release request: ' + ', '.join(p.user_facing_name for p, _, _ in staged)

    sha = repo.create_commit(
        branch=session.config.rc_name,
        message=render_request(request, summary),
        parents=[head],
        base=head,
        paths=paths,
    )
    repo.restore_paths(paths)
    logger.info('rc_commit_created', sha=sha, projects=batch)
    return ConfirmResult(sha=sha, request=request, previews=[preview for _, _, preview in staged])


@dataclass(frozen=True)
class _Planned:
    project: Project
    version: Version
    states: list[DependencyState]
    released: bool


def _plan_dev_mode(session: Session, order: Sequence[Project]) -> list[_Planned]:
    return [_Planned(p, bump(p.baseline_version(), DEV_MODE, today=session.today), [], False) for p in order]


def _plan_release(
    session: Session,
    order: Sequence[Project],
    request: ReleaseRequest,
    head: str,
) -> list[_Planned]:
    registry = session.registry
    resolver = session.resolver
    unknown = [q for q in request.qnames if q not in registry]
    if unknown:
        raise JitverError(
            code=E.PROJECT_NOT_FOUND,
            message=f'The release request names unknown project(s): {", ".join(unknown)}',
        )
    batch_states = resolver.validate_batch(registry, request.qnames, head)

    errors: list[JitverError] = []
    new_versions: dict[str, Version] = {}
    plan: list[_Planned] = []
    for project in order:
        entry = request.get(project.qname)
        baseline = project.baseline_version()
        if entry is None:
            states = [s for s in map(resolver.resolve, project.internal_deps) if s.resolution == Resolution.RESOLVED]
            plan.append(_Planned(project, baseline, states, False))
            continue
        try:
            new = bump(baseline, entry.bump, today=session.today)
            states = resolver.finalize(batch_states[project.qname], new_versions)
        except JitverError as exc:
            errors.append(exc)
            continue
        new_versions[project.qname] = new
        plan.append(_Planned(project, new, states, True))
    _raise_collected(errors)
    return plan


def apply_versions(session: Session, *, force: bool = False) -> AppliedState:
    """Compute versions and hand them to the ecosystem rewriters.

    On the ``rc`` branch, the request at ``HEAD`` is applied. Anywhere
    else every project gets a development version.

    Returns:
        The applied state, also saved to :data:`STATE_FILENAME`.

    Raises:
        JitverError: On validation failure, before any file is written.
    """
    repo = session.repo
    head = repo.head_sha()

    if session.state_path.exists():
        existing = AppliedState.load(session.state_path)
        existing.validate_sha(head)
        logger.info('versions_already_applied', source_commit=head)
        return existing

    if not force:
        _require_clean(repo)

    order = toposort(session.registry)
    if repo.current_branch() == session.config.rc_name:
        request = parse_request(session.walker.commit(head).message, sha=head)
        if request is None:
            raise JitverError(
                code=E.WORKFLOW_NO_REQUEST,
                message=f'HEAD ({head[:12]}) on {session.config.rc_name!r} carries no release request.',
                hint="Create one with 'jitver confirm'.",
            )
        dev_mode = False
        plan = _plan_release(session, order, request, head)
    else:
        dev_mode = True
        plan = _plan_dev_mode(session, order)

    changed: set[str] = set()
    applied: list[AppliedProject] = []
    for planned in plan:
        project = planned.project
        loader = session.loader_for(project)
        changed.update(loader.write_version(project.meta, planned.version))
        for state in planned.states:
            if state.min_version is not None:
                dependee = state.dependency.dependee
                changed.update(loader.write_internal_dep_requirement(project.meta, dependee, state.min_version))
        if planned.released:
            changed.update(finalize_changelog(repo.root, project, planned.version, session.today))
        applied.append(
            AppliedProject(
                qname=project.qname,
                old_version=str(project.baseline_version()),
                new_version=str(planned.version),
                released=planned.released,
                deps=tuple(s.to_status() for s in planned.states) if planned.released else (),
            )
        )

    result = AppliedState(source_commit=head, dev_mode=dev_mode, projects=applied, changed_paths=sorted(changed))
    result.save(session.state_path)
    logger.info(
        'versions_applied',
        dev_mode=dev_mode,
        released=[p.qname for p in applied if p.released],
        files=len(changed),
    )
    return result


def commit_release(session: Session, *, force: bool = False) -> ReleaseRecord:
    """Commit the applied versions to the ``release`` branch.

    Raises:
        JitverError: If versions were not applied, ``HEAD`` moved, the
            versions are development ones (without ``force``), or a
            batch dependency is not contained in the source commit.
    """
    repo = session.repo
    state = AppliedState.load(session.state_path)
    head = repo.head_sha()
    state.validate_sha(head)

    if state.dev_mode and not force:
        raise JitverError(
            code=E.WORKFLOW_DEV_MODE,
            message='The applied versions are development versions.',
            hint='Apply versions on the rc branch, or pass --force to record a development build.',
        )

    batch = [
        DependencyState(
            InternalDependency(p.qname, d.dependee, DepRequirement.commit(d.requirement)),
            d.resolution,
        )
        for p in state.projects
        for d in p.deps
        if d.resolution == Resolution.BATCH
    ]
    session.resolver.recheck_batch(batch, state.source_commit)

    previous = session.latest_record
    entries: list[ReleasedProject] = []
    for applied in state.projects:
        if applied.released:
            entries.append(
                ReleasedProject(
                    qname=applied.qname,
                    version=applied.new_version,
                    commit=state.source_commit,
                    age=0,
                    old_version=applied.old_version,
                )
            )
            continue
        prior = previous.lookup(applied.qname) if previous is not None else None
        if prior is None:
            entries.append(ReleasedProject(qname=applied.qname, version=applied.old_version, commit=None, age=0))
        else:
            entries.append(
                ReleasedProject(qname=prior.qname, version=prior.version, commit=prior.commit, age=prior.age + 1)
            )
    record = ReleaseRecord(projects=tuple(entries), dev_mode=state.dev_mode)

    released = [e for e in entries if e.released_here]
    if released:
        names = [f'{session.registry.get(e.qname).user_facing_name} {e.version}' for e in released]
        summary = 'Release: ' + ', '.join(names)
    else:
        summary = 'Release: development build' if state.dev_mode else 'Release: no projects'

    release_tip = session.release_tip
    parents = [release_tip, head] if release_tip is not None else [head]
    sha = repo.create_commit(
        branch=session.config.release_name,
        message=render_record(record, summary),
        parents=parents,
        base=head,
        paths=state.changed_paths,
    )
    repo.set_head(session.config.release_name)
    session.state_path.unlink()
    logger.info('release_commit_created', sha=sha, released=[e.qname for e in released])
    return ReleaseRecord(projects=record.projects, dev_mode=record.dev_mode, sha=sha)


def _head_record(session: Session) -> ReleaseRecord:
    head = session.repo.head_sha()
    record = parse_record(session.walker.commit(head).message, sha=head)
    if record is None:
        raise JitverError(
            code=E.WORKFLOW_NO_RELEASE_INFO,
            message=f'HEAD ({head[:12]}) carries no release record.',
            hint=f'Check out the {session.config.release_name!r} branch.',
        )
    return record


def tag_name(session: Session, entry: ReleasedProject) -> str:
    """Render the tag name of one released project."""
    project = session.registry.lookup(entry.qname)
    slug = project.project_slug if project is not None else entry.qname.partition(':')[2]
    return session.config.tag_name(slug, entry.version)


def tag_release(session: Session) -> list[str]:
    """Tag every project released by the record at ``HEAD``.

    Returns:
        The tags created.

    Raises:
        JitverError: If ``HEAD`` has no release record, or any tag
            already exists. No tag is created then.
    """
    record = _head_record(session)
    head = session.repo.head_sha()
    tags = [(tag_name(session, entry), entry) for entry in record.released()]

    existing = [name for name, _ in tags if session.repo.tag_exists(name)]
    if existing:
        raise JitverError(
            code=E.TAG_EXISTS,
            message=f'Tag(s) already exist: {", ".join(existing)}',
            hint='Each release can only be tagged once.',
        )

    for name, entry in tags:
        session.repo.create_tag(name, head, f'Release {entry.qname} {entry.version}')
    return [name for name, _ in tags]


def if_released(session: Session, names: Sequence[str]) -> list[tuple[Project, bool]]:
    """Whether each named project was released by the record at ``HEAD``.

    Raises:
        JitverError: If a name matches no project or ``HEAD`` has no record.
    """
    projects = session.registry.lookup_names(names)
    record = _head_record(session)
    result: list[tuple[Project, bool]] = []
    for project in projects:
        entry = record.lookup(project.qname)
        result.append((project, entry is not None and entry.released_here))
    return result


__all__ = [
    'ConfirmResult',
    'ProjectStatus',
    'Session',
    'VersionPreview',
    'WorkflowState',
    'apply_versions',
    'commit_release',
    'confirm',
    'current_state',
    'if_released',
    'stage',
    'status',
    'tag_name',
    'tag_release',
]
