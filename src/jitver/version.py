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

"""Version algebra: typed version schemes, comparison and bumps.

Every project has exactly one scheme, fixed by the loader that detected
it. Versions are only ever compared within a scheme.

Key Concepts (ELI5)::

    ┌─────────────────┬──────────────────────────────────────────────────┐
    │ Concept         │ ELI5 Explanation                                 │
    ├─────────────────┼──────────────────────────────────────────────────┤
    │ SemverVersion   │ ``1.2.3-rc.1+build``. Ordered by the ``semver``  │
    │                 │ library's precedence rules.                      │
    ├─────────────────┼──────────────────────────────────────────────────┤
    │ Pep440Version   │ ``1!2.0.post1.dev3``. Ordered by ``packaging``.  │
    ├─────────────────┼──────────────────────────────────────────────────┤
    │ QuadVersion     │ ``1.2.3.4``, four ints each at most 65534. The   │
    │                 │ fourth (revision) is never bumped.               │
    ├─────────────────┼──────────────────────────────────────────────────┤
    │ DevVersion      │ A datecode stamped on non-release builds. It is  │
    │                 │ never compared against anything.                 │
    ├─────────────────┼──────────────────────────────────────────────────┤
    │ BumpSpec        │ How to advance a version: micro, minor, major,   │
    │                 │ force <version>, or dev-datecode.                │
    └─────────────────┴──────────────────────────────────────────────────┘

Bump table::

    scheme   current      micro        minor        major
    semver   1.2.3-rc.1   1.2.4        1.3.0        2.0.0
    pep440   1.2.post3    1.2.1        1.3.0        2.0.0
    quad     1.2.3.4      1.2.4.4      1.3.0.4      2.0.0.4
"""

from __future__ import annotations

import datetime
import functools
import re
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

import semver
from packaging.version import InvalidVersion, Version as PackagingVersion

from jitver.errors import E, BumpError, ParseError

QUAD_MAX = 65534
_QUAD_RE = re.compile(r'^(\d+)\.(\d+)\.(\d+)\.(\d+)$')
_QUAD_EPOCH = datetime.date(2000, 1, 1)


class Scheme(str, Enum):
    """Supported version schemes."""

    SEMVER = 'semver'
    PEP440 = 'pep440'
    QUAD = 'quad'


@dataclass(frozen=True)
class SemverVersion:
    """A Semantic Versioning 2.0 version."""

    scheme: ClassVar[Scheme] = Scheme.SEMVER

    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    def to_semver(self) -> semver.Version:
        """Return the equivalent :class:`semver.Version`."""
        return semver.Version(self.major, self.minor, self.patch, self.prerelease, self.build)

    @classmethod
    def from_semver(cls, v: semver.Version) -> SemverVersion:
        """Build from a :class:`semver.Version`."""
        return cls(v.major, v.minor, v.patch, v.prerelease, v.build)

    def __str__(self) -> str:
        """Return the canonical semver text."""
        return str(self.to_semver())


@dataclass(frozen=True)
class Pep440Version:
    """A PEP 440 Python package version."""

    scheme: ClassVar[Scheme] = Scheme.PEP440

    release: tuple[int, ...]
    epoch: int = 0
    pre: tuple[str, int] | None = None
    post: int | None = None
    dev: int | None = None
    local: str | None = None

    def to_packaging(self) -> PackagingVersion:
        """Return the equivalent :class:`packaging.version.Version`."""
        return PackagingVersion(str(self))

    @classmethod
    def from_packaging(cls, v: PackagingVersion) -> Pep440Version:
        """Build from a :class:`packaging.version.Version`."""
        return cls(
            release=tuple(v.release),
            epoch=v.epoch,
            pre=v.pre,
            post=v.post,
            dev=v.dev,
            local=v.local,
        )

    def __str__(self) -> str:
        """Return the normalized PEP 440 text."""
        text = '.'.join(str(part) for part in self.release)
        if self.epoch:
            text = f'{self.epoch}!{text}'
        if self.pre is not None:
            text += f'{self.pre[0]}{self.pre[1]}'
        if self.post is not None:
            text += f'.post{self.post}'
        if self.dev is not None:
            text += f'.dev{self.dev}'
        if self.local:
            text += f'+{self.local}'
        return text


@dataclass(frozen=True)
class QuadVersion:
    """A four-component version as used by .NET assemblies."""

    scheme: ClassVar[Scheme] = Scheme.QUAD

    major: int
    minor: int
    build: int
    revision: int

    def __post_init__(self) -> None:
        """Reject components outside ``0..QUAD_MAX``."""
        for part in (self.major, self.minor, self.build, self.revision):
            if not 0 <= part <= QUAD_MAX:
                raise ParseError(
                    code=E.VERSION_PARSE_ERROR,
                    message=f'Version component {part} is outside 0..{QUAD_MAX}.',
                )

    def __str__(self) -> str:
        """Return ``major.minor.build.revision``."""
        return f'{self.major}.{self.minor}.{self.build}.{self.revision}'


@dataclass(frozen=True)
class DevVersion:
    """A development identifier produced by :attr:`BumpKind.DEV_MODE`.

    Dev versions are informational. They are written into project files
    on non-release builds and never take part in ordering.
    """

    scheme: Scheme
    text: str

    def __str__(self) -> str:
        """Return the identifier text."""
        return self.text


Version = SemverVersion | Pep440Version | QuadVersion | DevVersion


class BumpKind(str, Enum):
    """The kinds of bump a :class:`BumpSpec` can request."""

    MICRO = 'micro'
    MINOR = 'minor'
    MAJOR = 'major'
    FORCE = 'force'
    DEV_MODE = 'dev-datecode'


@dataclass(frozen=True)
class BumpSpec:
    """A request to advance a version.

    Attributes:
        kind: Which component to bump, or force/dev mode.
        target: The explicit version text for :attr:`BumpKind.FORCE`.
    """

    kind: BumpKind
    target: str = ''

    def __str__(self) -> str:
        """Return the text form used in changelogs and rc metadata."""
        if self.kind == BumpKind.FORCE:
            return f'force {self.target}'
        if self.kind == BumpKind.DEV_MODE:
            return self.kind.value
        return f'{self.kind.value} bump'


MICRO = BumpSpec(BumpKind.MICRO)
MINOR = BumpSpec(BumpKind.MINOR)
MAJOR = BumpSpec(BumpKind.MAJOR)
DEV_MODE = BumpSpec(BumpKind.DEV_MODE)

NO_BUMP_TEXT = 'no bump'


def parse_bump_spec(text: str) -> BumpSpec | None:
    """Parse the text form of a bump.

    Returns:
        The spec, or ``None`` for ``no bump``.

    Raises:
        ParseError: If the text is not a recognized bump.
    """
    words = text.strip().split()
    if words == ['no', 'bump']:
        return None
    if len(words) == 2 and words[1] == 'bump' and words[0] in ('micro', 'minor', 'major'):
        return BumpSpec(BumpKind(words[0]))
    if len(words) == 2 and words[0] == 'force':
        return BumpSpec(BumpKind.FORCE, words[1])
    if words == [BumpKind.DEV_MODE.value]:
        return DEV_MODE
    raise ParseError(
        code=E.BUMP_SPEC_INVALID,
        message=f'Unrecognized bump specification {text.strip()!r}.',
        hint='Use one of: micro bump, minor bump, major bump, no bump, force <version>.',
    )


def parse(scheme: Scheme, text: str) -> Version:
    """Parse ``text`` as a version of ``scheme``.

    Raises:
        ParseError: If ``text`` is not a valid version of that scheme.
    """
    text = text.strip()
    try:
        if scheme == Scheme.SEMVER:
            return SemverVersion.from_semver(semver.Version.parse(text))
        if scheme == Scheme.PEP440:
            return Pep440Version.from_packaging(PackagingVersion(text))
    except (ValueError, InvalidVersion) as exc:
        raise ParseError(
            code=E.VERSION_PARSE_ERROR,
            message=f'Invalid {scheme.value} version {text!r}: {exc}',
        ) from exc

    m = _QUAD_RE.match(text)
    if m is None:
        raise ParseError(
            code=E.VERSION_PARSE_ERROR,
            message=f'Invalid quad version {text!r}: expected four dot-separated integers.',
        )
    return QuadVersion(*(int(g) for g in m.groups()))


def format_version(version: Version) -> str:
    """Return the canonical text of ``version``."""
    return str(version)


def zero_version(scheme: Scheme) -> Version:
    """Return the baseline version of a never-released project."""
    if scheme == Scheme.SEMVER:
        return SemverVersion(0, 0, 0)
    if scheme == Scheme.PEP440:
        return Pep440Version(release=(0, 0, 0))
    return QuadVersion(0, 0, 0, 0)


def compare(a: Version, b: Version) -> int:
    """Compare two versions of the same scheme.

    Returns:
        ``-1``, ``0`` or ``1``.

    Raises:
        TypeError: If the schemes differ or either side is a dev version.
            This is a programming error, not a user error.
    """
    if isinstance(a, DevVersion) or isinstance(b, DevVersion):
        raise TypeError(f'development versions are not ordered: {a} vs {b}')
    if a.scheme != b.scheme:
        raise TypeError(f'cannot compare {a.scheme.value} version {a} with {b.scheme.value} version {b}')

    if isinstance(a, SemverVersion) and isinstance(b, SemverVersion):
        return a.to_semver().compare(b.to_semver())
    if isinstance(a, Pep440Version) and isinstance(b, Pep440Version):
        pa, pb = a.to_packaging(), b.to_packaging()
        return (pa > pb) - (pa < pb)
    if isinstance(a, QuadVersion) and isinstance(b, QuadVersion):
        ta = (a.major, a.minor, a.build, a.revision)
        tb = (b.major, b.minor, b.build, b.revision)
        return (ta > tb) - (ta < tb)
    raise TypeError(f'unsupported version types {type(a).__name__} and {type(b).__name__}')


version_sort_key = functools.cmp_to_key(compare)


def dev_version(scheme: Scheme, today: datetime.date | None = None) -> DevVersion:
    """Synthesize the development identifier for ``scheme`` on ``today``."""
    today = today or datetime.date.today()
    datecode = today.strftime('%Y%m%d')
    if scheme == Scheme.SEMVER:
        return DevVersion(scheme, f'0.0.0-dev.{datecode}')
    if scheme == Scheme.PEP440:
        return DevVersion(scheme, f'0.dev{datecode}')
    return DevVersion(scheme, f'0.0.{(today - _QUAD_EPOCH).days}.0')


def _bump_quad(v: QuadVersion, kind: BumpKind) -> QuadVersion:
    if kind == BumpKind.MAJOR:
        parts = (v.major + 1, 0, 0)
    elif kind == BumpKind.MINOR:
        parts = (v.major, v.minor + 1, 0)
    else:
        parts = (v.major, v.minor, v.build + 1)
    if max(parts) > QUAD_MAX:
        raise BumpError(
            code=E.BUMP_OVERFLOW,
            message=f'{kind.value} bump of {v} would exceed {QUAD_MAX}.',
        )
    return QuadVersion(*parts, v.revision)


def _bump_pep440(v: Pep440Version, kind: BumpKind) -> Pep440Version:
    major, minor, micro = (list(v.release) + [0, 0, 0])[:3]
    if kind == BumpKind.MAJOR:
        release = (major + 1, 0, 0)
    elif kind == BumpKind.MINOR:
        release = (major, minor + 1, 0)
    else:
        release = (major, minor, micro + 1)
    return Pep440Version(release=release, epoch=v.epoch)


def bump(version: Version, spec: BumpSpec, *, today: datetime.date | None = None) -> Version:
    """Apply ``spec`` to ``version``. Pure: the input is never modified.

    Raises:
        BumpError: If a forced version does not exceed ``version``, a
            quad component would overflow, or ``version`` is a dev
            version and ``spec`` is not dev mode.
        ParseError: If a forced version does not parse in the scheme.
    """
    if spec.kind == BumpKind.DEV_MODE:
        return dev_version(version.scheme, today)

    if isinstance(version, DevVersion):
        raise BumpError(
            code=E.BUMP_SPEC_INVALID,
            message=f'Cannot apply {spec} to development version {version}.',
        )

    if spec.kind == BumpKind.FORCE:
        target = parse(version.scheme, spec.target)
        if compare(target, version) <= 0:
            raise BumpError(
                code=E.BUMP_NOT_FORWARD,
                message=f'Forced version {target} does not exceed current version {version}.',
                hint='Pick a strictly greater version.',
            )
        return target

    if isinstance(version, SemverVersion):
        sv = version.to_semver()
        if spec.kind == BumpKind.MAJOR:
            sv = sv.bump_major()
        elif spec.kind == BumpKind.MINOR:
            sv = sv.bump_minor()
        else:
            sv = sv.bump_patch()
        return SemverVersion.from_semver(sv)
    if isinstance(version, Pep440Version):
        return _bump_pep440(version, spec.kind)
    return _bump_quad(version, spec.kind)


__all__ = [
    'DEV_MODE',
    'MAJOR',
    'MICRO',
    'MINOR',
    'NO_BUMP_TEXT',
    'QUAD_MAX',
    'BumpKind',
    'BumpSpec',
    'DevVersion',
    'Pep440Version',
    'QuadVersion',
    'Scheme',
    'SemverVersion',
    'Version',
    'bump',
    'compare',
    'dev_version',
    'format_version',
    'parse',
    'parse_bump_spec',
    'version_sort_key',
    'zero_version',
]
