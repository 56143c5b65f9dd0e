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

"""Shared test fakes for jitver.

Provides in-memory implementations of the repository and loader
protocols so that individual test modules don't need to duplicate
boilerplate classes.

Usage::

    from tests._fakes import FakeLoader, FakeRepository

    repo = FakeRepository(tmp_path)
    c1 = repo.commit_files({'foo/Cargo.toml': '...'}, 'Add foo')
"""

from tests._fakes._loader import FakeLoader as FakeLoader
from tests._fakes._repo import FakeRepository as FakeRepository

__all__ = [
    'FakeLoader',
    'FakeRepository',
]
