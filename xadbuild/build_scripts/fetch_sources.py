#!/usr/bin/env python3
# -- coding: utf-8 --
#
# Copyright 2024 xadbuild Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Source acquisition for the XADMaster build.

XADMaster and UniversalDetector must be sibling directories of the project
root. A missing tree is shallow-cloned; an existing tree is never updated.
XADMaster can be pinned to a tag or commit:

- on a fresh clone the revision is fetched (best effort) before checkout
- on an existing tree only locally known revisions can be checked out

A revision that cannot be resolved stops the build before anything is built.
"""

from pathlib import Path
from typing import Optional, Tuple

from xadbuild.utils.cmd.cmd_util import exec_command
from xadbuild.utils.errors import RevisionError, SourceError


class SourceRepo:
    """A named upstream repository and where it lives locally"""

    def __init__(self, name: str, url: str, path):
        self.name = name
        self.url = url
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_dir()

    def __repr__(self):
        return f"SourceRepo(name={self.name}, url={self.url}, path={self.path})"


def _run_git(args, cwd=None) -> Tuple[int, str]:
    return exec_command(["git"] + list(args), cwd=cwd)


def clone_repo(repo: SourceRepo):
    print(f"==> Cloning {repo.name}...")
    returncode, output = _run_git(["clone", "--depth=1", repo.url, str(repo.path)])
    if returncode != 0:
        raise SourceError(f"failed to clone {repo.url}: {output.strip()}")


def fetch_revision(repo: SourceRepo, revision: str) -> bool:
    """Shallow-fetch one tag or commit from origin. Failure is not fatal."""
    returncode, _ = _run_git(
        ["fetch", "--tags", "--depth=1", "origin", revision], cwd=repo.path
    )
    return returncode == 0


def resolve_revision(repo: SourceRepo, revision: str) -> Optional[str]:
    """Return the commit id the revision points to, or None."""
    returncode, output = _run_git(
        ["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], cwd=repo.path
    )
    commit = output.strip()
    if returncode != 0 or not commit:
        return None
    return commit.splitlines()[-1]


def get_head_commit(repo: SourceRepo) -> Optional[str]:
    returncode, output = _run_git(["rev-parse", "HEAD"], cwd=repo.path)
    if returncode != 0:
        return None
    return output.strip()


def checkout_revision(repo: SourceRepo, revision: str, just_cloned: bool) -> str:
    """
    Check out a tag or commit.

    Args:
        repo: The repository to update
        revision: Tag name or commit id
        just_cloned: True if the tree was cloned by this run

    Returns:
        str: The commit id that is now checked out

    Raises:
        RevisionError: The revision cannot be resolved or checked out
    """
    if just_cloned:
        print(f"==> Resolving {repo.name} revision: {revision}")
        fetch_revision(repo, revision)
        commit = resolve_revision(repo, revision)
        if commit is None:
            raise RevisionError(
                revision,
                f"revision '{revision}' not found in origin (after clone).",
            )
    else:
        print(f"==> Attempting checkout of {repo.name} at: {revision} (no fetch)")
        commit = resolve_revision(repo, revision)
        if commit is None:
            raise RevisionError(
                revision,
                f"revision '{revision}' not present in local {repo.name} repository.",
                hint=(
                    f"remove the '{repo.path.name}' directory to allow fresh clone, "
                    f"or fetch the revision manually."
                ),
            )

    returncode, output = _run_git(["checkout", "-q", revision], cwd=repo.path)
    if returncode != 0:
        raise RevisionError(
            revision, f"failed to checkout '{revision}': {output.strip()}"
        )
    head = get_head_commit(repo)
    if head != commit:
        raise RevisionError(
            revision,
            f"{repo.name} HEAD is {head} after checkout, expected {commit}.",
        )
    print(f"==> Checked out {repo.name} at: {revision}")
    return commit


def ensure_source(repo: SourceRepo, revision: Optional[str] = None) -> Optional[str]:
    """
    Make sure a source tree exists, optionally at a given revision.

    Returns:
        The checked out commit id when a revision was requested, else None
    """
    just_cloned = False
    if not repo.exists():
        clone_repo(repo)
        just_cloned = True
    else:
        print(f"==> Found existing {repo.name} sources; skipping update.")

    if revision:
        return checkout_revision(repo, revision, just_cloned)
    return None


def describe_source(repo: SourceRepo) -> Tuple[str, str, str]:
    """
    Current (revision, branch, url) of a source tree, "unknown" where git
    cannot tell.
    """
    returncode, revision = _run_git(["rev-parse", "--short", "HEAD"], cwd=repo.path)
    revision = revision.strip() if returncode == 0 and revision.strip() else "unknown"

    returncode, branch = _run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=repo.path)
    branch = branch.strip() if returncode == 0 and branch.strip() else "unknown"

    returncode, url = _run_git(["remote", "get-url", "origin"], cwd=repo.path)
    url = url.strip() if returncode == 0 else ""
    return revision, branch, url


def source_repos(config):
    """The XADMaster and UniversalDetector repositories of a config."""
    xad = SourceRepo(config.project_name, config.xad_repo_url, config.xad_dir)
    udt = SourceRepo("UniversalDetector", config.udt_repo_url, config.udt_dir)
    return xad, udt


def acquire_sources(config):
    """Clone missing trees and pin XADMaster to config.revision."""
    xad, udt = source_repos(config)
    ensure_source(xad, config.revision)
    ensure_source(udt)
    for repo in (xad, udt):
        revision, branch, url = describe_source(repo)
        print(f"    {repo.name}: {revision} ({branch}) {url}")
    return xad, udt
