"""Fetch service source repositories in parallel.

- One worker per repository on a futureproof thread pool
- An existing git checkout at the destination is left alone
- Shallow clone of the branch first, full clone + checkout as the fallback

When one fetch fails the first error is raised, named after the repository.
Repositories that were already fetched stay on disk. Nothing is rolled back,
so a re-run picks up where this one stopped.
"""

import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import futureproof

from eth_localnet.errors import ExternalToolError, RepositoryFetchError
from eth_localnet.process import ProcessRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchTarget:
    """One repository to fetch."""

    name: str

    url: str

    #: Branch or tag
    ref: str

    destination: Path


class RepositoryFetcher:
    """Clone repositories with ``git``."""

    def __init__(self, runner: ProcessRunner, git_binary: str = "git", cancel: Optional[threading.Event] = None):
        self.runner = runner
        self.git_binary = git_binary
        self.cancel = cancel

    def fetch_all(self, targets: list[FetchTarget]) -> list[Path]:
        """Fetch all repositories concurrently.

        :return:
            Checkout paths, in the order of ``targets``

        :raise RepositoryFetchError:
            The first failure observed
        """
        if not targets:
            return []

        executor = futureproof.ThreadPoolExecutor(max_workers=len(targets))
        tm = futureproof.TaskManager(executor, error_policy=futureproof.ErrorPolicyEnum.RAISE)
        tm.map(self.fetch, [(t,) for t in targets])

        fetched = {}
        for task in tm.as_completed():
            target = task.args[0]
            fetched[target.name] = task.result
            logger.info("Repository %s ready at %s", target.name, task.result)

        return [fetched[t.name] for t in targets]

    def fetch(self, target: FetchTarget) -> Path:
        """Fetch one repository unless it is already checked out.

        :raise RepositoryFetchError:
            Both the shallow and the full clone failed
        """
        dest = target.destination
        if (dest / ".git").exists():
            logger.info("Repository %s already exists at %s, skipping", target.name, dest)
            return dest

        if dest.exists():
            logger.warning("Removing %s, it is not a git checkout", dest)
            shutil.rmtree(dest)

        dest.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Cloning %s from %s at %s", target.name, target.url, target.ref)
        try:
            self._git(["clone", "--depth", "1", "--branch", target.ref, "--single-branch", target.url, str(dest)])
            return dest
        except ExternalToolError as e:
            logger.info("Shallow clone of %s failed, falling back to a full clone: %s", target.name, e)

        if dest.exists():
            shutil.rmtree(dest)

        try:
            self._git(["clone", target.url, str(dest)])
            self._git(["-C", str(dest), "checkout", target.ref])
        except ExternalToolError as e:
            raise RepositoryFetchError(target.name, str(e)) from e

        return dest

    def _git(self, args: list[str]):
        self.runner.run_command([self.git_binary, *args], cancel=self.cancel, stream_logs=False)
