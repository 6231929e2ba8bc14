"""Repository fetching against local git repositories."""

import shutil
import subprocess
from pathlib import Path

import pytest

from eth_localnet.errors import RepositoryFetchError
from eth_localnet.process import ProcessRunner
from eth_localnet.repository import FetchTarget, RepositoryFetcher

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="Needs git")


def _git(*args: str, cwd: Path):
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture()
def upstream(tmp_path: Path) -> str:
    """A source repository with a main branch and a release tag."""
    repo = tmp_path / "upstream"
    repo.mkdir()
    _git("init", "-q", cwd=repo)
    _git("checkout", "-q", "-b", "main", cwd=repo)
    (repo / "README").write_text("hello\n")
    _git("add", "README", cwd=repo)
    _git("commit", "-q", "-m", "init", cwd=repo)
    _git("tag", "v1.0.0", cwd=repo)
    return f"file://{repo}"


@pytest.fixture()
def fetcher() -> RepositoryFetcher:
    return RepositoryFetcher(ProcessRunner())


def test_fetch_branch(tmp_path: Path, upstream: str, fetcher: RepositoryFetcher):
    dest = tmp_path / "services" / "op-geth"
    result = fetcher.fetch(FetchTarget("op-geth", upstream, "main", dest))
    assert result == dest
    assert (dest / "README").read_text() == "hello\n"


def test_fetch_skips_existing_checkout(tmp_path: Path, upstream: str, fetcher: RepositoryFetcher):
    dest = tmp_path / "op-geth"
    (dest / ".git").mkdir(parents=True)
    fetcher.fetch(FetchTarget("op-geth", upstream, "main", dest))
    assert not (dest / "README").exists()


def test_fetch_replaces_non_git_directory(tmp_path: Path, upstream: str, fetcher: RepositoryFetcher):
    dest = tmp_path / "op-geth"
    dest.mkdir()
    (dest / "leftover").write_text("x")
    fetcher.fetch(FetchTarget("op-geth", upstream, "main", dest))
    assert not (dest / "leftover").exists()
    assert (dest / "README").exists()


def test_fetch_unknown_ref(tmp_path: Path, upstream: str, fetcher: RepositoryFetcher):
    """Both clone strategies fail and the error names the repository."""
    with pytest.raises(RepositoryFetchError, match="failed to clone publisher") as exc_info:
        fetcher.fetch(FetchTarget("publisher", upstream, "no-such-branch", tmp_path / "publisher"))
    assert exc_info.value.name == "publisher"


def test_fetch_all(tmp_path: Path, upstream: str, fetcher: RepositoryFetcher):
    targets = [
        FetchTarget("op-geth", upstream, "main", tmp_path / "op-geth"),
        FetchTarget("publisher", upstream, "v1.0.0", tmp_path / "publisher"),
        FetchTarget("compose-contracts", upstream, "main", tmp_path / "compose-contracts"),
    ]
    paths = fetcher.fetch_all(targets)
    assert paths == [t.destination for t in targets]
    for t in targets:
        assert (t.destination / "README").exists()


def test_fetch_all_nothing_to_do(fetcher: RepositoryFetcher):
    assert fetcher.fetch_all([]) == []


def test_fetch_all_partial_failure(tmp_path: Path, upstream: str, fetcher: RepositoryFetcher):
    """The failing repository is named and the other checkout stays on disk."""
    targets = [
        FetchTarget("op-geth", upstream, "main", tmp_path / "op-geth"),
        FetchTarget("publisher", upstream, "no-such-branch", tmp_path / "publisher"),
    ]
    with pytest.raises(RepositoryFetchError) as exc_info:
        fetcher.fetch_all(targets)
    assert exc_info.value.name == "publisher"
    assert (tmp_path / "op-geth" / "README").read_text() == "hello\n"
