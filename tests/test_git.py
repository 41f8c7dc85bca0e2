"""Tests for the git helpers used for event defaults."""

import shutil
import subprocess

import pytest

from checkrun.git_facts.git import current_branch, detect, head_sha, is_dirty, repo_root

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()

    def git(*args):
        subprocess.run(["git", *args], cwd=path, check=True, capture_output=True)

    git("init", "-q")
    git("checkout", "-q", "-b", "trunk")
    (path / "README").write_text("hi\n")
    git("add", "README")
    git("-c", "user.name=ci", "-c", "user.email=ci@example.com", "commit", "-q", "-m", "init")
    return path


def test_repo_facts(repo):
    assert repo_root(repo) == repo.resolve()
    assert current_branch(repo) == "trunk"
    assert len(head_sha(repo)) == 40
    assert not is_dirty(repo)

    (repo / "new.txt").write_text("x")
    assert is_dirty(repo)


def test_detect(repo):
    assert detect(repo) == (repo.resolve(), "trunk")


def test_detect_outside_git(tmp_path):
    assert detect(tmp_path / "missing") == (None, None)
