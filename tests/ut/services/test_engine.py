"""RepoEngine 单元测试 — 状态机、前置校验、错误分类、凭据"""

from __future__ import annotations

import gc
import threading
from pathlib import Path

import pytest

from flystart.core.credentials import Credentials
from flystart.core.exceptions import (
    CheckoutError,
    CloneError,
    ContractError,
    CredentialError,
    IdentityError,
    PathContractError,
    RepoError,
    SubmoduleError,
    UpdateError,
)
from flystart.core.models import (
    GitFileRepoRef,
    GitHttpsRepoRef,
    GitRepoRef,
    GitSshRepoRef,
    RepoRef,
    RepoState,
)
from flystart.core.protocols import VcsResult, VcsStatus
from flystart.services.repo.engine import PathLocks

LIBGIT2 = GitHttpsRepoRef(remote_name="libgit2/libgit2", local_name="libgit2", host="github.com")


class TestCloneOrUpdate:
    def test_https_scenario(self, engine, backend, projects: Path) -> None:
        result = engine.get(LIBGIT2, projects)

        target = projects / "libgit2"
        assert target.is_dir()
        assert result.state is RepoState.CLONED
        assert result.path == str(target)
        assert backend.names() == ["clone", "checkout", "update_submodules"]
        clone = backend.kwargs("clone")[0]
        assert clone["url"] == "https://github.com/libgit2/libgit2.git"
        assert clone["branch"] == ""
        checkout = backend.kwargs("checkout")[0]
        assert checkout["branch"] == "" and checkout["commit_sha"] == ""
        assert engine.has_commit_user(LIBGIT2) is False

    def test_string_path_with_trailing_slash(self, engine, projects: Path) -> None:
        result = engine.get(LIBGIT2, f"{projects}/")
        assert Path(result.path) == projects / "libgit2"

    def test_existing_directory_updates_without_clone(self, engine, backend, projects: Path) -> None:
        target = projects / "libgit2"
        target.mkdir()
        backend.heads[target] = "old"

        result = engine.get(LIBGIT2, projects)

        assert result.state is RepoState.UPDATED
        assert "clone" not in backend.names()
        assert backend.names()[:2] == ["fetch", "checkout"]

    def test_idempotent(self, engine, backend, projects: Path) -> None:
        first = engine.get(LIBGIT2, projects)
        second = engine.get(LIBGIT2, projects)

        assert first.state is RepoState.CLONED
        assert second.state is RepoState.UPDATED
        assert first.commit_sha == second.commit_sha
        assert backend.names().count("clone") == 1

    def test_dirname_overrides_local_name(self, engine, projects: Path) -> None:
        result = engine.get(LIBGIT2, projects, "git2")
        assert Path(result.path) == projects / "git2"
        assert not (projects / "libgit2").exists()

    def test_existing_non_git_directory_fails(self, engine, backend, projects: Path) -> None:
        (projects / "libgit2").mkdir()
        with pytest.raises(UpdateError, match="不是 git 工作区"):
            engine.get(LIBGIT2, projects)
        assert backend.names() == []


class TestPinning:
    def test_commit_sha_detaches(self, engine, backend, projects: Path) -> None:
        ref = GitHttpsRepoRef(
            remote_name="libgit2/libgit2", local_name="libgit2",
            host="github.com", commit_sha="abc123",
        )
        result = engine.get(ref, projects)
        assert result.commit_sha == "abc123"
        assert backend.kwargs("checkout")[0]["commit_sha"] == "abc123"

    def test_commit_sha_takes_precedence_over_branch(self, engine, backend, projects: Path) -> None:
        ref = GitHttpsRepoRef(
            remote_name="libgit2/libgit2", local_name="libgit2",
            host="github.com", branch="maint", commit_sha="abc123",
        )
        result = engine.get(ref, projects)
        assert result.commit_sha == "abc123"
        # 锁定 commit 时 clone 不指定分支
        assert backend.kwargs("clone")[0]["branch"] == ""

    def test_branch_checkout(self, engine, backend, projects: Path) -> None:
        ref = GitHttpsRepoRef(
            remote_name="libgit2/libgit2", local_name="libgit2",
            host="github.com", branch="maint",
        )
        result = engine.get(ref, projects)
        assert backend.kwargs("clone")[0]["branch"] == "maint"
        assert result.commit_sha == "tip-maint"

    def test_diverged_update_is_update_error(self, engine, backend, projects: Path) -> None:
        engine.get(LIBGIT2, projects)
        backend.queue("checkout", VcsResult(VcsStatus.DIVERGED, "Not possible to fast-forward"))

        with pytest.raises(UpdateError) as exc:
            engine.get(LIBGIT2, projects)
        assert exc.value.status == "diverged"
        assert exc.value.local_name == "libgit2"

    def test_unknown_commit_is_checkout_error(self, engine, backend, projects: Path) -> None:
        backend.queue("checkout", VcsResult(VcsStatus.NOT_FOUND, "reference is not a tree"))
        ref = GitHttpsRepoRef(remote_name="a/b", local_name="b", host="h", commit_sha="dead")
        with pytest.raises(CheckoutError, match="not_found"):
            engine.get(ref, projects)


class TestIdentity:
    def test_identity_configured_when_user_set(self, engine, backend, projects: Path) -> None:
        ref = GitHttpsRepoRef(
            remote_name="a/b", local_name="b", host="h",
            commit_user="builder", commit_email="builder@example.com",
        )
        assert engine.has_commit_user(ref) is True

        result = engine.get(ref, projects)

        assert result.identity_configured is True
        assert backend.identity[projects / "b"] == {
            "name": "builder", "email": "builder@example.com",
        }

    def test_identity_skipped_without_user(self, engine, backend, projects: Path) -> None:
        ref = GitHttpsRepoRef(remote_name="a/b", local_name="b", host="h", commit_email="x@y")
        result = engine.get(ref, projects)
        assert result.identity_configured is False
        assert "configure_identity" not in backend.names()

    def test_has_commit_user_needs_no_prior_get(self, engine, backend) -> None:
        assert engine.has_commit_user(GitSshRepoRef(commit_user="me")) is True
        assert engine.has_commit_user(GitSshRepoRef()) is False
        assert backend.calls == []

    def test_identity_failure(self, engine, backend, projects: Path) -> None:
        backend.queue("configure_identity", VcsResult(VcsStatus.FAILED, "could not lock config file"))
        ref = GitHttpsRepoRef(remote_name="a/b", local_name="b", host="h", commit_user="me")
        with pytest.raises(IdentityError):
            engine.get(ref, projects)


class TestPreconditions:
    @pytest.mark.parametrize("ref", [
        RepoRef(remote_name="a/b", local_name="b"),
        GitRepoRef(remote_name="a/b", local_name="b", host="h"),
    ])
    def test_abstract_reference_rejected(self, engine, backend, projects, ref) -> None:
        with pytest.raises(ContractError, match="不支持的引用类型"):
            engine.get(ref, projects)
        assert backend.calls == []

    def test_missing_host(self, engine, backend, projects: Path) -> None:
        ref = GitHttpsRepoRef(remote_name="a/b", local_name="b", host=None)  # type: ignore[arg-type]
        with pytest.raises(ContractError, match="host"):
            engine.get(ref, projects)
        assert backend.calls == []

    def test_missing_remote_name(self, engine, projects: Path) -> None:
        with pytest.raises(ContractError, match="remote_name"):
            engine.get(GitHttpsRepoRef(local_name="b", host="h"), projects)

    def test_missing_local_name_without_dirname(self, engine, projects: Path) -> None:
        with pytest.raises(ContractError, match="local_name"):
            engine.get(GitHttpsRepoRef(remote_name="a/b", host="h"), projects)

    def test_missing_local_name_with_dirname(self, engine, projects: Path) -> None:
        result = engine.get(GitHttpsRepoRef(remote_name="a/b", host="h"), projects, "b")
        assert result.local_name == "b"

    def test_path_none(self, engine) -> None:
        with pytest.raises(ContractError, match="None"):
            engine.get(LIBGIT2, None)

    @pytest.mark.parametrize("path", ["/tmp/foo/", "/tmp/myprojects/", "/tmp/projects/sub/", ""])
    def test_path_must_end_with_projects(self, engine, backend, path: str) -> None:
        with pytest.raises(PathContractError) as exc:
            engine.get(LIBGIT2, path)
        assert isinstance(exc.value, RepoError)
        assert not isinstance(exc.value, ContractError)
        assert backend.calls == []

    def test_path_check_before_mutation(self, engine, tmp_path: Path) -> None:
        root = tmp_path / "foo"
        with pytest.raises(PathContractError):
            engine.get(LIBGIT2, f"{root}/")
        assert not root.exists()

    @pytest.mark.parametrize("dirname", ["", ".", "..", "a/b"])
    def test_bad_dirname(self, engine, backend, projects: Path, dirname: str) -> None:
        with pytest.raises(PathContractError):
            engine.get(LIBGIT2, projects, dirname)
        assert backend.calls == []


class TestFailures:
    def test_clone_failure_carries_context(self, engine, backend, projects: Path) -> None:
        backend.queue("clone", VcsResult(VcsStatus.NETWORK, "Could not resolve host: github.com"))

        with pytest.raises(CloneError) as exc:
            engine.get(LIBGIT2, projects)

        err = exc.value
        assert err.local_name == "libgit2"
        assert err.step == "clone"
        assert err.status == "network"
        assert "Could not resolve host" in str(err)
        assert not (projects / "libgit2").exists()

    def test_fetch_failure(self, engine, backend, projects: Path) -> None:
        engine.get(LIBGIT2, projects)
        backend.queue("fetch", VcsResult(VcsStatus.NETWORK, "timed out"))
        with pytest.raises(UpdateError, match="network"):
            engine.get(LIBGIT2, projects)

    def test_submodule_failure_keeps_checkout(self, engine, backend, projects: Path) -> None:
        backend.queue("update_submodules", VcsResult(VcsStatus.NOT_FOUND, "repository not found"))
        ref = GitHttpsRepoRef(
            remote_name="a/b", local_name="b", host="h", commit_user="me",
        )
        with pytest.raises(SubmoduleError):
            engine.get(ref, projects)
        assert (projects / "b").is_dir()
        assert "configure_identity" not in backend.names()

    def test_file_transport_allows_file_submodules(self, engine, backend, projects, tmp_path) -> None:
        ref = GitFileRepoRef(remote_name="b", local_name="b", host=str(tmp_path / "usb"))
        engine.get(ref, projects)
        assert backend.kwargs("update_submodules")[0]["allow_file"] is True
        assert backend.kwargs("clone")[0]["url"] == str(tmp_path / "usb" / "b")

    def test_https_keeps_file_submodules_disabled(self, engine, backend, projects) -> None:
        engine.get(LIBGIT2, projects)
        assert backend.kwargs("update_submodules")[0]["allow_file"] is False

    def test_existing_file_at_target(self, engine, backend, projects: Path) -> None:
        (projects / "libgit2").write_text("not a checkout", encoding="utf-8")

        with pytest.raises(UpdateError, match="不是目录"):
            engine.get(LIBGIT2, projects)
        assert backend.calls == []


class TestCredentials:
    AUTH = VcsResult(VcsStatus.AUTH_REQUIRED, "terminal prompts disabled")

    def test_no_callback_fails_fast(self, engine, backend, projects: Path) -> None:
        backend.queue("clone", self.AUTH)
        with pytest.raises(CredentialError) as exc:
            engine.get(LIBGIT2, projects)
        assert exc.value.status == "auth_required"
        assert backend.names() == ["clone"]

    def test_callback_retry_and_reuse(self, make_engine, backend, projects: Path) -> None:
        asked: list[str] = []

        def ask(out, inp, url):
            asked.append(url)
            return Credentials("alice", "s3cret")

        engine = make_engine(ask)
        backend.queue("clone", self.AUTH)

        engine.get(LIBGIT2, projects)

        assert asked == ["https://github.com/libgit2/libgit2.git"]
        clones = backend.kwargs("clone")
        assert clones[0]["credentials"] is None
        assert clones[1]["credentials"] == Credentials("alice", "s3cret")
        # 凭据在同一次 get 中复用，不再询问
        assert backend.kwargs("update_submodules")[0]["credentials"] == Credentials("alice", "s3cret")

    def test_callback_declines(self, make_engine, backend, projects: Path) -> None:
        engine = make_engine(lambda out, inp, url: None)
        backend.queue("clone", self.AUTH)
        with pytest.raises(CredentialError) as exc:
            engine.get(LIBGIT2, projects)
        assert exc.value.status == "denied"

    def test_rejected_credentials(self, make_engine, backend, projects: Path) -> None:
        engine = make_engine(lambda out, inp, url: Credentials("alice", "wrong"))
        backend.queue("clone", self.AUTH, self.AUTH)
        with pytest.raises(CredentialError) as exc:
            engine.get(LIBGIT2, projects)
        assert exc.value.status == "rejected"
        assert backend.names() == ["clone", "clone"]


class TestPathLocks:
    def test_same_path_same_lock(self, tmp_path: Path) -> None:
        locks = PathLocks()
        assert locks.get(tmp_path / "a") is locks.get(tmp_path / "x" / ".." / "a")
        assert locks.get(tmp_path / "a") is not locks.get(tmp_path / "b")

    def test_concurrent_gets_on_same_path_clone_once(self, engine, backend, projects: Path) -> None:
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                engine.get(LIBGIT2, projects)
            except BaseException as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert backend.names().count("clone") == 1
        assert backend.names().count("fetch") == 3

    def test_unused_locks_are_released(self, tmp_path: Path) -> None:
        locks = PathLocks()
        held = locks.get(tmp_path / "a")
        locks.get(tmp_path / "b")
        gc.collect()
        assert len(locks) == 1
        del held
        gc.collect()
        assert len(locks) == 0
