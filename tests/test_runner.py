"""Tests for local workflow execution."""

from pathlib import Path

import pytest

from fmtci import job, on_pull_request, on_push, sh, uses, wf
from fmtci import actions, runner
from fmtci.model import WorkflowError
from fmtci.runner import CANCELLED, FAILED, OK, SKIPPED_NEEDS, any_failed, load_workflow, run_workflow
from fmtci.workflows.format import checkout, rust_toolchain


def _run(workflow, tmp_path: Path, **kwargs):
    kwargs.setdefault("print_plan", False)
    return run_workflow(workflow, repo_root=tmp_path, **kwargs)


class TestSteps:
    def test_steps_run_in_order_and_stop_at_first_failure(self, tmp_path: Path) -> None:
        w = wf(
            "t",
            job(
                "a",
                sh("one", "echo one >> log.txt"),
                sh("two", "echo two >> log.txt"),
                sh("boom", "exit 3"),
                sh("never", "echo never >> log.txt"),
            ),
        )
        assert _run(w, tmp_path) == {"a": FAILED}
        assert (tmp_path / "log.txt").read_text().split() == ["one", "two"]

    def test_failure_output_is_reported(self, tmp_path: Path, capsys) -> None:
        w = wf("t", job("a", sh("boom", "echo 'Diff in src/main.rs' && exit 1")))
        _run(w, tmp_path)
        out = capsys.readouterr().out
        assert "JOB FAILED: a" in out
        assert "Exit code: 1" in out
        assert "Diff in src/main.rs" in out

    def test_step_cwd(self, tmp_path: Path) -> None:
        (tmp_path / "sub").mkdir()
        w = wf("t", job("a", sh(None, "pwd > where.txt"), cwd="sub"))
        assert _run(w, tmp_path) == {"a": OK}
        assert (tmp_path / "sub" / "where.txt").read_text().strip().endswith("sub")

    def test_missing_cwd_fails_the_job(self, tmp_path: Path, capsys) -> None:
        w = wf("t", job("a", sh(None, "true", cwd="nope")))
        assert _run(w, tmp_path) == {"a": FAILED}
        assert "cwd_not_found" in capsys.readouterr().out

    def test_environment_layers(self, tmp_path: Path) -> None:
        w = wf(
            "t",
            job("a", sh(None, 'echo "$CARGO_TERM_COLOR" > a.txt')),
            job("b", sh(None, 'echo "$CARGO_TERM_COLOR" > b.txt')),
            job("c", sh(None, 'echo "$CARGO_TERM_COLOR" > c.txt'), env={"CARGO_TERM_COLOR": "never"}),
            env={"CARGO_TERM_COLOR": "always"},
        )
        assert _run(w, tmp_path) == {"a": OK, "b": OK, "c": OK}
        assert (tmp_path / "a.txt").read_text().strip() == "always"
        assert (tmp_path / "b.txt").read_text().strip() == "always"
        assert (tmp_path / "c.txt").read_text().strip() == "never"


class TestActions:
    def test_checkout_runs_locally(self, tmp_path: Path) -> None:
        w = wf("t", job("a", checkout(), sh(None, "true")))
        assert _run(w, tmp_path) == {"a": OK}

    def test_unknown_action_fails_job(self, tmp_path: Path, capsys) -> None:
        w = wf("t", job("a", uses("who/knows@v1"), sh(None, "touch ran.txt")))
        assert _run(w, tmp_path) == {"a": FAILED}
        assert not (tmp_path / "ran.txt").exists()
        assert "unsupported_action" in capsys.readouterr().out

    def test_missing_toolchain_fails_job_with_hint(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.setattr(actions.shutil, "which", lambda name: None)
        w = wf("t", job("a", checkout(), rust_toolchain(), sh(None, "touch ran.txt")))
        assert _run(w, tmp_path) == {"a": FAILED}
        assert not (tmp_path / "ran.txt").exists()
        assert "Hint: Install a Rust toolchain" in capsys.readouterr().out


class TestScheduling:
    def test_failing_job_does_not_stop_independent_jobs(self, tmp_path: Path) -> None:
        w = wf(
            "t",
            job("bad", sh(None, "exit 1")),
            job("good1", sh(None, "sleep 0.2 && touch good1.txt")),
            job("good2", sh(None, "touch good2.txt")),
        )
        results = _run(w, tmp_path, max_workers=1)
        assert results == {"bad": FAILED, "good1": OK, "good2": OK}
        assert (tmp_path / "good1.txt").exists()
        assert (tmp_path / "good2.txt").exists()
        assert any_failed(results)

    def test_needs_order_and_skip(self, tmp_path: Path) -> None:
        w = wf(
            "t",
            job("lint", sh(None, "echo lint >> order.txt")),
            job("test", sh(None, "echo test >> order.txt"), needs=["lint"]),
            job("broken", sh(None, "exit 1")),
            job("after_broken", sh(None, "touch nope.txt"), needs=["broken"]),
            job("later", sh(None, "touch nope2.txt"), needs=["after_broken"]),
        )
        results = _run(w, tmp_path)
        assert results == {
            "lint": OK,
            "test": OK,
            "broken": FAILED,
            "after_broken": SKIPPED_NEEDS,
            "later": SKIPPED_NEEDS,
        }
        assert (tmp_path / "order.txt").read_text().split() == ["lint", "test"]
        assert not (tmp_path / "nope.txt").exists()
        assert not (tmp_path / "nope2.txt").exists()

    def test_fail_fast_cancels_unscheduled_jobs(self, tmp_path: Path) -> None:
        w = wf(
            "t",
            job("bad", sh(None, "exit 1")),
            job("slow", sh(None, "sleep 0.5")),
            job("after_slow", sh(None, "touch ran.txt"), needs=["slow"]),
        )
        results = _run(w, tmp_path, max_workers=2, fail_fast=True)
        assert results == {"bad": FAILED, "slow": OK, "after_slow": CANCELLED}
        assert not (tmp_path / "ran.txt").exists()

    def test_only_selected_jobs(self, tmp_path: Path) -> None:
        w = wf("t", job("a", sh(None, "true")), job("b", sh(None, "true"), needs=["a"]))
        assert _run(w, tmp_path, only=["b"]) == {"b": OK}

    def test_only_unknown_job(self, tmp_path: Path) -> None:
        w = wf("t", job("a", sh(None, "true")))
        with pytest.raises(WorkflowError, match="Unknown job"):
            _run(w, tmp_path, only=["zzz"])

    def test_invalid_needs_raise(self, tmp_path: Path) -> None:
        w = wf("t", job("a", sh(None, "true"), needs=["ghost"]))
        with pytest.raises(WorkflowError, match="ghost"):
            _run(w, tmp_path)


class TestTriggers:
    def _wf(self):
        return wf("t", job("a", sh(None, "touch ran.txt")), on=[on_pull_request(), on_push("main")])

    def test_not_triggered(self, tmp_path: Path, capsys) -> None:
        assert _run(self._wf(), tmp_path, event="push", branch="feature") == {}
        assert not (tmp_path / "ran.txt").exists()
        assert "not triggered" in capsys.readouterr().out

    @pytest.mark.parametrize("event, branch", [("push", "main"), ("pull_request", None)])
    def test_triggered(self, tmp_path: Path, event, branch) -> None:
        assert _run(self._wf(), tmp_path, event=event, branch=branch) == {"a": OK}
        assert (tmp_path / "ran.txt").exists()


class TestGitDiffSelection:
    def test_selection_uses_git(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setattr(runner, "git_functionality", lambda compare_ref, cwd: (None, ["src/main.rs"]))
        w = wf(
            "t",
            job("rust", sh(None, "true"), paths=["*.rs"]),
            job("md", sh(None, "true"), paths=["*.md"]),
            job("always", sh(None, "true")),
            job("opt_out", sh(None, "true"), paths=["*.md"], diff_enabled=False),
        )
        assert _run(w, tmp_path, use_git_diff=True) == {"rust": OK, "always": OK, "opt_out": OK}

    def test_plan_printed(self, tmp_path: Path, capsys) -> None:
        w = wf("t", job("md", sh(None, "true"), paths=["*.md"]))
        _run(w, tmp_path, use_git_diff=True, changed=["a.rs"], print_plan=True)
        assert "md (skipped: no match for ['*.md'])" in capsys.readouterr().out


class TestLoadWorkflow:
    def test_python_workflow(self, tmp_path: Path) -> None:
        path = tmp_path / "ci_workflow.py"
        path.write_text(
            "from fmtci import wf, job, sh, on_push\n"
            "def workflow():\n"
            "    return wf('ci', job('a', sh(None, 'true')), on=[on_push()])\n"
        )
        w = load_workflow(path)
        assert w.name == "ci"
        assert w.file_name == "ci.yml"

    def test_python_constant(self, tmp_path: Path) -> None:
        path = tmp_path / "x.py"
        path.write_text("from fmtci import wf, job, sh\nWORKFLOW = wf('x', job('a', sh(None, 'true')), file_name='x-ci.yml')\n")
        assert load_workflow(path).file_name == "x-ci.yml"

    def test_python_without_workflow(self, tmp_path: Path) -> None:
        path = tmp_path / "x.py"
        path.write_text("JOBS = []\n")
        with pytest.raises(WorkflowError, match="must return/define a Workflow"):
            load_workflow(path)

    def test_job_without_steps(self, tmp_path: Path) -> None:
        path = tmp_path / "x.py"
        path.write_text("from fmtci import wf, job\nWORKFLOW = wf('x', job('empty'))\n")
        with pytest.raises(WorkflowError, match="at least one step"):
            load_workflow(path)

    def test_helper_name_collision(self, tmp_path: Path) -> None:
        path = tmp_path / "x.py"
        path.write_text("from fmtci import workflow\n")
        with pytest.raises(WorkflowError, match="name collision"):
            load_workflow(path)

    def test_yaml_workflow(self, repo_root: Path) -> None:
        w = load_workflow(repo_root / ".github" / "workflows" / "format.yml")
        assert [j.name for j in w.jobs] == ["check_format", "check_format_markdown", "check_format_toml"]

    def test_repo_workflow_file(self, repo_root: Path) -> None:
        w = load_workflow(repo_root / "fmtci_workflow.py")
        assert w.file_name == "format.yml"

    def test_bad_suffix_and_missing(self, tmp_path: Path) -> None:
        (tmp_path / "w.txt").write_text("")
        with pytest.raises(WorkflowError, match=".py or .yml"):
            load_workflow(tmp_path / "w.txt")
        with pytest.raises(WorkflowError, match="not found"):
            load_workflow(tmp_path / "missing.py")
