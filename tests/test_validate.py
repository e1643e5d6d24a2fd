"""Tests for the configuration rules."""

from fmtci import job, on_push, sh, uses, wf
from fmtci.validate import ERROR, WARNING, Finding, check_workflow, has_errors
from fmtci.workflows.format import checkout, install_cargo_make, markdown_lint, rust_toolchain


def _rules(findings):
    return [(f.level, f.rule, f.job) for f in findings]


def _wf(*jobs, on=None):
    return wf("t", *jobs, on=[on_push()] if on is None else on)


def test_no_triggers():
    findings = check_workflow(_wf(job("a", checkout(), sh(None, "true")), on=[]))
    assert (ERROR, "no-triggers", None) in _rules(findings)


def test_missing_checkout():
    findings = check_workflow(_wf(job("a", sh(None, "make"))))
    assert _rules(findings) == [(ERROR, "missing-checkout", "a")]


def test_checkout_not_first():
    findings = check_workflow(_wf(job("a", sh(None, "echo hi"), checkout())))
    assert _rules(findings) == [(WARNING, "checkout-order", "a")]


def test_task_runner_before_toolchain():
    findings = check_workflow(
        _wf(job("a", checkout(), install_cargo_make(), rust_toolchain(), sh("fmt", "cargo make rust-fmt-check")))
    )
    assert _rules(findings) == [(ERROR, "tool-order", "a")]
    assert findings[0].step == "davidB/rust-cargo-make@v1"
    assert "cargo" in findings[0].message


def test_cargo_make_without_installing_it():
    findings = check_workflow(_wf(job("a", checkout(), rust_toolchain(), sh("fmt", "cargo make toml-fmt-check"))))
    assert _rules(findings) == [(ERROR, "tool-order", "a")]
    assert "cargo-make" in findings[0].message


def test_unrelated_commands_need_nothing():
    findings = check_workflow(_wf(job("a", checkout(), sh(None, "python -m pytest"), sh(None, "./scripts/x.sh"))))
    assert findings == []


def test_unused_toolchain():
    findings = check_workflow(_wf(job("md", checkout(), rust_toolchain(), markdown_lint())))
    assert _rules(findings) == [(WARNING, "unused-toolchain", "md")]


def test_unpinned_and_unknown_actions():
    findings = check_workflow(_wf(job("a", checkout(), uses("someone/custom-action"))))
    assert _rules(findings) == [(ERROR, "unpinned-action", "a"), (WARNING, "unknown-action", "a")]


def test_graph_errors():
    findings = check_workflow(
        _wf(
            job("a", checkout(), needs=["b"]),
            job("b", checkout(), needs=["a"]),
        )
    )
    assert _rules(findings) == [(ERROR, "graph", None)]
    assert "cycle" in findings[0].message


def test_unknown_needs():
    findings = check_workflow(_wf(job("a", checkout(), needs=["ghost"])))
    assert _rules(findings) == [(ERROR, "graph", None)]
    assert "ghost" in findings[0].message


def test_errors_sorted_before_warnings():
    findings = check_workflow(
        _wf(
            job("w", sh(None, "true"), checkout()),
            job("e", sh(None, "true")),
        )
    )
    assert [f.level for f in findings] == [ERROR, WARNING]
    assert has_errors(findings)
    assert not has_errors([f for f in findings if f.level == WARNING])


def test_finding_str():
    f = Finding(ERROR, "tool-order", "uses cargo before any step installs it", "a", "fmt")
    assert str(f) == "error: tool-order [a / fmt]: uses cargo before any step installs it"
    assert str(Finding(ERROR, "no-triggers", "workflow has no triggers")) == "error: no-triggers: workflow has no triggers"
