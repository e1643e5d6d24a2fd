"""Tests for the job graph."""

import pytest

from fmtci import job, sh
from fmtci.dag import build_dag, dependents, stages, topo_levels
from fmtci.model import WorkflowError


def _j(name, *needs):
    return job(name, sh(None, "true"), needs=list(needs))


def test_independent_jobs_share_one_stage():
    assert stages([_j("c"), _j("a"), _j("b")]) == [["a", "b", "c"]]


def test_levels_follow_needs():
    jobs = [_j("lint"), _j("test", "lint"), _j("docs"), _j("release", "test", "docs")]
    assert stages(jobs) == [["docs", "lint"], ["test"], ["release"]]


def test_build_dag_edges():
    adj, indeg = build_dag([_j("a"), _j("b", "a"), _j("c", "a", "b")])
    assert adj == {"a": {"b", "c"}, "b": {"c"}, "c": set()}
    assert indeg == {"a": 0, "b": 1, "c": 2}


def test_missing_dependency():
    with pytest.raises(WorkflowError, match="needs missing job 'x'"):
        build_dag([_j("a", "x")])


def test_duplicate_names():
    with pytest.raises(WorkflowError, match="Duplicate"):
        build_dag([_j("a"), _j("a")])


def test_cycle():
    adj, indeg = build_dag([_j("a", "b"), _j("b", "a"), _j("c")])
    with pytest.raises(WorkflowError, match=r"cycle.*\['a', 'b'\]"):
        topo_levels(adj, indeg)


def test_dependents_are_transitive():
    adj, _ = build_dag([_j("a"), _j("b", "a"), _j("c", "b"), _j("d")])
    assert dependents(adj, "a") == {"b", "c"}
    assert dependents(adj, "d") == set()
