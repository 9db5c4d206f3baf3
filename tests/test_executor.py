import threading
import time

import pytest

from buildgraph.dag import TaskGraph, TaskRegistry
from buildgraph.errors import GraphFrozenError, TaskExecutionError
from buildgraph.executor import BLOCKED, EXECUTED, FAILED, NOT_RUN, SKIPPED, Executor


def _boom():
    raise RuntimeError("boom")


@pytest.fixture
def calls():
    return []


def _recorder(calls, name):
    def action():
        calls.append(name)

    return action


def _ordered(reg):
    return TaskGraph(reg).execution_order()


def test_skip_disabled_and_run_rest(calls):
    reg = TaskRegistry()
    for name in ["a", "b-strip", "c"]:
        reg.register(name, action=_recorder(calls, name))
    reg.get("b-strip").disable()
    result = Executor().run(_ordered(reg))
    assert calls == ["a", "c"]
    assert result.status("b-strip") == SKIPPED
    assert result.executed == ["a", "c"]
    assert result.success


def test_skipped_dependency_counts_as_satisfied(calls):
    reg = TaskRegistry()
    reg.register("a", ["strip"], action=_recorder(calls, "a"))
    reg.register("strip", action=_recorder(calls, "strip"))
    reg.get("strip").disable()
    result = Executor().run(_ordered(reg))
    assert calls == ["a"]
    assert result.status("a") == EXECUTED


def test_all_skipped_is_success():
    reg = TaskRegistry()
    reg.register("x").disable()
    reg.register("y").disable()
    result = Executor().run(_ordered(reg))
    assert result.skipped == ["x", "y"]
    assert result.success


def test_failure_aborts_remaining(calls):
    reg = TaskRegistry()
    reg.register("a", ["b"], action=_recorder(calls, "a"))
    reg.register("b", action=_boom)
    with pytest.raises(TaskExecutionError) as exc:
        Executor().run(_ordered(reg))
    assert calls == []
    assert exc.value.task_id == "b"
    assert isinstance(exc.value.cause, RuntimeError)
    result = exc.value.result
    assert result.status("b") == FAILED
    assert result.status("a") == NOT_RUN
    assert result.outcomes["b"].error == "boom"
    assert not result.success


def test_continue_on_failure_runs_independent_tasks(calls):
    reg = TaskRegistry()
    reg.register("b", action=_boom)
    reg.register("a", ["b"], action=_recorder(calls, "a"))
    reg.register("top", ["a"], action=_recorder(calls, "top"))
    reg.register("independent", action=_recorder(calls, "independent"))
    result = Executor(continue_on_failure=True).run(_ordered(reg))
    assert calls == ["independent"]
    assert result.failed == ["b"]
    assert result.blocked == ["a", "top"]
    assert result.status("independent") == EXECUTED
    assert not result.success


def test_disabled_task_behind_failure_is_blocked():
    reg = TaskRegistry()
    reg.register("b", action=_boom)
    reg.register("strip", ["b"]).disable()
    result = Executor(continue_on_failure=True).run(_ordered(reg))
    assert result.status("strip") == BLOCKED


def test_run_locks_tasks():
    reg = TaskRegistry()
    task = reg.register("a")
    Executor().run(_ordered(reg))
    with pytest.raises(GraphFrozenError):
        task.enable()


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        Executor(max_workers=0)


def test_parallel_respects_dependencies():
    reg = TaskRegistry()
    finished = {}
    lock = threading.Lock()

    def work(name, deps):
        def action():
            with lock:
                for dep in deps:
                    assert dep in finished, f"{name} started before {dep}"
            time.sleep(0.01)
            with lock:
                finished[name] = time.monotonic()

        return action

    graph = {
        "preBuild": [],
        "compile": ["preBuild"],
        "resources": ["preBuild"],
        "lint": ["preBuild"],
        "package": ["compile", "resources"],
        "bundle": ["package", "lint"],
    }
    for name, deps in graph.items():
        reg.register(name, deps, action=work(name, deps))
    result = Executor(max_workers=4).run(_ordered(reg))
    assert result.success
    assert set(finished) == set(graph)


def test_parallel_runs_independent_tasks_concurrently():
    reg = TaskRegistry()
    barrier = threading.Barrier(2, timeout=5)
    reg.register("left", action=barrier.wait)
    reg.register("right", action=barrier.wait)
    result = Executor(max_workers=2).run(_ordered(reg))
    assert result.executed == ["left", "right"]


def test_parallel_abort_marks_unstarted_not_run(calls):
    reg = TaskRegistry()
    reg.register("b", action=_boom)
    reg.register("a", ["b"], action=_recorder(calls, "a"))
    with pytest.raises(TaskExecutionError) as exc:
        Executor(max_workers=3).run(_ordered(reg))
    assert calls == []
    assert exc.value.result.status("a") == NOT_RUN


def test_parallel_continue_on_failure(calls):
    reg = TaskRegistry()
    reg.register("b", action=_boom)
    reg.register("a", ["b"], action=_recorder(calls, "a"))
    reg.register("c", action=_recorder(calls, "c"))
    result = Executor(continue_on_failure=True, max_workers=2).run(_ordered(reg))
    assert calls == ["c"]
    assert result.failed == ["b"]
    assert result.blocked == ["a"]


def test_result_to_dict():
    reg = TaskRegistry()
    reg.register("a")
    reg.register("b").disable()
    data = Executor().run(_ordered(reg)).to_dict()
    assert data["status"] == "success"
    assert [(t["name"], t["status"]) for t in data["tasks"]] == [("a", "executed"), ("b", "skipped")]
