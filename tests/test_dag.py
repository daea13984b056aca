import pytest

from core.dag import DAGNode, SimpleDAGExecutor


def test_nodes_run_in_dependency_order():
    calls = []

    def node(name, value):
        def fn(deps):
            calls.append(name)
            return value + sum(deps.values())
        return fn

    dag = SimpleDAGExecutor()
    dag.add(DAGNode("export", node("export", 100), depends_on=("enhance",)))
    dag.add(DAGNode("enhance", node("enhance", 10), depends_on=("load",)))
    dag.add(DAGNode("load", node("load", 1)))

    progress = []
    results = dag.run(progress=lambda p, m: progress.append((p, m)))
    assert calls == ["load", "enhance", "export"]
    assert results == {"load": 1, "enhance": 11, "export": 111}
    assert progress[0] == (0, "Running: load")
    assert progress[-1] == (100, "Pipeline complete")


def test_nodes_only_see_their_dependencies():
    seen = {}
    dag = SimpleDAGExecutor()
    dag.add(DAGNode("a", lambda deps: "a"))
    dag.add(DAGNode("b", lambda deps: "b"))
    dag.add(DAGNode("c", lambda deps: seen.update(deps), depends_on=("b",)))
    dag.run()
    assert seen == {"b": "b"}


def test_cycle_is_rejected():
    dag = SimpleDAGExecutor()
    dag.add(DAGNode("a", lambda deps: 1, depends_on=("b",)))
    dag.add(DAGNode("b", lambda deps: 2, depends_on=("a",)))
    with pytest.raises(ValueError):
        dag.run()


def test_unknown_dependency_is_rejected():
    dag = SimpleDAGExecutor().add(DAGNode("a", lambda deps: 1, depends_on=("missing",)))
    with pytest.raises(KeyError):
        dag.run()


def test_execution_order_and_timings():
    dag = SimpleDAGExecutor()
    dag.add(DAGNode("evaluate", lambda deps: None, depends_on=("match",)))
    dag.add(DAGNode("load", lambda deps: None))
    dag.add(DAGNode("match", lambda deps: None, depends_on=("load",)))
    assert dag.execution_order() == ["load", "match", "evaluate"]
    dag.run()
    assert set(dag.timings) == {"load", "match", "evaluate"}
    assert all(t >= 0.0 for t in dag.timings.values())
