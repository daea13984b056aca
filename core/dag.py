"""
Dependency-ordered stage runner for the per-file conversion pipeline.

Stages are plain callables receiving the results of the stages they depend
on, keyed by stage name.  Execution is sequential in topological order;
concurrency lives inside stages (slice pools) and across files (batch pool).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class DAGNode:
    """One pipeline stage."""
    name:        str
    fn:          Callable[[dict], Any]
    depends_on:  Tuple[str, ...] = field(default_factory=tuple)


class SimpleDAGExecutor:
    """
    Runs nodes after all of their dependencies.

    Usage::

        dag = SimpleDAGExecutor()
        dag.add(DAGNode("load",      load_fn))
        dag.add(DAGNode("normalize", normalize_fn, depends_on=("load",)))
        dag.add(DAGNode("enhance",   enhance_fn,   depends_on=("load", "normalize")))
        results = dag.run(progress_callback)

    ``results`` maps every node name to its return value.  Wall-clock time
    per node is kept in ``timings`` after a run.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, DAGNode] = {}
        self.timings: Dict[str, float] = {}

    @property
    def node_names(self) -> Tuple[str, ...]:
        return tuple(self._nodes)

    def add(self, node: DAGNode) -> "SimpleDAGExecutor":
        self._nodes[node.name] = node
        return self

    def execution_order(self) -> List[str]:
        """
        Topological order, insertion order among independent nodes.

        Raises:
            KeyError: a node depends on a name that was never added.
            ValueError: the dependencies form a cycle.
        """
        order: List[str] = []
        state: Dict[str, str] = {}   # name -> "open" | "done"

        def visit(name: str) -> None:
            mark = state.get(name)
            if mark == "done":
                return
            if mark == "open":
                raise ValueError(f"DAG contains a cycle through '{name}'")
            state[name] = "open"
            for dep in self._nodes[name].depends_on:
                if dep not in self._nodes:
                    raise KeyError(f"DAG node '{name}' depends on unknown node '{dep}'")
                visit(dep)
            state[name] = "done"
            order.append(name)

        for name in self._nodes:
            visit(name)
        return order

    def run(self, progress: Optional[Callable[[int, str], None]] = None) -> dict:
        order = self.execution_order()
        results: dict = {}
        self.timings = {}
        for i, name in enumerate(order):
            node = self._nodes[name]
            if progress:
                progress(int(100 * i / len(order)), f"Running: {name}")
            started = time.perf_counter()
            results[name] = node.fn({dep: results[dep] for dep in node.depends_on})
            self.timings[name] = time.perf_counter() - started
            logger.debug("Stage %s finished in %.3fs", name, self.timings[name])
        if progress:
            progress(100, "Pipeline complete")
        return results


__all__ = ["DAGNode", "SimpleDAGExecutor"]
