"""
Execution-time view of a workflow graph.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shared.models import (
    TRIGGER_MARKERS,
    Connection,
    NodeInstance,
    WorkflowGraph,
    can_emit_handle,
)

from .exceptions import CycleError, GraphError, NoStartNodeError


class ExecutionGraph:
    """Adjacency index built from WorkflowGraph.connections.

    - Outgoing connections keep the graph's declared order; the engine walks
      them in exactly that order.
    - Nodes are identified by node.id
    """

    def __init__(self, graph: WorkflowGraph):
        self.graph = graph
        self.nodes: Dict[str, NodeInstance] = {n.id: n for n in graph.nodes}
        self.adjacency_list: Dict[str, List[Connection]] = defaultdict(list)
        self._in_degree: Dict[str, int] = {node_id: 0 for node_id in self.nodes}
        for conn in graph.connections:
            self.adjacency_list[conn.source].append(conn)
            self._in_degree[conn.target] += 1

    def outgoing(self, node_id: str, handles: Optional[Iterable[str]] = None) -> List[Connection]:
        """Outgoing connections, optionally limited to the given source handles."""
        connections = self.adjacency_list.get(node_id, [])
        if handles is None:
            return list(connections)
        wanted = set(handles)
        return [c for c in connections if c.source_handle in wanted]

    def in_degree(self, node_id: str) -> int:
        return self._in_degree.get(node_id, 0)

    def sources(self) -> List[str]:
        return [node_id for node_id, deg in self._in_degree.items() if deg == 0]

    def validate(self) -> None:
        """Reject connections on handles the source cannot emit, and cycles."""
        for conn in self.graph.connections:
            source = self.nodes[conn.source]
            if not can_emit_handle(source.type, conn.source_handle):
                raise GraphError(
                    f"Connection {conn.id}: node '{source.label}' ({source.type}) "
                    f"cannot emit on handle '{conn.source_handle}'"
                )
        self._check_acyclic()

    def _check_acyclic(self) -> None:
        """Kahn's algorithm; leftover nodes sit on a cycle."""
        in_degree_map = dict(self._in_degree)
        queue = deque(node_id for node_id, deg in in_degree_map.items() if deg == 0)
        visited = 0
        while queue:
            current = queue.popleft()
            visited += 1
            for conn in self.adjacency_list.get(current, []):
                in_degree_map[conn.target] -= 1
                if in_degree_map[conn.target] == 0:
                    queue.append(conn.target)
        if visited != len(self.nodes):
            stuck = sorted(node_id for node_id, deg in in_degree_map.items() if deg > 0)
            raise CycleError(f"Workflow graph contains a cycle through: {', '.join(stuck)}")

    def start_nodes(
        self,
        initial_context: Optional[Mapping[str, Any]] = None,
        start_node_id: Optional[str] = None,
    ) -> List[NodeInstance]:
        """Resolve where a run begins.

        An explicit ``start_node_id`` wins. Otherwise a trigger marker in the
        initial context (``headers`` for webhooks, ...) selects the first node
        of that trigger kind. Otherwise every node without incoming
        connections is a start node, in declared order.
        """
        if start_node_id is not None:
            node = self.nodes.get(start_node_id)
            if node is None:
                raise NoStartNodeError(f"Start node '{start_node_id}' is not part of the workflow")
            return [node]

        for marker, trigger_type in TRIGGER_MARKERS.items():
            if initial_context and marker in initial_context:
                matches = self.graph.nodes_of_type(trigger_type)
                if matches:
                    return [matches[0]]

        starts = [self.nodes[node_id] for node_id in self.sources()]
        if not starts:
            raise NoStartNodeError("No start node found: every node has an incoming connection")
        return starts


__all__ = ["ExecutionGraph"]
