"""
Workflow graph models.

The storage format written by the editor uses camelCase keys
(``sourceHandle``, ``targetHandle``, ``isActive``); the models accept those
and the snake_case attribute names alike.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .node_enums import MAIN_HANDLE, NodeType


class NodeInstance(BaseModel):
    """One typed step of a workflow"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Node id, unique within its graph")
    type: str = Field(..., description="Node kind tag, see NodeType")
    name: str = Field(default="", description="Human label used in logs")
    config: Dict[str, Any] = Field(default_factory=dict, description="Type-specific configuration")

    @property
    def label(self) -> str:
        return self.name or self.id

    def is_type(self, node_type: NodeType) -> bool:
        return self.type == node_type.value


class Connection(BaseModel):
    """Directed edge from a node's output handle to another node's input"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Connection id")
    source: str = Field(..., description="Source node id")
    source_handle: str = Field(default=MAIN_HANDLE, alias="sourceHandle")
    target: str = Field(..., description="Target node id")
    target_handle: str = Field(default="input", alias="targetHandle")


class WorkflowGraph(BaseModel):
    """Nodes and connections of one workflow, the input of a single run"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    nodes: List[NodeInstance] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "WorkflowGraph":
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        for conn in self.connections:
            if conn.source not in seen:
                raise ValueError(f"Connection {conn.id} references unknown source node {conn.source}")
            if conn.target not in seen:
                raise ValueError(f"Connection {conn.id} references unknown target node {conn.target}")
        return self

    def get_node(self, node_id: str) -> Optional[NodeInstance]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_type(self, node_type: NodeType) -> List[NodeInstance]:
        return [n for n in self.nodes if n.is_type(node_type)]


class Workflow(BaseModel):
    """Persisted workflow record"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str = ""
    description: Optional[str] = None
    user_id: Optional[str] = None
    is_active: bool = Field(default=False, alias="isActive")
    nodes: List[NodeInstance] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def graph(self) -> WorkflowGraph:
        return WorkflowGraph(nodes=self.nodes, connections=self.connections)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Workflow":
        """Build from a storage row.

        Rows either carry ``nodes``/``connections`` columns or a single JSON
        ``data`` column holding both.
        """
        payload = dict(record)
        data = payload.pop("data", None)
        if data is not None and not payload.get("nodes"):
            if isinstance(data, str):
                data = json.loads(data)
            payload["nodes"] = data.get("nodes", [])
            payload["connections"] = data.get("connections", [])
        return cls.model_validate(payload)

    def to_record(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        data["is_active"] = data.pop("isActive")
        return data


__all__ = ["NodeInstance", "Connection", "WorkflowGraph", "Workflow"]
