"""Workflow definition schema.

Definitions come from the visual editor as
``{"nodes": [...], "edges": [...], "viewport": {"x", "y", "zoom"}}``.
The viewport is presentational and dropped on parse.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from core.constants import NodeType
from core.exceptions import WorkflowDefinitionError


class Node(BaseModel):
    """A typed unit of work."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str = "default"
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> Optional[NodeType]:
        """The recognised node type, or None for passthrough nodes."""
        return NodeType.parse(self.type)

    @property
    def retries(self) -> int:
        value = self.data.get("retries") or 0
        return max(int(value), 0)

    @property
    def continue_on_failure(self) -> bool:
        return bool(self.data.get("continueOnFailure", False))


class EdgeData(BaseModel):
    model_config = ConfigDict(extra="allow")

    condition: Any = None


class Edge(BaseModel):
    """A directed link, optionally gated by ``data.condition``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    data: Optional[EdgeData] = None

    @property
    def condition(self) -> Any:
        if self.data is None or self.data.condition in (None, ""):
            return None
        return self.data.condition


class WorkflowGraph(BaseModel):
    """Parsed nodes and edges of one workflow definition."""

    model_config = ConfigDict(extra="ignore")

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    @classmethod
    def parse(cls, definition: Optional[dict]) -> "WorkflowGraph":
        """Build a graph from the stored JSON definition.

        Raises:
            WorkflowDefinitionError: If the JSON does not have the expected shape
        """
        try:
            return cls.model_validate(definition or {})
        except PydanticValidationError as e:
            raise WorkflowDefinitionError(f"Invalid workflow definition: {e}") from e

    # ─── Lookups ─────────────────────────────────────────────

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def start_node(self) -> Node:
        """Return the unique Start node.

        Raises:
            WorkflowDefinitionError: If there is no Start node or more than one
        """
        starts = [node for node in self.nodes if node.kind == NodeType.START]
        if not starts:
            raise WorkflowDefinitionError("Workflow must have a start node")
        if len(starts) > 1:
            ids = ", ".join(node.id for node in starts)
            raise WorkflowDefinitionError(f"Workflow must have exactly one start node, found: {ids}")
        return starts[0]

    # ─── Validation ──────────────────────────────────────────

    def validate_graph(self) -> Node:
        """Check structural soundness before a walk and return the Start node.

        Raises:
            WorkflowDefinitionError: On duplicate node ids, dangling edges,
                a missing/duplicated Start node or a cycle
        """
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise WorkflowDefinitionError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

        for edge in self.edges:
            if edge.source not in seen:
                raise WorkflowDefinitionError(
                    f"Edge {edge.id} references unknown source node {edge.source}"
                )
            if edge.target not in seen:
                raise WorkflowDefinitionError(
                    f"Edge {edge.id} references unknown target node {edge.target}"
                )

        start = self.start_node()

        cycle = self.find_cycle()
        if cycle:
            raise WorkflowDefinitionError(
                "Workflow graph contains a cycle: " + " -> ".join(cycle)
            )
        return start

    def find_cycle(self) -> Optional[list[str]]:
        """Return the node ids of one cycle, or None for a DAG."""
        adjacency: dict[str, list[str]] = {node.id: [] for node in self.nodes}
        for edge in self.edges:
            adjacency.setdefault(edge.source, []).append(edge.target)

        white, grey, black = 0, 1, 2
        color = {node_id: white for node_id in adjacency}

        # Iterative DFS so deep graphs don't hit the recursion limit
        for root in adjacency:
            if color[root] != white:
                continue
            path: list[str] = [root]
            stack = [(root, iter(adjacency[root]))]
            color[root] = grey
            while stack:
                node_id, children = stack[-1]
                child = next(children, None)
                if child is None:
                    color[node_id] = black
                    stack.pop()
                    path.pop()
                    continue
                if color.get(child, white) == grey:
                    return path[path.index(child):] + [child]
                if color.get(child, white) == white:
                    color[child] = grey
                    path.append(child)
                    stack.append((child, iter(adjacency.get(child, []))))
        return None
