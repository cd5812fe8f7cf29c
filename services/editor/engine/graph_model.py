"""In-memory graph model for one editing session."""

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union
from shared.constants import DEFAULT_GRID_SNAP, MAX_ZOOM, MIN_GROUP_CHILDREN, MIN_ZOOM
from shared.exceptions import InvalidEdgeError
from shared.types import (
    Edge,
    Endpoint,
    GroupConfig,
    Node,
    NodeKind,
    Padding,
    Point,
    Port,
    PortDirection,
    Selection,
    Size,
    Viewport,
    Workflow,
)
from shared.utils import generate_id

Listener = Callable[[str], None]


def snap_to_grid(value: float, snap: Optional[float]) -> float:
    """Rounds to the nearest multiple of ``snap``, halves rounding up"""
    if not snap:
        return value
    return math.floor(value / snap + 0.5) * snap


def bounding_box(nodes: Iterable[Node], padding: Padding) -> Tuple[Point, Size]:
    nodes = list(nodes)
    min_x = min(n.position.x for n in nodes) - padding.left
    min_y = min(n.position.y for n in nodes) - padding.top
    max_x = max(n.position.x + n.size.width for n in nodes) + padding.right
    max_y = max(n.position.y + n.size.height for n in nodes) + padding.bottom
    return Point(x=min_x, y=min_y), Size(width=max_x - min_x, height=max_y - min_y)


class GraphModel:
    """Owns the active workflow, its viewport and the selection.

    Document mutations touch ``updatedAt`` and notify subscribers with the
    action name. Selection and viewport changes are view state and do not
    notify.
    """

    def __init__(self, workflow: Optional[Workflow] = None, viewport: Optional[Viewport] = None):
        self.workflow = workflow or Workflow()
        self.viewport = viewport or Viewport()
        self.selection = Selection()
        self._listeners: List[Listener] = []
        self._sync_selection_from_flags()

    # ── Subscriptions ──

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self, action: str) -> None:
        self.workflow.touch()
        for listener in list(self._listeners):
            listener(action)

    # ── Nodes ──

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.workflow.get_node(node_id)

    def add_node(self, partial: Optional[Mapping[str, Any]] = None) -> str:
        data = dict(partial or {})
        if not data.get("id"):
            data["id"] = generate_id()
        node = Node.model_validate(data)
        self.workflow.nodes.append(node)
        if node.selected:
            self.selection.nodes.add(node.id)
        self._changed("add_node")
        return node.id

    def update_node(self, node_id: str, patch: Mapping[str, Any]) -> bool:
        """Merges ``patch`` into the node and re-validates the result.

        Returns False when the node does not exist. Raises pydantic's
        ValidationError when the merged node would be invalid.
        """
        index = self._node_index(node_id)
        if index is None:
            return False

        current = self.workflow.nodes[index]
        merged = current.model_dump(by_alias=True)
        merged.update(patch)
        merged["id"] = current.id
        node = Node.model_validate(merged)

        self.workflow.nodes[index] = node
        if node.selected:
            self.selection.nodes.add(node.id)
        else:
            self.selection.nodes.discard(node.id)
        self._refit_groups({node.id})
        self._changed("update_node")
        return True

    def move_nodes(self, ids: Iterable[str], dx: float, dy: float, snap: Optional[float] = DEFAULT_GRID_SNAP) -> int:
        targets = set(ids)
        for node in self.workflow.nodes:
            if node.id in targets and node.is_group:
                targets.update(node.config.child_ids)

        moved = 0
        for node in self.workflow.nodes:
            if node.id not in targets:
                continue
            node.position = Point(
                x=snap_to_grid(node.position.x + dx, snap),
                y=snap_to_grid(node.position.y + dy, snap),
            )
            moved += 1

        if not moved:
            return 0
        self._refit_groups(targets)
        self._changed("move_nodes")
        return moved

    def remove_nodes(self, ids: Iterable[str]) -> Set[str]:
        """Removes nodes, their edges, and groups left with fewer than two children.

        Surviving groups that lost children are refitted around the rest.
        The new node and edge lists are assigned in one step.
        """
        live = {n.id for n in self.workflow.nodes}
        doomed = {node_id for node_id in ids if node_id in live}
        if not doomed:
            return set()

        groups = [n for n in self.workflow.nodes if n.is_group]
        cascading = True
        while cascading:
            cascading = False
            for group in groups:
                if group.id in doomed:
                    continue
                remaining = [c for c in group.config.child_ids if c in live and c not in doomed]
                if len(remaining) < MIN_GROUP_CHILDREN:
                    doomed.add(group.id)
                    cascading = True
                    logging.debug("Dissolving group", extra={"group_id": group.id})

        survivors = [n for n in self.workflow.nodes if n.id not in doomed]
        by_id = {n.id: n for n in survivors}
        for index, node in enumerate(survivors):
            if not node.is_group:
                continue
            child_ids = [c for c in node.config.child_ids if c in by_id]
            if child_ids == node.config.child_ids:
                continue
            config = GroupConfig.model_validate({**node.config.model_dump(by_alias=True), "childIds": child_ids})
            position, size = bounding_box((by_id[c] for c in child_ids), config.padding)
            survivors[index] = node.model_copy(update={"config": config, "position": position, "size": size})

        edges = [
            e for e in self.workflow.edges
            if e.source.node_id not in doomed and e.target.node_id not in doomed
        ]
        dropped_edges = {e.id for e in self.workflow.edges} - {e.id for e in edges}

        self.workflow.nodes = survivors
        self.workflow.edges = edges
        self.selection.nodes -= doomed
        self.selection.edges -= dropped_edges
        self._changed("remove_nodes")
        return doomed

    # ── Groups ──

    def group_nodes(
        self,
        ids: Iterable[str],
        label: str = "Group",
        padding: Union[Padding, Mapping[str, float], None] = None,
    ) -> Optional[str]:
        """Frames two or more non-group nodes; returns None when there are fewer"""
        members: List[Node] = []
        for node_id in dict.fromkeys(ids):
            node = self.get_node(node_id)
            if node is not None and not node.is_group:
                members.append(node)
        if len(members) < MIN_GROUP_CHILDREN:
            return None

        pad = padding if isinstance(padding, Padding) else Padding.model_validate(padding or {})
        position, size = bounding_box(members, pad)
        group = Node(
            kind=NodeKind.ACTION,
            label=label,
            position=position,
            size=size,
            config=GroupConfig(child_ids=[m.id for m in members], padding=pad),
        )
        self.workflow.nodes.append(group)
        self._changed("group_nodes")
        return group.id

    def ungroup_nodes(self, group_id: str) -> bool:
        group = self.get_node(group_id)
        if group is None or not group.is_group:
            return False
        self.workflow.nodes = [n for n in self.workflow.nodes if n.id != group_id]
        self.selection.nodes.discard(group_id)
        self._changed("ungroup_nodes")
        return True

    def _refit_groups(self, touched: Set[str]) -> None:
        by_id = {n.id: n for n in self.workflow.nodes}
        for index, node in enumerate(self.workflow.nodes):
            if not node.is_group:
                continue
            if node.id not in touched and not touched.intersection(node.config.child_ids):
                continue
            children = [by_id[c] for c in node.config.child_ids if c in by_id and c != node.id]
            if not children:
                continue
            position, size = bounding_box(children, node.config.padding)
            self.workflow.nodes[index] = node.model_copy(update={"position": position, "size": size})

    # ── Edges ──

    def add_edge(self, spec: Union[Edge, Mapping[str, Any]], loose: bool = False) -> str:
        """Connects an ``out`` port to an ``in`` port.

        Both endpoints must exist and port kinds must match unless ``loose``
        is set. When ``kind`` is omitted it is taken from the source port.
        """
        if isinstance(spec, Edge):
            edge, kind_given = spec.model_copy(), "kind" in spec.model_fields_set
        else:
            data = dict(spec)
            kind_given = data.get("kind") is not None
            if not data.get("id"):
                data["id"] = generate_id()
            edge = Edge.model_validate(data)

        if self.workflow.get_edge(edge.id) is not None:
            return edge.id

        source_port = self._resolve_port(edge.source, PortDirection.OUT)
        target_port = self._resolve_port(edge.target, PortDirection.IN)
        if not kind_given:
            edge.kind = source_port.kind
        if not loose and not (source_port.kind == target_port.kind == edge.kind):
            raise InvalidEdgeError(
                f"Port kinds do not match: {source_port.kind.value} -> {target_port.kind.value}",
                self.workflow.id,
                edge_kind=edge.kind.value,
            )

        self.workflow.edges.append(edge)
        if edge.selected:
            self.selection.edges.add(edge.id)
        self._changed("add_edge")
        return edge.id

    def can_connect(self, source: Endpoint, target: Endpoint, loose: bool = False) -> bool:
        try:
            source_port = self._resolve_port(source, PortDirection.OUT)
            target_port = self._resolve_port(target, PortDirection.IN)
        except InvalidEdgeError:
            return False
        return loose or source_port.kind == target_port.kind

    def remove_edges(self, ids: Iterable[str]) -> int:
        doomed = set(ids)
        edges = [e for e in self.workflow.edges if e.id not in doomed]
        removed = len(self.workflow.edges) - len(edges)
        if not removed:
            return 0
        self.workflow.edges = edges
        self.selection.edges -= doomed
        self._changed("remove_edges")
        return removed

    def _resolve_port(self, endpoint: Endpoint, direction: PortDirection) -> Port:
        node = self.get_node(endpoint.node_id)
        if node is None:
            raise InvalidEdgeError(f"Edge references missing node: {endpoint.node_id}", self.workflow.id)
        port = node.get_port(endpoint.port_id)
        if port is None:
            raise InvalidEdgeError(
                f"Node '{node.id}' has no port '{endpoint.port_id}'", self.workflow.id
            )
        if port.direction != direction:
            raise InvalidEdgeError(
                f"Port '{port.id}' on node '{node.id}' is not an '{direction.value}' port",
                self.workflow.id,
            )
        return port

    # ── Selection ──

    def clear_selection(self) -> None:
        for node in self.workflow.nodes:
            node.selected = False
        for edge in self.workflow.edges:
            edge.selected = False
        self.selection = Selection()

    def select_nodes(self, ids: Iterable[str], additive: bool = False) -> None:
        if not additive:
            for node in self.workflow.nodes:
                node.selected = False
            self.selection.nodes = set()
        for node_id in ids:
            node = self.get_node(node_id)
            if node is not None:
                node.selected = True
                self.selection.nodes.add(node_id)

    def select_edges(self, ids: Iterable[str], additive: bool = False) -> None:
        if not additive:
            for edge in self.workflow.edges:
                edge.selected = False
            self.selection.edges = set()
        for edge_id in ids:
            edge = self.workflow.get_edge(edge_id)
            if edge is not None:
                edge.selected = True
                self.selection.edges.add(edge_id)

    def _sync_selection_from_flags(self) -> None:
        self.selection = Selection(
            nodes={n.id for n in self.workflow.nodes if n.selected},
            edges={e.id for e in self.workflow.edges if e.selected},
        )

    # ── Viewport ──

    def set_viewport(self, zoom: Optional[float] = None, offset: Optional[Point] = None) -> None:
        self.viewport = Viewport(
            zoom=self.viewport.zoom if zoom is None else zoom,
            offset=self.viewport.offset if offset is None else offset,
        )

    def zoom_by(self, factor: float, center: Optional[Point] = None) -> None:
        """Scales zoom by ``factor``, keeping ``center`` fixed on screen"""
        previous = self.viewport.zoom
        zoom = max(MIN_ZOOM, min(MAX_ZOOM, previous * factor))
        offset = self.viewport.offset
        if center is not None:
            scale = zoom / previous
            offset = Point(
                x=center.x - scale * (center.x - offset.x),
                y=center.y - scale * (center.y - offset.y),
            )
        self.viewport = Viewport(zoom=zoom, offset=offset)

    def pan_by(self, dx: float, dy: float) -> None:
        offset = self.viewport.offset
        self.set_viewport(offset=Point(x=offset.x + dx, y=offset.y + dy))

    # ── Whole-document operations ──

    def replace_workflow(self, workflow: Workflow) -> None:
        """Swaps in a new document; selection does not survive the swap"""
        self.workflow = workflow
        for node in self.workflow.nodes:
            node.selected = False
        for edge in self.workflow.edges:
            edge.selected = False
        self.selection = Selection()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "workflow": self.workflow.model_dump(mode="json", by_alias=True),
            "viewport": self.viewport.model_dump(mode="json", by_alias=True),
            "selection": self.selection.model_dump(mode="json", by_alias=True),
        }

    def load_snapshot(self, snapshot: Mapping[str, Any]) -> None:
        self.workflow = Workflow.model_validate(snapshot["workflow"])
        self.viewport = Viewport.model_validate(snapshot["viewport"])
        self.selection = Selection.model_validate(snapshot["selection"])

    def _node_index(self, node_id: str) -> Optional[int]:
        for index, node in enumerate(self.workflow.nodes):
            if node.id == node_id:
                return index
        return None
