"""Shared types for the editor and API services."""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Union
from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_serializer,
    field_validator,
    model_validator,
)
from shared.constants import (
    DEFAULT_GROUP_PADDING,
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_WIDTH,
    DEFAULT_ZOOM,
    MAX_ZOOM,
    MIN_GROUP_CHILDREN,
    MIN_ZOOM,
)
from shared.utils import generate_id, utc_timestamp


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    LOOP = "loop"
    DELAY = "delay"
    ERROR_HANDLER = "error-handler"
    SUB_WORKFLOW = "sub-workflow"
    CUSTOM = "custom"


class PortDirection(str, Enum):
    IN = "in"
    OUT = "out"


class PortKind(str, Enum):
    DATA = "data"
    CONTROL = "control"
    ERROR = "error"


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class WireModel(BaseModel):
    """Base for models that travel as camelCase JSON"""
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Point(WireModel):
    x: float = 0
    y: float = 0


class Size(WireModel):
    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT


class Padding(WireModel):
    top: float = DEFAULT_GROUP_PADDING["top"]
    right: float = DEFAULT_GROUP_PADDING["right"]
    bottom: float = DEFAULT_GROUP_PADDING["bottom"]
    left: float = DEFAULT_GROUP_PADDING["left"]


class Port(WireModel):
    id: str = Field(default_factory=generate_id)
    name: str
    direction: PortDirection
    kind: PortKind = PortKind.CONTROL
    data_type: Optional[str] = Field(default=None, alias="dataType")


# --- Node configuration variants ---

class NodeConfigBase(WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class GroupConfig(NodeConfigBase):
    """Membership of a group frame; geometry of the frame is derived from it"""
    node_type: Literal["group"] = Field(default="group", alias="nodeType")
    child_ids: List[str] = Field(alias="childIds", min_length=MIN_GROUP_CHILDREN)
    child_count: int = Field(default=0, alias="childCount")
    padding: Padding = Field(default_factory=Padding)

    @model_validator(mode="after")
    def sync_child_count(self) -> "GroupConfig":
        self.child_count = len(self.child_ids)
        return self


class ConditionConfig(NodeConfigBase):
    node_type: Literal["condition", "split"] = Field(default="condition", alias="nodeType")
    expression: Optional[str] = None


class HttpConfig(NodeConfigBase):
    node_type: Literal["http"] = Field(default="http", alias="nodeType")
    url: Optional[str] = None
    method: Optional[str] = None


class TextConfig(NodeConfigBase):
    node_type: Literal["text"] = Field(default="text", alias="nodeType")
    text: Optional[str] = None


_CONFIG_TAGS = {
    "group": "group",
    "condition": "condition",
    "split": "condition",
    "http": "http",
    "text": "text",
}


def _config_tag(value: Any) -> str:
    if isinstance(value, dict):
        node_type = value.get("nodeType", value.get("node_type"))
    else:
        node_type = getattr(value, "node_type", None)
    return _CONFIG_TAGS.get(node_type, "open")


NodeConfig = Annotated[
    Union[
        Annotated[GroupConfig, Tag("group")],
        Annotated[ConditionConfig, Tag("condition")],
        Annotated[HttpConfig, Tag("http")],
        Annotated[TextConfig, Tag("text")],
        Annotated[Dict[str, Any], Tag("open")],
    ],
    Discriminator(_config_tag),
]


class Node(WireModel):
    id: str = Field(default_factory=generate_id)
    kind: NodeKind = NodeKind.ACTION
    label: str = "Node"
    position: Point = Field(default_factory=Point)
    size: Size = Field(default_factory=Size)
    ports: List[Port] = Field(default_factory=list)
    config: NodeConfig = Field(default_factory=dict)
    selected: bool = False

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def node_type(self) -> Optional[str]:
        if isinstance(self.config, dict):
            return self.config.get("nodeType")
        return self.config.node_type

    @property
    def is_group(self) -> bool:
        return isinstance(self.config, GroupConfig)

    def get_port(self, port_id: str) -> Optional[Port]:
        for port in self.ports:
            if port.id == port_id:
                return port
        return None


class Endpoint(WireModel):
    node_id: str = Field(alias="nodeId")
    port_id: str = Field(alias="portId")


class Edge(WireModel):
    id: str = Field(default_factory=generate_id)
    source: Endpoint = Field(alias="from")
    target: Endpoint = Field(alias="to")
    kind: PortKind = PortKind.CONTROL
    label: Optional[str] = None
    selected: bool = False


class Workflow(WireModel):
    """The active document owned by a graph model"""
    id: str = Field(default_factory=generate_id)
    name: str = "Untitled Workflow"
    description: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_timestamp, alias="createdAt")
    updated_at: str = Field(default_factory=utc_timestamp, alias="updatedAt")
    version: int = 1

    def touch(self) -> None:
        self.updated_at = utc_timestamp()

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None


class Viewport(WireModel):
    zoom: float = DEFAULT_ZOOM
    offset: Point = Field(default_factory=Point)

    @field_validator("zoom")
    @classmethod
    def clamp_zoom(cls, v: float) -> float:
        return max(MIN_ZOOM, min(MAX_ZOOM, v))


class Selection(WireModel):
    nodes: Set[str] = Field(default_factory=set)
    edges: Set[str] = Field(default_factory=set)

    @field_serializer("nodes", "edges")
    def serialize_ids(self, ids: Set[str]) -> List[str]:
        return sorted(ids)


# --- Persisted records ---

def empty_graph() -> Dict[str, Any]:
    return {"nodes": [], "edges": [], "meta": {}}


class WorkflowRecord(WireModel):
    id: str = Field(default_factory=generate_id)
    name: str
    description: Optional[str] = None
    graph: Dict[str, Any] = Field(default_factory=empty_graph)
    node_overrides: Dict[str, Any] = Field(default_factory=dict, alias="nodeOverrides")
    status: WorkflowStatus = WorkflowStatus.DRAFT
    version: int = 1
    active_version_id: Optional[str] = Field(default=None, alias="activeVersionId")
    created_at: str = Field(default_factory=utc_timestamp, alias="createdAt")
    updated_at: str = Field(default_factory=utc_timestamp, alias="updatedAt")


class VersionRecord(WireModel):
    """Immutable snapshot of a workflow graph"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_id)
    workflow_id: str = Field(alias="workflowId")
    label: Optional[str] = None
    name: str
    description: Optional[str] = None
    graph: Dict[str, Any]
    created_at: str = Field(default_factory=utc_timestamp, alias="createdAt")
    version_number: int = Field(alias="versionNumber")
    semantic_hash: str = Field(alias="semanticHash")
    diff_summary: Optional[str] = Field(default=None, alias="diffSummary")


class WorkingCopy(WireModel):
    workflow_id: str = Field(alias="workflowId")
    graph: Dict[str, Any]
    updated_at: str = Field(default_factory=utc_timestamp, alias="updatedAt")


class ValidationIssue(WireModel):
    code: str
    message: str
    severity: Severity = Severity.ERROR


class CommitResult(WireModel):
    committed: bool
    version_id: Optional[str] = Field(default=None, alias="versionId")
    version_number: Optional[int] = Field(default=None, alias="versionNumber")
    summary: Optional[str] = None
    score: int = 0


class RestoreResult(WireModel):
    restored: str
    workflow: WorkflowRecord
    version: VersionRecord
