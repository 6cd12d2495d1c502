"""Data models for bias-aware code analysis."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ImportType(str, Enum):
    DEFAULT = "default"
    NAMED = "named"
    NAMESPACE = "namespace"
    DYNAMIC = "dynamic"


class ExportType(str, Enum):
    DEFAULT = "default"
    NAMED = "named"
    NAMESPACE = "namespace"


class CallType(str, Enum):
    DIRECT = "direct"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    ASYNC = "async"


class InheritanceType(str, Enum):
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    MIXIN = "mixin"


class DependencyType(str, Enum):
    NPM = "npm"  # any third-party package registry
    LOCAL = "local"
    BUILTIN = "builtin"


class RelationshipType(str, Enum):
    """Edge types stored in the relationship graph."""

    IMPORTS = "imports"
    EXPORTS = "exports"
    CALLS = "calls"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    USES = "uses"
    DEPENDS_ON = "depends_on"


@dataclass
class ImportRelation:
    """A file importing symbols from another file or module."""

    from_: str
    to: str
    symbols: List[str]
    import_type: ImportType
    line_number: int
    statement: str = ""


@dataclass
class ExportRelation:
    """A symbol exported by a file."""

    from_: str
    symbol: str
    export_type: ExportType
    line_number: int
    statement: str = ""


@dataclass
class CallRelation:
    """A function or method call made from within a file."""

    from_: str
    to: str
    call_type: CallType
    line_number: int
    object: Optional[str] = None
    context: str = "global"  # enclosing function/method name


@dataclass
class InheritanceRelation:
    """A class extending, implementing or mixing in another type."""

    from_: str  # child class
    to: str  # parent class/interface
    type: InheritanceType
    line_number: int


@dataclass
class DependencyRelation:
    """A file depending on a package, standard library module or local file."""

    from_: str
    to: str
    dependency_type: DependencyType
    usage: List[str] = field(default_factory=list)


@dataclass
class CodeRelationships:
    """All relationships extracted from a single file."""

    file_path: str
    imports: List[ImportRelation] = field(default_factory=list)
    exports: List[ExportRelation] = field(default_factory=list)
    function_calls: List[CallRelation] = field(default_factory=list)
    class_inheritance: List[InheritanceRelation] = field(default_factory=list)
    dependencies: List[DependencyRelation] = field(default_factory=list)
    last_analyzed: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def count(self) -> int:
        return (
            len(self.imports)
            + len(self.exports)
            + len(self.function_calls)
            + len(self.class_inheritance)
            + len(self.dependencies)
        )

    def to_dict(self) -> Dict[str, Any]:
        data = _enum_values(asdict(self))
        data["last_analyzed"] = self.last_analyzed.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeRelationships":
        last_analyzed = data.get("last_analyzed")
        return cls(
            file_path=data["file_path"],
            last_analyzed=(
                datetime.fromisoformat(last_analyzed)
                if last_analyzed
                else datetime.now(timezone.utc)
            ),
            imports=[
                ImportRelation(**{**item, "import_type": ImportType(item["import_type"])})
                for item in data.get("imports", [])
            ],
            exports=[
                ExportRelation(**{**item, "export_type": ExportType(item["export_type"])})
                for item in data.get("exports", [])
            ],
            function_calls=[
                CallRelation(**{**item, "call_type": CallType(item["call_type"])})
                for item in data.get("function_calls", [])
            ],
            class_inheritance=[
                InheritanceRelation(**{**item, "type": InheritanceType(item["type"])})
                for item in data.get("class_inheritance", [])
            ],
            dependencies=[
                DependencyRelation(
                    **{**item, "dependency_type": DependencyType(item["dependency_type"])}
                )
                for item in data.get("dependencies", [])
            ],
        )


@dataclass
class TextualFeatures:
    """Surface text of a file: the signals a naive retriever leans on."""

    docstrings: List[str] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)
    identifier_names: List[str] = field(default_factory=list)
    variable_names: List[str] = field(default_factory=list)


@dataclass
class StructuralFeatures:
    """Shape of a file independent of its naming and documentation."""

    ast_nodes: int = 0
    complexity: int = 1
    nesting_depth: int = 0
    function_count: int = 0
    class_count: int = 0


@dataclass
class SemanticFeatures:
    embedding: List[float] = field(default_factory=list)
    functional_signature: str = ""
    behavior_pattern: str = ""


@dataclass
class CodeRepresentation:
    """Everything known about one source file, keyed by its path."""

    file_path: str
    content: str
    textual_features: TextualFeatures = field(default_factory=TextualFeatures)
    structural_features: StructuralFeatures = field(default_factory=StructuralFeatures)
    semantic_features: SemanticFeatures = field(default_factory=SemanticFeatures)
    relationships: Optional[CodeRelationships] = None
    bias_score: float = 0.0
    augmented_embedding: List[float] = field(default_factory=list)
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    language: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "content": self.content,
            "language": self.language,
            "textual_features": asdict(self.textual_features),
            "structural_features": asdict(self.structural_features),
            "semantic_features": asdict(self.semantic_features),
            "relationships": self.relationships.to_dict() if self.relationships else None,
            "bias_score": self.bias_score,
            "augmented_embedding": list(self.augmented_embedding),
            "last_modified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeRepresentation":
        relationships = data.get("relationships")
        last_modified = data.get("last_modified")
        return cls(
            file_path=data["file_path"],
            content=data.get("content", ""),
            language=data.get("language", "unknown"),
            textual_features=TextualFeatures(**data.get("textual_features", {})),
            structural_features=StructuralFeatures(**data.get("structural_features", {})),
            semantic_features=SemanticFeatures(**data.get("semantic_features", {})),
            relationships=CodeRelationships.from_dict(relationships) if relationships else None,
            bias_score=float(data.get("bias_score", 0.0)),
            augmented_embedding=list(data.get("augmented_embedding", [])),
            last_modified=(
                datetime.fromisoformat(last_modified)
                if last_modified
                else datetime.now(timezone.utc)
            ),
        )


@dataclass
class CodeRegion:
    """A contiguous block of lines judged relevant to a query."""

    start_line: int
    end_line: int
    relevance_score: float
    snippet: str


@dataclass
class BiasIndicator:
    type: str  # docstring_dependency, identifier_name_bias, comment_over_reliance
    severity: float
    location: CodeRegion
    description: str


@dataclass
class RelatedComponent:
    """A node reached from a file by relationship traversal."""

    file_path: str
    component_name: str
    component_type: str  # file, class, function, interface, module
    relationship_type: str
    relationship_description: str
    relevance_score: float
    distance: int


@dataclass
class GraphNode:
    id: str
    label: str
    type: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    from_: str
    to: str
    type: str
    weight: float
    label: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RelationshipGraph:
    """Snapshot of the graph around a file, built at query time."""

    nodes: List[GraphNode]
    edges: List[GraphEdge]
    primary_node: str
    max_depth: int


@dataclass
class TraversalStats:
    nodes_visited: int = 0
    edges_traversed: int = 0
    max_depth_reached: int = 0
    processing_time: float = 0.0  # milliseconds


@dataclass
class GraphTraversalResult:
    start_node: str
    related_components: List[RelatedComponent]
    relationship_graph: RelationshipGraph
    traversal_stats: TraversalStats


@dataclass
class ContextExplanation:
    primary_file: str
    context_summary: str
    key_relationships: List[Dict[str, str]]
    dependency_chain: List[str]
    suggested_files: List[str]


@dataclass
class RetrievalResult:
    code_snippet: CodeRepresentation
    original_score: float  # textual similarity
    semantic_score: float
    bias_adjusted_score: float
    localization_regions: List[CodeRegion]
    explanation: str


@dataclass
class EnhancedRetrievalResult(RetrievalResult):
    related_components: List[RelatedComponent] = field(default_factory=list)
    relationship_graph: Optional[RelationshipGraph] = None
    context_explanation: Optional[ContextExplanation] = None
    dependency_chain: List[str] = field(default_factory=list)


@dataclass
class ProcessingStats:
    files_processed: int = 0
    total_files: int = 0
    bias_detected: int = 0
    average_bias_score: float = 0.0
    processing_time: float = 0.0  # milliseconds
    failed_files: List[str] = field(default_factory=list)


def to_jsonable(obj: Any) -> Any:
    """Convert dataclasses (and nested enums/datetimes) into JSON-friendly values."""
    if isinstance(obj, CodeRepresentation):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return {
            key.rstrip("_"): to_jsonable(getattr(obj, key)) for key in obj.__dataclass_fields__
        }
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {key: to_jsonable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    return obj


def _enum_values(data: Any) -> Any:
    if isinstance(data, Enum):
        return data.value
    if isinstance(data, dict):
        return {key: _enum_values(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_enum_values(item) for item in data]
    return data
