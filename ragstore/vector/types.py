"""
Record, result and cluster types shared by the vector backends.
"""

from typing import Any, Dict, List, Mapping, Optional, Union
import numpy as np
from dataclasses import dataclass, field

from ..core.exceptions import InvalidFilterError

# Well-known optional metadata keys; any other key is an open extension.
WELL_KNOWN_FIELDS = ("source", "userId", "timestamp", "type")

Scalar = Union[str, int, float, bool, None]


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Unique identifier, assigned at insert time and never changed"""

    vector: np.ndarray
    """The vector representation of the content"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Source text, provenance and free-form tags"""

    @property
    def text(self) -> str:
        return self.metadata.get("text") or self.metadata.get("originalText") or ""

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot form: {id, values, metadata}."""
        return {
            "id": self.id,
            "values": [float(v) for v in self.vector],
            "metadata": dict(self.metadata),
        }

    def copy(self) -> "VectorRecord":
        return VectorRecord(id=self.id, vector=self.vector.copy(), metadata=dict(self.metadata))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VectorRecord":
        values = data.get("values", data.get("vector", []))
        return cls(
            id=str(data["id"]),
            vector=np.asarray(values, dtype=np.float64),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class QueryResult:
    """Represents a search result from vector store."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match, in [-1, 1]"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Metadata associated with the matched record"""

    text: str = ""
    """Source text of the matched record"""

    lexical_score: float = 0.0
    """Fraction of query tokens found in the text (set by reranking)"""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": float(self.score),
            "text": self.text,
            "metadata": dict(self.metadata),
            "semanticRelevance": float(self.lexical_score),
            "vectorScore": float(self.score),
        }


@dataclass
class Cluster:
    """Derived grouping of records; always recomputable from the store."""

    label: Union[int, str]
    centroid: np.ndarray
    members: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "centroid": [float(v) for v in self.centroid],
            "members": list(self.members),
            "size": len(self.members),
        }


def validate_filters(filters: Optional[Mapping[str, Any]]) -> Dict[str, Scalar]:
    """Check a metadata filter and return it as a plain dict.

    Raises:
        InvalidFilterError: filters is not a mapping, has a non-string key,
            or a non-scalar value.
    """
    if filters is None:
        return {}
    if not isinstance(filters, Mapping):
        raise InvalidFilterError(f"filters must be a mapping, got {type(filters).__name__}")

    checked = {}
    for key, value in filters.items():
        if not isinstance(key, str):
            raise InvalidFilterError(f"filter keys must be strings, got {key!r}")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise InvalidFilterError(f"filter value for '{key}' must be a scalar")
        checked[key] = value
    return checked


def matches_filters(metadata: Mapping[str, Any], filters: Mapping[str, Scalar]) -> bool:
    """Exact equality on every filter key; booleans never match numbers."""
    for key, value in filters.items():
        if key not in metadata:
            return False
        stored = metadata[key]
        if isinstance(stored, bool) != isinstance(value, bool) or stored != value:
            return False
    return True


def build_metadata(text: str, source: Optional[str] = None, user_id: Optional[str] = None,
                   doc_type: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Build a metadata mapping with the well-known fields set where given."""
    metadata: Dict[str, Any] = {"text": text}
    if source is not None:
        metadata["source"] = source
    if user_id is not None:
        metadata["userId"] = user_id
    if doc_type is not None:
        metadata["type"] = doc_type
    metadata.update(extra)
    return metadata
