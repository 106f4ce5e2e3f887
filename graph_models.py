#!/usr/bin/env python3
"""
graph_models.py - Request-scoped data model for gardening graph retrieval

Graph records are a tagged union: known node shapes become GraphEntity, edges
become GraphRelationship, anything else (scalars, maps, lists) is kept as raw
values.
"""

from dataclasses import dataclass, field, replace, asdict
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple


class NodeLabel(Enum):
    """Node types in the gardening knowledge graph"""
    PLANT = "Plant"
    COUNTY = "County"
    SOIL_TYPE = "SoilType"
    GROWING_CONDITION = "GrowingCondition"
    SEASON = "Season"
    MONTH = "Month"
    POLLINATOR_TYPE = "PollinatorType"


class RelationshipType(Enum):
    """Relationship types between gardening entities"""
    GROWS_WELL_IN = "GROWS_WELL_IN"
    SUITABLE_FOR = "SUITABLE_FOR"
    COMPANION_TO = "COMPANION_TO"
    ANTAGONISTIC_TO = "ANTAGONISTIC_TO"
    ATTRACTS = "ATTRACTS"
    PLANT_IN = "PLANT_IN"
    HARVEST_IN = "HARVEST_IN"
    HAS_DOMINANT_SOIL = "HAS_DOMINANT_SOIL"


KNOWN_LABELS = {label.value for label in NodeLabel}


@dataclass(frozen=True)
class GraphEntity:
    """A typed node from the graph store"""
    label: str
    name: str
    properties: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_node(cls, labels, properties: Mapping[str, Any]) -> "GraphEntity":
        labels = list(labels or [])
        # Prefer a label the gardening schema knows about
        label = next((l for l in labels if l in KNOWN_LABELS), labels[0] if labels else "Unknown")
        props = dict(properties)
        name = props.get("name") or props.get("type") or ""
        return cls(label=label, name=name, properties=props)

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "name": self.name, **dict(self.properties)}


@dataclass(frozen=True)
class GraphRelationship:
    """A typed, directed edge between two entities"""
    rel_type: str
    source_name: str
    target_name: str
    properties: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.rel_type,
            "source": self.source_name,
            "target": self.target_name,
            **dict(self.properties),
        }


@dataclass(frozen=True)
class GraphRecord:
    """One result row; values are GraphEntity, GraphRelationship or raw values"""
    values: Mapping[str, Any]

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def keys(self) -> List[str]:
        return list(self.values.keys())

    def entities(self) -> List[GraphEntity]:
        return [v for v in self.values.values() if isinstance(v, GraphEntity)]

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict suitable for JSON or prompt building"""
        plain = {}
        for key, value in self.values.items():
            if isinstance(value, (GraphEntity, GraphRelationship)):
                plain[key] = value.to_dict()
            else:
                plain[key] = value
        return plain


# Parameters the relaxation strategies may drop; growing_property is the output
# selector and is never relaxed.
FILTERABLE_PARAMETERS: Tuple[str, ...] = ("county_name", "plant_type", "soil_type", "season")

_CYPHER_NAMES = {
    "county_name": "countyName",
    "plant_type": "plantType",
    "soil_type": "soilType",
    "season": "season",
    "growing_property": "growingProperty",
}


@dataclass(frozen=True)
class QueryParameterSet:
    """Query constraints; None means unconstrained"""
    county_name: Optional[str] = None
    plant_type: Optional[str] = None
    soil_type: Optional[str] = None
    season: Optional[str] = None
    growing_property: Optional[str] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "QueryParameterSet":
        """Accept either snake_case or the camelCase names used in queries"""
        reverse = {v: k for k, v in _CYPHER_NAMES.items()}
        kwargs = {}
        for key, value in values.items():
            attr = reverse.get(key, key)
            if attr in _CYPHER_NAMES:
                kwargs[attr] = value
        return cls(**kwargs)

    def without(self, *names: str) -> "QueryParameterSet":
        return replace(self, **{name: None for name in names})

    def active_constraints(self) -> FrozenSet[str]:
        """Filterable parameters that currently carry a value"""
        return frozenset(name for name in FILTERABLE_PARAMETERS if getattr(self, name) is not None)

    def to_cypher_params(self) -> Dict[str, Any]:
        """Non-null values keyed by their query parameter names"""
        return {
            cypher_name: getattr(self, attr)
            for attr, cypher_name in _CYPHER_NAMES.items()
            if getattr(self, attr) is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FallbackAttempt:
    """One executed query in a relaxation sequence"""
    attempt: int
    params: QueryParameterSet
    result_count: int
    query: str
    description: Optional[str] = None


@dataclass
class FallbackResult:
    """Outcome of executeWithFallback, including the full attempt trace"""
    success: bool
    records: List[GraphRecord]
    query: str
    params: QueryParameterSet
    original_params: QueryParameterSet
    fallback_used: bool
    attempts: List[FallbackAttempt]

    @property
    def trace(self) -> List[FallbackAttempt]:
        return self.attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "records": [r.to_dict() for r in self.records],
            "query": self.query,
            "currentParams": self.params.to_dict(),
            "originalParams": self.original_params.to_dict(),
            "fallbackUsed": self.fallback_used,
            "fallbackAttempts": [
                {
                    "attempt": a.attempt,
                    "params": a.params.to_dict(),
                    "resultCount": a.result_count,
                    "description": a.description,
                    "query": a.query,
                }
                for a in self.attempts
            ],
        }


@dataclass
class EntitySet:
    """Known graph terms mentioned in a question"""
    plants: List[str] = field(default_factory=list)
    soil_types: List[str] = field(default_factory=list)
    counties: List[str] = field(default_factory=list)
    seasons: List[str] = field(default_factory=list)
    months: List[str] = field(default_factory=list)
    activities: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(asdict(self).values())

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)


@dataclass
class GardenConditions:
    """Garden conditions for plant recommendation"""
    county: Optional[str] = None
    sun_exposure: Optional[str] = None
    plant_type: List[str] = field(default_factory=list)
    native_only: bool = False


@dataclass(frozen=True)
class PlantRelationship:
    """Companion or antagonist link from a recommended plant"""
    rel_type: str
    plant_name: str
    notes: Optional[str] = None


@dataclass
class ScoredCandidate:
    """A ranked plant recommendation"""
    plant: GraphEntity
    score: int
    match_percentage: int
    pollinators: List[str] = field(default_factory=list)
    relationships: List[PlantRelationship] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.plant.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.plant.to_dict(),
            "score": self.score,
            "matchPercentage": self.match_percentage,
            "pollinators": list(self.pollinators),
            "pollinatorCount": len(self.pollinators),
            "plantRelationships": [
                {"type": r.rel_type, "plantName": r.plant_name, "notes": r.notes}
                for r in self.relationships
            ],
        }
