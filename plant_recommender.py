#!/usr/bin/env python3
"""
plant_recommender.py - Graph-based plant recommendations for Irish gardens

Candidates are plants growing well in a county's dominant soils whose sun needs
contain the requested exposure, optionally restricted to native plants and to
plant-type categories. Each candidate is scored:

    score = (native ? 10 : 0) + (sunNeeds == sunExposure ? 25 : 15) + 30 + rating * 3

and the top results are returned with pollinator and companion/antagonist data.
"""

import logging
import math
from typing import Any, Dict, List, Mapping, Sequence, Union

from cypher_builder import (
    CypherQuery,
    CypherQueryBuilder,
    alias,
    any_of,
    all_of,
    contains,
    desc,
    eq,
    func,
    is_in,
    is_not_null,
    literal,
    map_of,
    node,
    param,
    path,
    prop,
    rel,
)
from graph_models import GardenConditions, GraphEntity, GraphRecord, NodeLabel, PlantRelationship, ScoredCandidate
from parameter_safety import ParameterSafeExecutor

logger = logging.getLogger(__name__)

DEFAULT_COUNTY = "Dublin"
DEFAULT_SUN_EXPOSURE = "Full Sun"
RECOMMENDATION_LIMIT = 8
MATCH_SCORE_CEILING = 80

RELATED_PLANT_TYPES = ("COMPANION_TO", "ANTAGONISTIC_TO")


def score_candidate(plant: Mapping[str, Any], sun_exposure: str) -> int:
    """Suitability score for one plant; a missing sustainability rating counts as 0"""
    native_bonus = 10 if plant.get("nativeToIreland") is True else 0
    sun_bonus = 25 if plant.get("sunNeeds") == sun_exposure else 15
    rating = plant.get("sustainabilityRating") or 0
    return native_bonus + sun_bonus + 30 + int(rating) * 3


def match_percentage(score: float, ceiling: int = MATCH_SCORE_CEILING) -> int:
    """Score as a percentage of the ceiling, rounded half up and clamped to 0..100"""
    percentage = math.floor(score / ceiling * 100 + 0.5)
    return max(0, min(100, percentage))


def normalize_conditions(
    conditions: Union[GardenConditions, Mapping[str, Any], None],
    default_county: str = DEFAULT_COUNTY,
    default_sun_exposure: str = DEFAULT_SUN_EXPOSURE,
) -> GardenConditions:
    """Fill in safe defaults for missing or malformed garden conditions"""
    if conditions is None:
        conditions = {}
    if isinstance(conditions, GardenConditions):
        county = conditions.county
        sun_exposure = conditions.sun_exposure
        plant_type = conditions.plant_type
        native_only = conditions.native_only
    else:
        county = conditions.get("county")
        sun_exposure = conditions.get("sunExposure", conditions.get("sun_exposure"))
        plant_type = conditions.get("plantType", conditions.get("plant_type"))
        native_only = conditions.get("nativeOnly", conditions.get("native_only"))

    if not county:
        logger.info(f"[Recommender] No county given, using {default_county}")
        county = default_county
    if not sun_exposure:
        logger.info(f"[Recommender] No sun exposure given, using {default_sun_exposure}")
        sun_exposure = default_sun_exposure

    return GardenConditions(
        county=county,
        sun_exposure=sun_exposure,
        plant_type=[str(t).lower() for t in plant_type] if isinstance(plant_type, (list, tuple)) else [],
        native_only=bool(native_only),
    )


def build_recommendation_query(conditions: GardenConditions) -> CypherQuery:
    """Candidate plants for the conditions with pollinators and plant relationships"""
    filters = [contains(prop("plant", "sunNeeds"), param("sunExposure"))]

    if conditions.native_only:
        filters.append(eq(prop("plant", "nativeToIreland"), literal(True)))

    categories = set(conditions.plant_type)
    type_filters = []
    if categories & {"vegetable", "fruit"}:
        type_filters.append(is_not_null(prop("plant", "harvestSeason")))
    if "flower" in categories:
        type_filters.append(is_not_null(prop("plant", "floweringSeason")))
    if "tree" in categories:
        type_filters.append(all_of(
            eq(prop("plant", "isPerennial"), literal(True)),
            contains(prop("plant", "name"), literal("Tree")),
        ))
    if type_filters:
        filters.append(any_of(*type_filters))

    return (
        CypherQueryBuilder()
        .match(path(
            node("county", NodeLabel.COUNTY.value, name=param("county")),
            rel("HAS_DOMINANT_SOIL"),
            node("soil", NodeLabel.SOIL_TYPE.value),
        ))
        .match(path(node("plant", NodeLabel.PLANT.value), rel("GROWS_WELL_IN"), node("soil")), where=filters)
        .optional_match(path(node("plant"), rel("ATTRACTS"), node("pollinator", NodeLabel.POLLINATOR_TYPE.value)))
        .optional_match(path(node("plant"), rel(*RELATED_PLANT_TYPES, variable="r"), node("otherPlant")))
        .return_(
            "plant",
            alias(func("collect", prop("pollinator", "name"), distinct=True), "pollinators"),
            alias(
                func(
                    "collect",
                    map_of(type=func("type", "r"), plantName=prop("otherPlant", "name"), notes=prop("r", "notes")),
                    distinct=True,
                ),
                "plantRelationships",
            ),
        )
        .build()
    )


def _as_entity(value: Any) -> GraphEntity:
    if isinstance(value, GraphEntity):
        return value
    return GraphEntity.from_node([NodeLabel.PLANT.value], dict(value or {}))


class GraphPlantRecommender:
    """Ranks plant candidates from the graph against garden conditions"""

    def __init__(
        self,
        store,
        limit: int = RECOMMENDATION_LIMIT,
        score_ceiling: int = MATCH_SCORE_CEILING,
        default_county: str = DEFAULT_COUNTY,
        default_sun_exposure: str = DEFAULT_SUN_EXPOSURE,
    ):
        if limit <= 0:
            raise ValueError(f"Recommendation limit must be positive, got {limit}")
        if score_ceiling <= 0:
            raise ValueError(f"Match score ceiling must be positive, got {score_ceiling}")
        if limit > RECOMMENDATION_LIMIT:
            logger.warning(f"[Recommender] Limit {limit} capped at {RECOMMENDATION_LIMIT}")

        self.store = store
        self.limit = min(limit, RECOMMENDATION_LIMIT)
        self.score_ceiling = score_ceiling
        self.default_county = default_county
        self.default_sun_exposure = default_sun_exposure
        self.executor = ParameterSafeExecutor(store)

    def _to_candidate(self, record: GraphRecord, sun_exposure: str) -> ScoredCandidate:
        plant = _as_entity(record.get("plant"))
        score = score_candidate(plant.properties, sun_exposure)
        pollinators = sorted({p for p in record.get("pollinators") or [] if p is not None})
        relationships = [
            PlantRelationship(rel_type=r.get("type"), plant_name=r.get("plantName"), notes=r.get("notes"))
            for r in record.get("plantRelationships") or []
            if r and r.get("type") is not None
        ]
        return ScoredCandidate(
            plant=plant,
            score=score,
            match_percentage=match_percentage(score, self.score_ceiling),
            pollinators=pollinators,
            relationships=relationships,
        )

    def score_plants(self, conditions: Union[GardenConditions, Mapping[str, Any], None]) -> List[ScoredCandidate]:
        """
        Top-ranked plants for the garden conditions.

        Args:
            conditions: county, sun exposure, plant type categories, native-only flag

        Returns:
            At most `limit` (never more than 8) ScoredCandidates, by score descending then name
        """
        safe = normalize_conditions(conditions, self.default_county, self.default_sun_exposure)
        query = build_recommendation_query(safe)
        execution = self.executor.execute(query, {"county": safe.county, "sunExposure": safe.sun_exposure})

        if execution.substituted:
            logger.warning("[Recommender] Ranking substitute query results")

        candidates = [
            self._to_candidate(record, safe.sun_exposure)
            for record in execution.records
            if record.get("plant") is not None
        ]
        candidates.sort(key=lambda c: (-c.score, c.name))
        ranked = candidates[: self.limit]
        logger.info(
            f"[Recommender] {len(candidates)} candidates for {safe.county} / {safe.sun_exposure}, "
            f"returning {len(ranked)}"
        )
        return ranked

    def get_related_plants(self, plant_name: str, relationship_type: str = "COMPANION_TO") -> List[GraphEntity]:
        """Plants a given plant is a companion or antagonist to"""
        if relationship_type not in RELATED_PLANT_TYPES:
            raise ValueError(f"Unsupported relationship type: {relationship_type}")

        query = (
            CypherQueryBuilder()
            .match(path(
                node("plant", NodeLabel.PLANT.value, name=param("plantName")),
                rel(relationship_type),
                node("related", NodeLabel.PLANT.value),
            ))
            .return_("related")
            .order_by(prop("related", "name"))
            .build()
        )
        records = self.store.run(query, {"plantName": plant_name})
        return [_as_entity(r.get("related")) for r in records]

    def get_plants_for_pollinators(self, pollinator_types: Sequence[str]) -> List[Dict[str, Any]]:
        """Plants attracting any of the pollinators, most pollinators first"""
        if not pollinator_types:
            return []

        query = (
            CypherQueryBuilder()
            .match(
                path(node("plant", NodeLabel.PLANT.value), rel("ATTRACTS"), node("pollinator", NodeLabel.POLLINATOR_TYPE.value)),
                where=is_in(prop("pollinator", "name"), param("pollinatorTypes")),
            )
            .return_("plant", alias(func("collect", prop("pollinator", "name"), distinct=True), "attractedPollinators"))
            .order_by(desc(func("size", "attractedPollinators")), prop("plant", "name"))
            .build()
        )
        records = self.store.run(query, {"pollinatorTypes": list(pollinator_types)})
        return [
            {**_as_entity(r.get("plant")).to_dict(), "pollinators": list(r.get("attractedPollinators") or [])}
            for r in records
        ]
