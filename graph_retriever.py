#!/usr/bin/env python3
"""
graph_retriever.py - Gardening knowledge graph retriever
Combines entity lookup, plant knowledge queries and constraint relaxation into
facts for answer generation, and exposes graph-based plant recommendations
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from cypher_builder import (
    CypherQuery,
    CypherQueryBuilder,
    alias,
    build_growing_query,
    contains,
    func,
    node,
    param,
    path,
    prop,
    rel,
)
from entity_extractor import GardenEntityExtractor
from fallback_query import QueryRelaxationEngine
from graph_models import EntitySet, FallbackResult, GardenConditions, GraphRecord, QueryParameterSet, ScoredCandidate
from parameter_safety import bind_parameters
from plant_recommender import GraphPlantRecommender

logger = logging.getLogger(__name__)

DEFAULT_MAX_FACTS = 40


def _plant_link_query(
    rel_type: str,
    label: str,
    key: str,
    column: str,
    order_key: Optional[str] = None,
    extra: Sequence[str] = (),
) -> CypherQuery:
    """Things linked from one plant; extra properties are returned under their own names"""
    builder = (
        CypherQueryBuilder()
        .match(path(node("p", "Plant", name=param("plantName")), rel(rel_type), node("t", label)))
        .return_(alias(prop("t", key), column), *(alias(prop("t", name), name) for name in extra))
    )
    if order_key:
        builder.order_by(prop("t", order_key))
    return builder.build()


def _month_query(rel_type: str) -> CypherQuery:
    return (
        CypherQueryBuilder()
        .match(path(node("p", "Plant"), rel(rel_type), node("m", "Month", name=param("monthName"))))
        .return_(alias(prop("p", "name"), "plantName"), alias(prop("p", "type"), "plantType"))
        .order_by("plantName")
        .build()
    )


PLANT_DETAILS_QUERY = (
    CypherQueryBuilder()
    .match(node("p", "Plant", name=param("plantName")))
    .return_(
        alias(prop("p", "name"), "name"),
        alias(prop("p", "type"), "type"),
        alias(prop("p", "description"), "description"),
        alias(prop("p", "growingSeason"), "growingSeason"),
    )
    .build()
)
PLANTING_MONTHS_QUERY = _plant_link_query("PLANT_IN", "Month", "name", "month", order_key="order", extra=["season"])
HARVEST_MONTHS_QUERY = _plant_link_query("HARVEST_IN", "Month", "name", "month", order_key="order", extra=["season"])
SOIL_TYPES_QUERY = _plant_link_query("GROWS_WELL_IN", "SoilType", "name", "soilType", extra=["characteristics"])
COMPANIONS_QUERY = _plant_link_query("COMPANION_TO", "Plant", "name", "companionName", extra=["type"])
ANTAGONISTS_QUERY = _plant_link_query("ANTAGONISTIC_TO", "Plant", "name", "enemyName", extra=["type"])
POLLINATORS_QUERY = _plant_link_query("ATTRACTS", "PollinatorType", "name", "pollinator")
PLANT_IN_MONTH_QUERY = _month_query("PLANT_IN")
HARVEST_IN_MONTH_QUERY = _month_query("HARVEST_IN")

MONTH_SEASON_QUERY = (
    CypherQueryBuilder()
    .match(node("m", "Month", name=param("monthName")))
    .return_(alias(prop("m", "season"), "season"))
    .build()
)

# Plants for a month that grow in one of the county's dominant soils
COUNTY_MONTH_PLANTS_QUERY = (
    CypherQueryBuilder()
    .match(path(
        node("c", "County", name=param("countyName")),
        rel("HAS_DOMINANT_SOIL"),
        node("s", "SoilType"),
        rel("GROWS_WELL_IN", direction="in"),
        node("p", "Plant"),
        rel("PLANT_IN"),
        node(label="Month", name=param("monthName")),
    ))
    .return_(
        alias(prop("p", "name"), "plantName"),
        alias(prop("p", "type"), "plantType"),
        alias(prop("s", "name"), "soilType"),
    )
    .order_by("plantName")
    .build()
)

PLANT_SEARCH_QUERY = (
    CypherQueryBuilder()
    .match(
        node("p", "Plant"),
        where=contains(func("toLower", prop("p", "name")), func("toLower", param("searchTerm"))),
    )
    .return_(
        alias(prop("p", "name"), "name"),
        alias(prop("p", "type"), "type"),
        alias(prop("p", "description"), "description"),
        alias(prop("p", "growingSeason"), "growingSeason"),
        alias(prop("p", "climateZones"), "climateZones"),
    )
    .order_by("name")
    .limit(1)
    .build()
)


def infer_growing_property(question: str, entities: EntitySet) -> str:
    """Which plant property the question is about"""
    text = (question or "").lower()
    if "harvest" in entities.activities:
        return "harvestSeason"
    if "water" in entities.activities:
        return "waterNeeds"
    if "sun" in text or "shade" in text:
        return "sunNeeds"
    if ({"sow", "plant"} & set(entities.activities)) and (entities.seasons or entities.months):
        return "growingSeason"
    return "soilPreference"


def build_initial_parameters(question: str, entities: EntitySet, context: Mapping[str, Any]) -> QueryParameterSet:
    """Caller context wins over entities found in the question"""
    def first(values: List[str]) -> Optional[str]:
        return values[0] if values else None

    plant_type = context.get("plantType")
    if isinstance(plant_type, (list, tuple)):
        plant_type = plant_type[0] if plant_type else None

    return QueryParameterSet(
        county_name=context.get("county") or context.get("countyName") or first(entities.counties),
        plant_type=plant_type or None,
        soil_type=context.get("soilType") or first(entities.soil_types),
        season=context.get("season") or first(entities.seasons),
        growing_property=context.get("growingProperty") or infer_growing_property(question, entities),
    )


def format_record_fact(record: GraphRecord, growing_property: Optional[str]) -> str:
    """One growing-query row as a readable fact"""
    values = record.to_dict()
    name = values.get("plantName") or "Unknown plant"
    parts = [name]
    if values.get("propertyValue") is not None and growing_property:
        parts.append(f"{growing_property}: {values['propertyValue']}")
    if values.get("soilName"):
        parts.append(f"grows well in {values['soilName']} soil")
    if values.get("months"):
        parts.append(f"months: {', '.join(values['months'])}")
    if values.get("description"):
        parts.append(str(values["description"]))
    return " - ".join(parts)


def describe_plant(details: Mapping[str, Any], fallback_name: str) -> Optional[str]:
    """Summary sentence from whichever of type and description are set"""
    name = details.get("name") or fallback_name
    plant_type = details.get("type")
    description = details.get("description")
    if plant_type and description:
        return f"{name} is a {plant_type} that {description}"
    if plant_type:
        return f"{name} is a {plant_type}"
    if description:
        return f"{name}: {description}"
    return None


def format_context_for_llm(facts: List[str], context: Optional[Mapping[str, Any]] = None) -> str:
    context = context or {}
    formatted = "Gardening Assistant Context:\n"
    if facts:
        formatted += "Facts:\n" + "\n".join(facts) + "\n"
    if context.get("county"):
        formatted += f"County: {context['county']}\n"
    if context.get("season"):
        formatted += f"Season: {context['season']}\n"
    if context.get("soilType"):
        formatted += f"Soil Type: {context['soilType']}\n"
    return formatted


@dataclass
class RetrievalResult:
    """Structured output of answer_question"""
    question: str
    entities: EntitySet
    retrieved_facts: List[str] = field(default_factory=list)
    trace: Optional[FallbackResult] = None

    @property
    def has_data(self) -> bool:
        return bool(self.retrieved_facts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "entities": self.entities.to_dict(),
            "retrievedFacts": list(self.retrieved_facts),
            "trace": self.trace.to_dict() if self.trace else None,
        }


class GardenGraphRetriever:
    """Read-only retrieval API over the gardening knowledge graph"""

    def __init__(
        self,
        store,
        max_facts: int = DEFAULT_MAX_FACTS,
        extractor: Optional[GardenEntityExtractor] = None,
        engine: Optional[QueryRelaxationEngine] = None,
        recommender: Optional[GraphPlantRecommender] = None,
    ):
        self.store = store
        self.max_facts = max_facts
        self.extractor = extractor or GardenEntityExtractor(store)
        self.engine = engine or QueryRelaxationEngine(store)
        self.recommender = recommender or GraphPlantRecommender(store)

    @staticmethod
    def _run(session, query: CypherQuery, supplied: Mapping[str, Any]) -> List[GraphRecord]:
        bound = bind_parameters(query, supplied)
        return session.run(query, bound.values)

    def _plant_facts(self, session, plant_name: str) -> List[str]:
        facts = []
        params = {"plantName": plant_name}

        details = self._run(session, PLANT_DETAILS_QUERY, params)
        if not details:
            return facts
        summary = describe_plant(details[0], plant_name)
        if summary:
            facts.append(summary)

        planting = [r.get("month") for r in self._run(session, PLANTING_MONTHS_QUERY, params) if r.get("month")]
        if planting:
            facts.append(f"{plant_name} can be planted in: {', '.join(planting)}")

        harvesting = [r.get("month") for r in self._run(session, HARVEST_MONTHS_QUERY, params) if r.get("month")]
        if harvesting:
            facts.append(f"{plant_name} can be harvested in: {', '.join(harvesting)}")

        soils = [r.get("soilType") for r in self._run(session, SOIL_TYPES_QUERY, params) if r.get("soilType")]
        if soils:
            facts.append(f"{plant_name} grows well in these soil types: {', '.join(soils)}")

        companions = [r.get("companionName") for r in self._run(session, COMPANIONS_QUERY, params)]
        if companions:
            facts.append(f"{plant_name} grows well with these companion plants: {', '.join(companions)}")

        enemies = [r.get("enemyName") for r in self._run(session, ANTAGONISTS_QUERY, params)]
        if enemies:
            facts.append(f"{plant_name} should not be planted with: {', '.join(enemies)}")

        return facts

    def _month_facts(self, session, month: str) -> List[str]:
        facts = []
        params = {"monthName": month}
        to_plant = [r.get("plantName") for r in self._run(session, PLANT_IN_MONTH_QUERY, params)]
        if to_plant:
            facts.append(f"Plants to sow/plant in {month}: {', '.join(to_plant)}")
        to_harvest = [r.get("plantName") for r in self._run(session, HARVEST_IN_MONTH_QUERY, params)]
        if to_harvest:
            facts.append(f"Plants to harvest in {month}: {', '.join(to_harvest)}")
        return facts

    def lookup_facts(self, entities: EntitySet) -> List[str]:
        """Plant and month knowledge for the mentioned entities, in one session"""
        facts: List[str] = []
        if not entities.plants and not entities.months:
            return facts
        with self.store.session() as session:
            for plant_name in entities.plants:
                facts.extend(self._plant_facts(session, plant_name))
            for month in entities.months:
                facts.extend(self._month_facts(session, month))
        return facts

    def answer_question(self, question: str, context: Optional[Mapping[str, Any]] = None) -> RetrievalResult:
        """
        Retrieve facts for a question

        Args:
            question: free-text gardening question
            context: caller context (county, season, soilType, plantType, growingProperty)

        Returns:
            RetrievalResult with entities, facts and the relaxation trace (None when
            neither context nor question constrained the growing query)
        """
        context = context or {}
        entities = self.extractor.extract_entities(question)
        result = RetrievalResult(question=question, entities=entities)
        result.retrieved_facts.extend(self.lookup_facts(entities))

        params = build_initial_parameters(question, entities, context)
        if params.active_constraints():
            trace = self.engine.execute_with_fallback(params, build_growing_query)
            result.trace = trace
            if trace.fallback_used:
                last = trace.attempts[-1]
                result.retrieved_facts.append(f"No exact match for all conditions; {last.description.lower()}")
            result.retrieved_facts.extend(
                format_record_fact(record, trace.params.growing_property) for record in trace.records
            )
        else:
            logger.info("No constraints for the growing query, skipping relaxation")

        result.retrieved_facts = result.retrieved_facts[: self.max_facts]
        logger.info(f"Retrieved {len(result.retrieved_facts)} facts for: {question[:50]}")
        return result

    def recommend_plants(self, conditions: Union[GardenConditions, Mapping[str, Any], None]) -> List[ScoredCandidate]:
        return self.recommender.score_plants(conditions)

    def get_seasonal_recommendations(self, month: str, context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        What to plant and harvest in a month

        Args:
            month: month name as stored in the graph, e.g. "March"
            context: caller context; a county adds plants suited to its dominant soils

        Returns:
            Dict with month, season (None for an unknown month), plantsToPlant,
            plantsToHarvest and countyRecommendations
        """
        context = context or {}
        county = context.get("county") or context.get("countyName")
        params = {"monthName": month}

        with self.store.session() as session:
            to_plant = [r.to_dict() for r in self._run(session, PLANT_IN_MONTH_QUERY, params)]
            to_harvest = [r.to_dict() for r in self._run(session, HARVEST_IN_MONTH_QUERY, params)]
            month_info = self._run(session, MONTH_SEASON_QUERY, params)
            county_plants = []
            if county:
                county_plants = [
                    r.to_dict()
                    for r in self._run(session, COUNTY_MONTH_PLANTS_QUERY, {**params, "countyName": county})
                ]

        season = month_info[0].get("season") if month_info else None
        logger.info(
            f"Seasonal recommendations for {month} ({season}): {len(to_plant)} to plant, "
            f"{len(to_harvest)} to harvest, {len(county_plants)} for {county or 'no county'}"
        )
        return {
            "month": month,
            "season": season,
            "plantsToPlant": to_plant,
            "plantsToHarvest": to_harvest,
            "countyRecommendations": county_plants,
        }

    def get_plant_guide(self, plant_name: str) -> Optional[Dict[str, Any]]:
        """Growing guide for the first plant whose name contains plant_name (case-insensitive), or None"""
        with self.store.session() as session:
            found = self._run(session, PLANT_SEARCH_QUERY, {"searchTerm": plant_name})
            if not found:
                logger.info(f"No plant found matching {plant_name!r}")
                return None

            plant = found[0].to_dict()
            params = {"plantName": plant["name"]}
            planting = self._run(session, PLANTING_MONTHS_QUERY, params)
            harvesting = self._run(session, HARVEST_MONTHS_QUERY, params)
            soils = self._run(session, SOIL_TYPES_QUERY, params)
            companions = self._run(session, COMPANIONS_QUERY, params)
            enemies = self._run(session, ANTAGONISTS_QUERY, params)
            pollinators = self._run(session, POLLINATORS_QUERY, params)

        return {
            "plant": plant,
            "plantingMonths": [{"month": r.get("month"), "season": r.get("season")} for r in planting],
            "harvestMonths": [{"month": r.get("month"), "season": r.get("season")} for r in harvesting],
            "soils": [{"soilType": r.get("soilType"), "characteristics": r.get("characteristics")} for r in soils],
            "companions": [{"name": r.get("companionName"), "type": r.get("type")} for r in companions],
            "plantsToAvoid": [{"name": r.get("enemyName"), "type": r.get("type")} for r in enemies],
            "pollinators": [r.get("pollinator") for r in pollinators if r.get("pollinator")],
        }


class GardenGraphRAG:
    """End-to-end question answering: retrieval, then answer generation"""

    def __init__(self, store, generator, retriever: Optional[GardenGraphRetriever] = None, text2cypher=None):
        self.store = store
        self.generator = generator
        self.retriever = retriever or GardenGraphRetriever(store)
        self.text2cypher = text2cypher

    @classmethod
    def from_config(cls, app_config) -> "GardenGraphRAG":
        from graph_store import GardenGraphStore
        from llm_chain import GardenResponseGenerator
        from text2cypher import GardenText2Cypher

        store = GardenGraphStore.from_config(app_config.neo4j)
        generator = GardenResponseGenerator(
            openai_api_key=app_config.openai.api_key,
            model=app_config.openai.model,
            temperature=app_config.openai.temperature,
            max_tokens=app_config.openai.max_tokens,
        )
        retriever = GardenGraphRetriever(
            store,
            max_facts=app_config.retrieval.max_facts,
            recommender=GraphPlantRecommender(
                store,
                limit=app_config.retrieval.recommendation_limit,
                score_ceiling=app_config.retrieval.match_score_ceiling,
                default_county=app_config.retrieval.default_county,
                default_sun_exposure=app_config.retrieval.default_sun_exposure,
            ),
        )
        text2cypher = GardenText2Cypher(
            store, openai_api_key=app_config.openai.api_key, model=app_config.openai.cypher_model
        )
        return cls(store, generator, retriever=retriever, text2cypher=text2cypher)

    def ask(self, question: str, context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Answer with graph facts; retrieval errors propagate, generation errors degrade"""
        context = context or {}
        retrieval = self.retriever.answer_question(question, context)
        prompt_context = format_context_for_llm(retrieval.retrieved_facts, context)
        generated = self.generator.generate_answer(question, prompt_context, has_data=retrieval.has_data)
        return {
            "answer": generated["answer"],
            "fallback": generated["fallback"],
            "sourceFacts": retrieval.retrieved_facts,
            "entities": retrieval.entities.to_dict(),
            "trace": retrieval.trace.to_dict() if retrieval.trace else None,
        }

    def ask_with_generated_query(self, question: str, context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Answer using an LLM-generated Cypher query instead of the fixed retrieval path"""
        if self.text2cypher is None:
            raise ValueError("No text2cypher component configured")
        context = context or {}
        result = self.text2cypher.process_question(question, context)
        if not result["is_gardening_topic"]:
            return {"answer": result["answer"], "fallback": False, "sourceFacts": [], "cypherQuery": None}

        facts = [
            ", ".join(f"{k}: {v.get('name') if isinstance(v, dict) else v}" for k, v in record.to_dict().items())
            for record in result["records"][:5]
        ]
        prompt_context = format_context_for_llm(facts, context)
        generated = self.generator.generate_answer(question, prompt_context, has_data=bool(facts))
        return {
            "answer": generated["answer"],
            "fallback": generated["fallback"],
            "sourceFacts": facts,
            "cypherQuery": result["cypher_query"],
            "substituted": result["substituted"],
        }

    def recommend_plants(self, conditions) -> List[Dict[str, Any]]:
        return [candidate.to_dict() for candidate in self.retriever.recommend_plants(conditions)]

    def seasonal_recommendations(self, month: str, context: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Seasonal recommendations plus a short generated tip (None if generation fails)"""
        context = context or {}
        result = self.retriever.get_seasonal_recommendations(month, context)

        lines = [
            f"- Month: {month}",
            f"- Season: {result['season'] or 'unknown'}",
            f"- Plants to sow/plant: {', '.join(p['plantName'] for p in result['plantsToPlant'])}",
            f"- Plants to harvest: {', '.join(p['plantName'] for p in result['plantsToHarvest'])}",
        ]
        if context.get("county"):
            lines.append(f"- County: {context['county']}")
        prompt = (
            f"Give a short, practical gardening tip for Irish gardeners during {month} "
            f"that is 2-3 sentences long.\n\nContext:\n" + "\n".join(lines) + "\n\nGardening Tip:"
        )

        try:
            result["seasonalTip"] = self.generator.generate(prompt, max_tokens=200)
        except Exception as e:
            logger.error(f"Seasonal tip generation failed: {e}")
            result["seasonalTip"] = None
        return result

    def plant_guide(self, plant_name: str) -> Optional[Dict[str, Any]]:
        return self.retriever.get_plant_guide(plant_name)

    def close(self):
        self.store.close()


def main():
    """Example usage of the gardening retrieval pipeline"""
    from config import config

    logging.basicConfig(level=config.retrieval.log_level)
    ok, errors = config.validate()
    if not ok:
        raise ValueError(f"Invalid configuration: {errors}")

    rag = GardenGraphRAG.from_config(config)
    questions = [
        ("What can I plant in Cork in March?", {}),
        ("When do I harvest potatoes?", {"county": "Galway"}),
        ("What vegetables grow in clay soil in winter?", {"county": "Sligo", "plantType": "Vegetable"}),
    ]

    try:
        for question, context in questions:
            print(f"\n{'='*60}")
            print(f"Question: {question}")
            print('='*60)
            result = rag.ask(question, context)
            print(f"Facts ({len(result['sourceFacts'])}):")
            for fact in result["sourceFacts"][:5]:
                print(f"  - {fact}")
            if result["trace"]:
                print(f"Fallback used: {result['trace']['fallbackUsed']} "
                      f"after {len(result['trace']['fallbackAttempts'])} attempts")
            print(f"\nAnswer: {result['answer']}")

        print(f"\n{'='*60}")
        print("Recommendations for Kerry, Partial Shade")
        for plant in rag.recommend_plants({"county": "Kerry", "sunExposure": "Partial Shade"}):
            print(f"  {plant['name']}: {plant['score']} ({plant['matchPercentage']}%)")
    finally:
        rag.close()


if __name__ == "__main__":
    main()
