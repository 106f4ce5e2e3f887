#!/usr/bin/env python3
"""
text2cypher.py - LLM-generated Cypher for gardening questions

Checks that a question is about gardening, asks the LLM for a Cypher query
against the gardening schema, cleans the output and runs it through the
parameter safety layer. Anything that is not a read query is replaced by a
query that returns no rows.
"""

import os
import re
import logging
from typing import Any, Dict, Mapping, Optional, Tuple
from langchain_openai import ChatOpenAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser
from langchain_community.callbacks.manager import get_openai_callback

from cypher_builder import CypherQuery
from graph_errors import MalformedQueryError, MissingParameterError
from parameter_safety import ParameterSafeExecutor

logger = logging.getLogger(__name__)

NO_RESULTS_QUERY = "MATCH (n:Plant) WHERE n.name = 'NO_RESULTS' RETURN n LIMIT 0"

OFF_TOPIC_ANSWER = (
    "I'm your gardening assistant. I can only help with gardening-related questions. "
    "Please ask me something about plants, gardening, or sustainable garden practices."
)

_READ_START = re.compile(r"^(MATCH|OPTIONAL\s+MATCH|WITH|UNWIND|CALL|RETURN)\b", re.IGNORECASE)
_WRITE_CLAUSE = re.compile(r"\b(CREATE|MERGE|DELETE|DETACH|SET|REMOVE|DROP|LOAD\s+CSV)\b", re.IGNORECASE)
_STRING_LITERAL = re.compile(r"'(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\"")

SCHEMA_DESCRIPTION = """NODE LABELS: Plant, County, SoilType, GrowingCondition, Season, Month, PollinatorType
PLANT PROPERTIES: name, type, latinName, description, sunNeeds, waterNeeds, soilPreference,
  nativeToIreland, isPerennial, harvestSeason, floweringSeason, growingSeason, sustainabilityRating, biodiversityValue
RELATIONSHIPS:
- (Plant)-[:GROWS_WELL_IN]->(SoilType)
- (Plant)-[:SUITABLE_FOR]->(GrowingCondition)-[:SUITABLE_FOR]->(County)
- (County)-[:HAS_DOMINANT_SOIL]->(SoilType)
- (Plant)-[:PLANT_IN]->(Month), (Plant)-[:HARVEST_IN]->(Month)   Month has name, season, order
- (Plant)-[:COMPANION_TO]->(Plant), (Plant)-[:ANTAGONISTIC_TO]->(Plant)
- (Plant)-[:ATTRACTS]->(PollinatorType)"""

QUERY_PATTERNS = """- Plants for a county: MATCH (plant:Plant)-[:SUITABLE_FOR]->(:GrowingCondition)-[:SUITABLE_FOR]->(county:County {{name: $county}})
- Companions: MATCH (plant:Plant {{name: $plantName}})-[:COMPANION_TO]->(companion:Plant)
- Soil types: MATCH (plant:Plant)-[:GROWS_WELL_IN]->(soil:SoilType {{name: $soilType}})
- Planting times: MATCH (plant:Plant)-[:PLANT_IN]->(month:Month {{name: $month}})"""


def clean_cypher_query(raw_query: str) -> str:
    """Strip markdown and prose from LLM output; non-read output becomes NO_RESULTS_QUERY"""
    query = (raw_query or "").strip()

    # Remove opening code fence (```cypher or ```)
    if query.lower().startswith("```cypher"):
        query = query[9:].strip()
    elif query.startswith("```"):
        query = query[3:].strip()

    if query.endswith("```"):
        query = query[:-3].strip()

    lines = []
    for line in query.split("\n"):
        line = line.strip()
        if (line and
                not line.startswith("Question:") and
                not line.startswith("Answer:") and
                not line.startswith("Explanation:") and
                not line.startswith("Note:") and
                not line.startswith("//") and
                not line.startswith("```")):
            lines.append(line)
    query = " ".join(lines)

    for prefix in ("Cypher Query:", "Cypher:", "Query:", "The Cypher query is:", "Here's the Cypher query:"):
        if query.startswith(prefix):
            query = query[len(prefix):].strip()

    if not _READ_START.match(query):
        logger.warning(f"[Text2Cypher] Output is not a Cypher query, using no-result query: {query[:80]}")
        return NO_RESULTS_QUERY

    if _WRITE_CLAUSE.search(_STRING_LITERAL.sub("''", query)):
        logger.warning("[Text2Cypher] Generated query writes to the graph, using no-result query")
        return NO_RESULTS_QUERY

    return query


def context_parameters(context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Caller context as query parameters, including the county name aliases"""
    supplied = {k: v for k, v in (context or {}).items() if v is not None}
    county = supplied.get("county") or supplied.get("countyName")
    if county:
        supplied.setdefault("county", county)
        supplied.setdefault("countyName", county)
    return supplied


class GardenText2Cypher:
    """Natural language gardening question -> Cypher -> records"""

    def __init__(self, store, openai_api_key: Optional[str] = None, model: str = "gpt-4o-mini", llm=None):
        self.store = store
        self.llm = llm or ChatOpenAI(
            openai_api_key=openai_api_key,
            model=model,
            temperature=0.2,  # Low temperature for deterministic Cypher generation
            max_tokens=512,
        )
        self.output_parser = StrOutputParser()
        self.executor = ParameterSafeExecutor(store)

        self.topic_chain = self._create_topic_prompt() | self.llm | self.output_parser
        self.cypher_chain = self._create_cypher_prompt() | self.llm | self.output_parser

    def _create_topic_prompt(self) -> ChatPromptTemplate:
        return ChatPromptTemplate.from_messages([
            ("system", "You screen questions for an Irish gardening assistant."),
            ("human", """QUERY: "{question}"

TASK: Determine if this is a gardening-related query.
If it IS gardening-related, respond with "GARDENING: YES"
If it is NOT gardening-related, respond with "GARDENING: NO"

Answer with ONLY "GARDENING: YES" or "GARDENING: NO" and nothing else."""),
        ])

    def _create_cypher_prompt(self) -> ChatPromptTemplate:
        system_message = """You are a Neo4j Cypher expert for an Irish gardening knowledge graph.

""" + SCHEMA_DESCRIPTION + """

QUERY PATTERNS:
""" + QUERY_PATTERNS + """

RULES:
1. Begin with MATCH or another read clause; never write to the graph
2. Use $county, $soilType, $season, $month, $plantName or $sunExposure parameters instead of literal values when the question mentions them
3. Always include a RETURN clause
4. LIMIT results to 10 items maximum
5. Return ONLY the Cypher query, no explanations or markdown"""

        return ChatPromptTemplate.from_messages([
            ("system", system_message),
            ("human", "Question: {question}\n\nCypher Query:"),
        ])

    def is_gardening_question(self, question: str) -> bool:
        response = self.topic_chain.invoke({"question": question})
        is_gardening = response.strip().upper() == "GARDENING: YES"
        logger.info(f"[Text2Cypher] Topic check: {response.strip()!r}")
        return is_gardening

    def convert(self, question: str) -> Tuple[str, Dict]:
        """Convert a question to cleaned Cypher

        Args:
            question: Natural language gardening question

        Returns:
            (cypher_query, metadata); on LLM failure the no-result query and the error
        """
        try:
            with get_openai_callback() as cb:
                raw_query = self.cypher_chain.invoke({"question": question})
                cypher_query = clean_cypher_query(raw_query)
                logger.info(f"[Text2Cypher] Generated Cypher: {cypher_query}")
                return cypher_query, {
                    "tokens_used": cb.total_tokens,
                    "cost": cb.total_cost,
                    "raw_query": raw_query,
                    "is_valid": cypher_query != NO_RESULTS_QUERY,
                }
        except Exception as e:
            logger.error(f"[Text2Cypher] Error converting question to Cypher: {e}")
            return NO_RESULTS_QUERY, {"error": str(e), "is_valid": False}

    def process_question(self, question: str, context: Optional[Mapping[str, Any]] = None) -> Dict:
        """Process a question end-to-end

        Store connectivity errors propagate. Malformed or unbindable generated
        queries are reported in execution_error with no records.
        """
        result = {
            "question": question,
            "is_gardening_topic": True,
            "cypher_query": None,
            "metadata": {},
            "records": [],
            "substituted": False,
            "defaults_used": {},
            "execution_error": None,
        }

        if not self.is_gardening_question(question):
            logger.info(f"[Text2Cypher] Rejecting non-gardening question: {question!r}")
            result["is_gardening_topic"] = False
            result["answer"] = OFF_TOPIC_ANSWER
            return result

        cypher_query, metadata = self.convert(question)
        result["cypher_query"] = cypher_query
        result["metadata"] = metadata

        try:
            execution = self.executor.execute(CypherQuery.from_text(cypher_query), context_parameters(context))
        except (MalformedQueryError, MissingParameterError) as e:
            logger.error(f"[Text2Cypher] Generated query failed: {e}")
            result["execution_error"] = str(e)
            return result

        result["cypher_query"] = execution.query
        result["records"] = execution.records
        result["substituted"] = execution.substituted
        result["defaults_used"] = execution.bound.defaults_used
        logger.info(f"[Text2Cypher] {len(execution.records)} records")
        return result


def main():
    """Example usage of the gardening text2cypher path"""
    from config import config
    from graph_store import GardenGraphStore

    logging.basicConfig(level=config.retrieval.log_level)

    if not os.getenv("OPENAI_API_KEY"):
        raise ValueError("Please set OPENAI_API_KEY environment variable")

    questions = [
        "What vegetables can I plant in Cork?",
        "What grows well with carrots?",
        "Which plants suit clay soil?",
    ]

    with GardenGraphStore.from_config(config.neo4j) as store:
        pipeline = GardenText2Cypher(store, openai_api_key=config.openai.api_key, model=config.openai.cypher_model)
        for question in questions:
            print(f"\n{'='*60}")
            print(f"Question: {question}")
            print('='*60)
            result = pipeline.process_question(question)
            print(f"Generated Cypher: {result['cypher_query']}")
            if result["execution_error"]:
                print(f"Execution Error: {result['execution_error']}")
            else:
                print(f"Results ({len(result['records'])} records):")
                for i, record in enumerate(result["records"][:3]):
                    print(f"  {i+1}. {record.to_dict()}")


if __name__ == "__main__":
    main()
