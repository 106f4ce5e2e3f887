#!/usr/bin/env python3
"""
entity_extractor.py - Dictionary lookup of known gardening terms in a question

Plant, soil type, county and month vocabularies come from the graph store (one
query per category, all in one session). Seasons and activity verbs are static.
Matching is case-insensitive substring containment; no NLP model is involved.
"""

import logging
from typing import Iterable, List

from cypher_builder import vocabulary_query
from graph_models import EntitySet, NodeLabel

logger = logging.getLogger(__name__)

SEASONS = ["Spring", "Summer", "Autumn", "Winter"]

ACTIVITIES = [
    "plant",
    "grow",
    "sow",
    "harvest",
    "prune",
    "fertilize",
    "water",
    "mulch",
    "weed",
    "companion planting",
]


def match_terms(question: str, vocabulary: Iterable[str]) -> List[str]:
    """Vocabulary terms contained in the question, in vocabulary order, without duplicates"""
    text = (question or "").lower()
    matched = []
    seen = set()
    for term in vocabulary:
        if not term:
            continue
        key = term.lower()
        if key in seen:
            continue
        if key in text:
            seen.add(key)
            matched.append(term)
    return matched


class GardenEntityExtractor:
    """Finds known graph entities mentioned in free text"""

    VOCABULARY_LABELS = {
        "plants": NodeLabel.PLANT,
        "soil_types": NodeLabel.SOIL_TYPE,
        "counties": NodeLabel.COUNTY,
        "months": NodeLabel.MONTH,
    }

    def __init__(self, store):
        self.store = store

    def load_vocabulary(self) -> dict:
        """
        Current vocabulary snapshot from the store.

        Store errors propagate: an unreachable store must not look like a
        question that mentions nothing.
        """
        vocabulary = {}
        with self.store.session() as session:
            for category, label in self.VOCABULARY_LABELS.items():
                records = session.run(vocabulary_query(label.value))
                vocabulary[category] = [r.get("name") for r in records if r.get("name")]
        return vocabulary

    def extract_entities(self, question: str) -> EntitySet:
        vocabulary = self.load_vocabulary()
        entities = EntitySet(
            plants=match_terms(question, vocabulary["plants"]),
            soil_types=match_terms(question, vocabulary["soil_types"]),
            counties=match_terms(question, vocabulary["counties"]),
            seasons=match_terms(question, SEASONS),
            months=match_terms(question, vocabulary["months"]),
            activities=match_terms(question, ACTIVITIES),
        )
        logger.info(
            f"[Entities] plants={entities.plants} soils={entities.soil_types} "
            f"counties={entities.counties} seasons={entities.seasons} "
            f"months={entities.months} activities={entities.activities}"
        )
        return entities
