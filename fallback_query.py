#!/usr/bin/env python3
"""
fallback_query.py - Progressive relaxation of over-constrained graph queries

Runs a query built from the initial parameters; when it comes back empty, the
relaxation strategies are applied in their fixed order to the current
(already relaxed) parameters until a query returns rows or the list runs out.
Every execution is recorded as a FallbackAttempt.

Empty results drive relaxation; store errors do not. Connectivity and binding
errors propagate out of the loop untouched.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from cypher_builder import CypherQuery
from graph_models import FILTERABLE_PARAMETERS, FallbackAttempt, FallbackResult, GraphRecord, QueryParameterSet
from parameter_safety import bind_parameters

logger = logging.getLogger(__name__)

QueryBuilder = Callable[[QueryParameterSet], Union[CypherQuery, str]]


@dataclass(frozen=True)
class RelaxationStrategy:
    """
    Stateless relaxation step: drops the named constraints.

    The description template is formatted with the parameters *before*
    relaxation, so "Removed soil type ({soil_type}) constraint" names the value
    that was dropped.
    """
    name: str
    drop: Tuple[str, ...]
    description: str

    def apply(self, params: QueryParameterSet) -> Tuple[QueryParameterSet, str]:
        return params.without(*self.drop), self.description.format(**params.to_dict())


DEFAULT_STRATEGIES: Tuple[RelaxationStrategy, ...] = (
    RelaxationStrategy("drop_soil_type", ("soil_type",), "Removed soil type ({soil_type}) constraint"),
    RelaxationStrategy("drop_plant_type", ("plant_type",), "Removed plant type ({plant_type}) constraint"),
    RelaxationStrategy("drop_season", ("season",), "Removed season ({season}) constraint"),
    RelaxationStrategy(
        "county_and_plant_type", ("soil_type", "season"), "Kept only county and plant type constraints"
    ),
    RelaxationStrategy(
        "county_and_soil_type", ("plant_type", "season"), "Kept only county and soil type constraints"
    ),
    RelaxationStrategy("county_only", ("plant_type", "soil_type", "season"), "Kept only county constraint"),
    RelaxationStrategy("drop_county", ("county_name",), "Removed county ({county_name}) constraint"),
    RelaxationStrategy("plant_type_only", ("county_name", "soil_type", "season"), "Kept only plant type constraint"),
    RelaxationStrategy(
        "minimal", FILTERABLE_PARAMETERS, "Used minimal constraints, only keeping growing property"
    ),
)


class QueryRelaxationEngine:
    """Executes a query builder with fallback over the relaxation strategies"""

    def __init__(self, store, strategies: Optional[Sequence[RelaxationStrategy]] = None):
        self.store = store
        self.strategies: Tuple[RelaxationStrategy, ...] = tuple(
            DEFAULT_STRATEGIES if strategies is None else strategies
        )

    def _execute(self, params: QueryParameterSet, build_query: QueryBuilder) -> Tuple[List[GraphRecord], str]:
        query = build_query(params)
        if not isinstance(query, CypherQuery):
            query = CypherQuery.from_text(query)
        bound = bind_parameters(query, params.to_cypher_params())
        logger.debug(f"[Fallback] Executing with params {bound.values}")
        # One session per attempt; none is held across the sequence
        records = self.store.run(query, bound.values)
        return records, query.text

    def execute_with_fallback(self, initial_params: QueryParameterSet, build_query: QueryBuilder) -> FallbackResult:
        """
        Run build_query(initial_params), relaxing constraints on empty results.

        Args:
            initial_params: starting constraints; growing_property is never relaxed
            build_query: maps a parameter set to a query

        Returns:
            FallbackResult with the first non-empty record set (or none) and the attempt trace
        """
        original_params = initial_params
        current_params = initial_params

        records, query_text = self._execute(current_params, build_query)
        attempts = [FallbackAttempt(attempt=1, params=current_params, result_count=len(records), query=query_text)]
        logger.info(f"[Fallback] Attempt 1: {len(records)} records")

        if records:
            return FallbackResult(
                success=True,
                records=records,
                query=query_text,
                params=current_params,
                original_params=original_params,
                fallback_used=False,
                attempts=attempts,
            )

        for index, strategy in enumerate(self.strategies):
            current_params, description = strategy.apply(current_params)
            records, query_text = self._execute(current_params, build_query)
            attempt_number = index + 2
            attempts.append(
                FallbackAttempt(
                    attempt=attempt_number,
                    params=current_params,
                    result_count=len(records),
                    query=query_text,
                    description=description,
                )
            )
            logger.info(f"[Fallback] Attempt {attempt_number} ({description}): {len(records)} records")
            if records:
                break

        success = len(records) > 0
        if not success:
            logger.warning(f"[Fallback] No results after {len(attempts)} attempts for {original_params}")

        return FallbackResult(
            success=success,
            records=records,
            query=query_text,
            params=current_params,
            original_params=original_params,
            fallback_used=success and len(attempts) > 1,
            attempts=attempts,
        )
