#!/usr/bin/env python3
"""
parameter_safety.py - Parameter binding with semantic defaults and safe substitution

Every parameter a query references is bound before execution: supplied values
first, then the fixed table of gardening defaults. A name with neither raises
MissingParameterError, so a query referencing an unbound name is never sent.

If the store still reports a parameter binding mismatch (UnboundParameterError),
a pre-verified sun-exposure-only query is run once in its place. Any other
malformed-query error propagates.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from cypher_builder import CypherQuery, CypherQueryBuilder, alias, contains, node, param, prop
from graph_errors import MissingParameterError, UnboundParameterError
from graph_models import GraphRecord

logger = logging.getLogger(__name__)

SEMANTIC_DEFAULTS: Dict[str, Any] = {
    "county": "Dublin",
    "countyName": "Dublin",
    "sunExposure": "Full Sun",
    "soilType": "Loam",
    "soilPH": "6.5",
    "plantType": [],
    "plantName": "Potato",
    "plant": "Potato",
    "season": "Summer",
    "limit": 10,
    "nativeOnly": False,
}

# Defaults that depend on when the query runs
_DYNAMIC_DEFAULTS = {
    "month": lambda: datetime.now().strftime("%B"),
    "currentMonth": lambda: datetime.now().strftime("%B"),
}

_NO_DEFAULT = object()


def semantic_default(name: str) -> Any:
    """Default for a parameter name, or _NO_DEFAULT"""
    if name in SEMANTIC_DEFAULTS:
        value = SEMANTIC_DEFAULTS[name]
        return list(value) if isinstance(value, list) else value
    if name in _DYNAMIC_DEFAULTS:
        return _DYNAMIC_DEFAULTS[name]()
    return _NO_DEFAULT


def _as_query(query: Union[CypherQuery, str]) -> CypherQuery:
    if isinstance(query, CypherQuery):
        return query
    return CypherQuery.from_text(query)


def build_safe_substitute_query() -> CypherQuery:
    """Plants by sun exposure only; both parameters always have defaults"""
    return (
        CypherQueryBuilder()
        .match(node("plant", "Plant"), where=contains(prop("plant", "sunNeeds"), param("sunExposure")))
        .return_("plant", alias(prop("plant", "name"), "plantName"))
        .order_by("plantName")
        .limit(param("limit"))
        .build()
    )


SAFE_SUBSTITUTE_QUERY = build_safe_substitute_query()


@dataclass
class BoundParameters:
    """Values for exactly the parameters a query requires"""
    values: Dict[str, Any]
    defaults_used: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def bind_parameters(query: Union[CypherQuery, str], supplied: Optional[Mapping[str, Any]] = None) -> BoundParameters:
    """
    Bind every parameter the query requires.

    Args:
        query: built query, or raw text which is scanned for $placeholders
        supplied: caller values; a value of None counts as absent

    Returns:
        BoundParameters with values, the defaults applied and a warning per default

    Raises:
        MissingParameterError: a required name has no value and no default
    """
    query = _as_query(query)
    supplied = supplied or {}
    bound = BoundParameters(values={})

    for name in sorted(query.required_parameters):
        value = supplied.get(name)
        if value is not None:
            bound.values[name] = value
            continue

        default = semantic_default(name)
        if default is _NO_DEFAULT:
            raise MissingParameterError(name)

        bound.values[name] = default
        bound.defaults_used[name] = default
        message = f"Parameter '{name}' not supplied, using default {default!r}"
        bound.warnings.append(message)
        logger.warning(f"[ParamSafety] {message}")

    return bound


@dataclass
class SafeExecution:
    """Records from a parameter-safe execution and what was actually run"""
    records: List[GraphRecord]
    query: str
    bound: BoundParameters
    substituted: bool = False
    original_query: Optional[str] = None


class ParameterSafeExecutor:
    """Binds, executes and substitutes the safe query at most once"""

    def __init__(self, store, safe_query: CypherQuery = SAFE_SUBSTITUTE_QUERY):
        self.store = store
        self.safe_query = safe_query

    def execute(self, query: Union[CypherQuery, str], supplied: Optional[Mapping[str, Any]] = None) -> SafeExecution:
        query = _as_query(query)
        bound = bind_parameters(query, supplied)

        with self.store.session() as session:
            try:
                records = session.run(query, bound.values)
                return SafeExecution(records=records, query=query.text, bound=bound)
            except UnboundParameterError as e:
                logger.warning(
                    f"[ParamSafety] Binding mismatch for {list(e.parameters)}; "
                    f"substituting sun-exposure-only query"
                )

            # Not retried again if the substitute fails too
            safe_bound = bind_parameters(self.safe_query, supplied)
            records = session.run(self.safe_query, safe_bound.values)
            logger.info(f"[ParamSafety] Substitute query returned {len(records)} records")
            return SafeExecution(
                records=records,
                query=self.safe_query.text,
                bound=safe_bound,
                substituted=True,
                original_query=query.text,
            )
