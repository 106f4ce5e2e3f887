#!/usr/bin/env python3
"""
cypher_builder.py - Small Cypher query builder for the gardening knowledge graph

Queries are assembled from pattern, predicate and projection expressions. Values
never get interpolated into query text: every value is a named $parameter, and
each expression carries the set of parameter names it references, so the
parameters a query needs are known structurally once it is built.

Labels, relationship types and property keys cannot be parameterized in Cypher,
so they are validated as plain identifiers instead.
"""

import re
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Union

from graph_models import QueryParameterSet

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PLACEHOLDER = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")
_STRING_LITERAL = re.compile(r"'(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\"")


def _identifier(value: str, kind: str = "identifier") -> str:
    if not isinstance(value, str) or not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid Cypher {kind}: {value!r}")
    return value


@dataclass(frozen=True)
class Expr:
    """A fragment of Cypher text plus the parameter names it references"""
    text: str
    params: FrozenSet[str] = frozenset()

    def __str__(self) -> str:
        return self.text


ExprLike = Union[Expr, str]


def _as_expr(value: ExprLike) -> Expr:
    # Bare strings are variable names, never values
    if isinstance(value, Expr):
        return value
    return var(value)


def _combine(text: str, *exprs: Expr) -> Expr:
    params: Set[str] = set()
    for expr in exprs:
        params |= expr.params
    return Expr(text, frozenset(params))


def param(name: str) -> Expr:
    return Expr(f"${_identifier(name, 'parameter name')}", frozenset({name}))


def var(name: str) -> Expr:
    return Expr(_identifier(name, "variable"))


def prop(variable: str, key: str) -> Expr:
    return Expr(f"{_identifier(variable, 'variable')}.{_identifier(key, 'property key')}")


def dynamic_prop(variable: str, param_name: str) -> Expr:
    """Property looked up by a parameter value, e.g. plant[$growingProperty]"""
    p = param(param_name)
    return _combine(f"{_identifier(variable, 'variable')}[{p.text}]", p)


def literal(value: Any) -> Expr:
    """Constant from code (not user input) rendered as a Cypher literal"""
    if value is None:
        return Expr("null")
    if isinstance(value, bool):
        return Expr("true" if value else "false")
    if isinstance(value, (int, float)):
        return Expr(repr(value))
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace("'", "\\'")
        return Expr(f"'{escaped}'")
    raise TypeError(f"Unsupported literal type: {type(value).__name__}")


def func(name: str, *args: ExprLike, distinct: bool = False) -> Expr:
    parts = [_as_expr(a) for a in args]
    inner = ", ".join(p.text for p in parts)
    if distinct:
        inner = f"DISTINCT {inner}"
    return _combine(f"{_identifier(name, 'function')}({inner})", *parts)


def map_of(**entries: ExprLike) -> Expr:
    parts = {k: _as_expr(v) for k, v in entries.items()}
    body = ", ".join(f"{_identifier(k, 'map key')}: {v.text}" for k, v in parts.items())
    return _combine("{" + body + "}", *parts.values())


def alias(expr: ExprLike, name: str) -> Expr:
    e = _as_expr(expr)
    return _combine(f"{e.text} AS {_identifier(name, 'alias')}", e)


def eq(left: ExprLike, right: ExprLike) -> Expr:
    l, r = _as_expr(left), _as_expr(right)
    return _combine(f"{l.text} = {r.text}", l, r)


def contains(left: ExprLike, right: ExprLike) -> Expr:
    l, r = _as_expr(left), _as_expr(right)
    return _combine(f"{l.text} CONTAINS {r.text}", l, r)


def is_in(left: ExprLike, right: ExprLike) -> Expr:
    l, r = _as_expr(left), _as_expr(right)
    return _combine(f"{l.text} IN {r.text}", l, r)


def is_not_null(expr: ExprLike) -> Expr:
    e = _as_expr(expr)
    return _combine(f"{e.text} IS NOT NULL", e)


def all_of(*conditions: Expr) -> Expr:
    if len(conditions) == 1:
        return conditions[0]
    return _combine("(" + " AND ".join(c.text for c in conditions) + ")", *conditions)


def any_of(*conditions: Expr) -> Expr:
    if len(conditions) == 1:
        return conditions[0]
    return _combine("(" + " OR ".join(c.text for c in conditions) + ")", *conditions)


def desc(expr: ExprLike) -> Expr:
    e = _as_expr(expr)
    return _combine(f"{e.text} DESC", e)


def node(variable: Optional[str] = None, label: Optional[str] = None, **props: Expr) -> Expr:
    """Node pattern, e.g. node("c", "County", name=param("countyName"))"""
    text = _identifier(variable, "variable") if variable else ""
    if label:
        text += f":{_identifier(label, 'label')}"
    prop_exprs = list(props.values())
    if props:
        body = ", ".join(f"{_identifier(k, 'property key')}: {v.text}" for k, v in props.items())
        text += f" {{{body}}}"
    return _combine(f"({text})", *prop_exprs)


def rel(*types: str, variable: Optional[str] = None, direction: str = "out") -> Expr:
    """Relationship pattern; several types are OR-ed (TYPE_A|TYPE_B)"""
    inner = _identifier(variable, "variable") if variable else ""
    if types:
        inner += ":" + "|".join(_identifier(t, "relationship type") for t in types)
    if direction == "out":
        return Expr(f"-[{inner}]->")
    if direction == "in":
        return Expr(f"<-[{inner}]-")
    if direction == "both":
        return Expr(f"-[{inner}]-")
    raise ValueError(f"Unknown relationship direction: {direction}")


def path(*parts: Expr) -> Expr:
    return _combine("".join(p.text for p in parts), *parts)


@dataclass(frozen=True)
class CypherQuery:
    """Query text plus the parameter names it requires"""
    text: str
    parameters: FrozenSet[str] = frozenset()

    @property
    def required_parameters(self) -> FrozenSet[str]:
        return self.parameters

    @classmethod
    def from_text(cls, text: str) -> "CypherQuery":
        """Wrap query text produced elsewhere (e.g. by an LLM) and scan it for $placeholders"""
        without_literals = _STRING_LITERAL.sub("''", text or "")
        return cls(text=text or "", parameters=frozenset(_PLACEHOLDER.findall(without_literals)))

    def __str__(self) -> str:
        return self.text


class CypherQueryBuilder:
    """Accumulates clauses and the parameters they reference"""

    def __init__(self):
        self._clauses: List[str] = []
        self._params: Set[str] = set()

    def _add(self, keyword: str, items: Sequence[ExprLike], sep: str = ", ") -> "CypherQueryBuilder":
        exprs = [_as_expr(i) for i in items]
        if not exprs:
            raise ValueError(f"{keyword} clause needs at least one item")
        for e in exprs:
            self._params |= e.params
        self._clauses.append(f"{keyword} {sep.join(e.text for e in exprs)}")
        return self

    def _where(self, conditions: Optional[Union[Expr, Iterable[Expr]]]) -> None:
        if conditions is None:
            return
        if isinstance(conditions, Expr):
            conditions = [conditions]
        conditions = list(conditions)
        if not conditions:
            return
        self._add("WHERE", conditions, sep=" AND ")

    def match(self, *patterns: Expr, where=None, optional: bool = False) -> "CypherQueryBuilder":
        self._add("OPTIONAL MATCH" if optional else "MATCH", patterns)
        self._where(where)
        return self

    def optional_match(self, *patterns: Expr, where=None) -> "CypherQueryBuilder":
        return self.match(*patterns, where=where, optional=True)

    def with_(self, *items: ExprLike, where=None) -> "CypherQueryBuilder":
        self._add("WITH", items)
        self._where(where)
        return self

    def return_(self, *items: ExprLike, distinct: bool = False) -> "CypherQueryBuilder":
        return self._add("RETURN DISTINCT" if distinct else "RETURN", items)

    def order_by(self, *items: ExprLike) -> "CypherQueryBuilder":
        return self._add("ORDER BY", items)

    def limit(self, count: Union[int, Expr]) -> "CypherQueryBuilder":
        if isinstance(count, Expr):
            return self._add("LIMIT", [count])
        if int(count) < 0:
            raise ValueError("LIMIT must be non-negative")
        self._clauses.append(f"LIMIT {int(count)}")
        return self

    def build(self) -> CypherQuery:
        return CypherQuery(text="\n".join(self._clauses), parameters=frozenset(self._params))


# ---------------------------------------------------------------------------
# Domain query builders
# ---------------------------------------------------------------------------

def build_growing_query(params: QueryParameterSet, limit: int = 25) -> CypherQuery:
    """
    Plants matching county / soil / season / plant type, projecting the
    requested growing property. Null parameters contribute no clause, so the
    all-null set still yields a valid query that only needs $growingProperty.
    """
    b = CypherQueryBuilder()
    plant_filters = []
    if params.plant_type is not None:
        plant_filters.append(eq(prop("plant", "type"), param("plantType")))
    b.match(node("plant", "Plant"), where=plant_filters)

    if params.county_name is not None:
        b.match(path(
            node("plant"),
            rel("SUITABLE_FOR"),
            node("gc", "GrowingCondition"),
            rel("SUITABLE_FOR"),
            node("county", "County", name=param("countyName")),
        ))

    if params.soil_type is not None:
        b.match(path(
            node("plant"),
            rel("GROWS_WELL_IN"),
            node("soil", "SoilType", name=param("soilType")),
        ))

    if params.season is not None:
        month_rel = "HARVEST_IN" if params.growing_property == "harvestSeason" else "PLANT_IN"
        b.match(
            path(node("plant"), rel(month_rel), node("month", "Month")),
            where=eq(prop("month", "season"), param("season")),
        )

    projections = [
        alias(prop("plant", "name"), "plantName"),
        alias(prop("plant", "latinName"), "latinName"),
        alias(prop("plant", "description"), "description"),
        alias(dynamic_prop("plant", "growingProperty"), "propertyValue"),
    ]
    if params.soil_type is not None:
        projections.append(alias(prop("soil", "name"), "soilName"))
        projections.append(alias(prop("soil", "characteristics"), "soilCharacteristics"))
    if params.county_name is not None:
        projections.append(alias(prop("gc", "rainfallMm"), "rainfall"))
        projections.append(alias(prop("gc", "avgTempC"), "temperature"))
    if params.season is not None:
        projections.append(alias(func("collect", prop("month", "name"), distinct=True), "months"))
        b.return_(*projections)
    else:
        b.return_(*projections, distinct=True)

    return b.order_by(var("plantName")).limit(limit).build()


def build_dynamic_query(params: Mapping[str, Any], label: str, property_name: str, limit: int = 10) -> CypherQuery:
    """Single-label query filtered on one property when a value for it is present"""
    b = CypherQueryBuilder()
    where = None
    if params.get(property_name) is not None:
        where = eq(prop("n", property_name), param(property_name))
    b.match(node("n", label), where=where)
    return b.return_(var("n")).limit(limit).build()


def vocabulary_query(label: str, key: str = "name") -> CypherQuery:
    """All distinct values of one property for a label"""
    return (
        CypherQueryBuilder()
        .match(node("n", label), where=is_not_null(prop("n", key)))
        .return_(alias(prop("n", key), "name"), distinct=True)
        .order_by(var("name"))
        .build()
    )
