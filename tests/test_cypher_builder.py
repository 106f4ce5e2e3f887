"""Query builder: structural parameter tracking and the domain query builders."""

import pytest

from cypher_builder import (
    CypherQuery,
    CypherQueryBuilder,
    alias,
    build_dynamic_query,
    build_growing_query,
    eq,
    literal,
    node,
    param,
    path,
    prop,
    rel,
    vocabulary_query,
)
from graph_models import QueryParameterSet


class TestExpressions:
    def test_node_with_parameter_property(self):
        n = node("c", "County", name=param("countyName"))
        assert n.text == "(c:County {name: $countyName})"
        assert n.params == {"countyName"}

    def test_relationship_directions(self):
        assert rel("PLANT_IN").text == "-[:PLANT_IN]->"
        assert rel("ATTRACTS", direction="in").text == "<-[:ATTRACTS]-"
        assert rel(variable="r", direction="both").text == "-[r]-"

    def test_invalid_identifiers_rejected(self):
        with pytest.raises(ValueError):
            node("p", "Plant) DETACH DELETE (x")
        with pytest.raises(ValueError):
            rel("GROWS_WELL_IN]->() //")
        with pytest.raises(ValueError):
            prop("p", "name; DROP")

    def test_literal_escaping(self):
        assert literal("O'Brien's Tree").text == "'O\\'Brien\\'s Tree'"
        assert literal(True).text == "true"
        assert literal(None).text == "null"
        assert literal(3).text == "3"

    def test_literal_rejects_other_types(self):
        with pytest.raises(TypeError):
            literal(["a"])


class TestBuilder:
    def test_parameters_collected_from_all_clauses(self):
        query = (
            CypherQueryBuilder()
            .match(path(node("p", "Plant"), rel("GROWS_WELL_IN"), node("s", "SoilType", name=param("soilType"))))
            .optional_match(node("m", "Month"), where=eq(prop("m", "season"), param("season")))
            .return_(alias(prop("p", "name"), "name"), distinct=True)
            .limit(param("limit"))
            .build()
        )
        assert query.required_parameters == {"soilType", "season", "limit"}
        assert query.text.splitlines() == [
            "MATCH (p:Plant)-[:GROWS_WELL_IN]->(s:SoilType {name: $soilType})",
            "OPTIONAL MATCH (m:Month)",
            "WHERE m.season = $season",
            "RETURN DISTINCT p.name AS name",
            "LIMIT $limit",
        ]

    def test_empty_return_rejected(self):
        with pytest.raises(ValueError):
            CypherQueryBuilder().return_()

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            CypherQueryBuilder().limit(-1)


class TestFromText:
    def test_scans_placeholders(self):
        query = CypherQuery.from_text("MATCH (c:County {name: $county}) WHERE c.x = $x_1 RETURN c")
        assert query.required_parameters == {"county", "x_1"}

    def test_ignores_string_literals(self):
        query = CypherQuery.from_text('MATCH (p) WHERE p.a = "$nope" AND p.b = \'$no\' AND p.c = $yes RETURN p')
        assert query.required_parameters == {"yes"}

    def test_empty_text(self):
        assert CypherQuery.from_text(None).required_parameters == frozenset()


class TestGrowingQuery:
    def test_all_constraints(self):
        params = QueryParameterSet("Sligo", "Vegetable", "Clay", "Winter", "harvestSeason")
        query = build_growing_query(params)

        assert query.required_parameters == {"countyName", "plantType", "soilType", "season", "growingProperty"}
        assert "[:HARVEST_IN]" in query.text
        assert "plant[$growingProperty] AS propertyValue" in query.text
        assert "collect(DISTINCT month.name) AS months" in query.text

    def test_season_uses_plant_in_for_other_properties(self):
        query = build_growing_query(QueryParameterSet(season="Spring", growing_property="growingSeason"))
        assert "[:PLANT_IN]" in query.text
        assert "HARVEST_IN" not in query.text

    def test_null_parameters_add_no_clauses(self):
        query = build_growing_query(QueryParameterSet(county_name="Cork", growing_property="waterNeeds"))
        assert query.required_parameters == {"countyName", "growingProperty"}
        assert "SoilType" not in query.text
        assert "Month" not in query.text
        assert "RETURN DISTINCT" in query.text

    def test_all_null_floor_is_still_valid(self):
        query = build_growing_query(QueryParameterSet(growing_property="sunNeeds"))
        assert query.required_parameters == {"growingProperty"}
        assert query.text.startswith("MATCH (plant:Plant)\nRETURN DISTINCT")
        assert query.text.endswith("ORDER BY plantName\nLIMIT 25")


class TestOtherBuilders:
    def test_dynamic_query_with_value(self):
        query = build_dynamic_query({"waterNeeds": "Low"}, "Plant", "waterNeeds")
        assert query.text == "MATCH (n:Plant)\nWHERE n.waterNeeds = $waterNeeds\nRETURN n\nLIMIT 10"
        assert query.required_parameters == {"waterNeeds"}

    def test_dynamic_query_without_value(self):
        query = build_dynamic_query({}, "SoilType", "ph")
        assert query.required_parameters == frozenset()
        assert "WHERE" not in query.text

    def test_vocabulary_query(self):
        assert vocabulary_query("County").text == (
            "MATCH (n:County)\nWHERE n.name IS NOT NULL\nRETURN DISTINCT n.name AS name\nORDER BY name"
        )
