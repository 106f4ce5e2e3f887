"""Query relaxation engine: strategy order, trace, termination and error semantics."""

import pytest

from cypher_builder import build_growing_query
from fallback_query import DEFAULT_STRATEGIES, QueryRelaxationEngine, RelaxationStrategy
from graph_errors import MissingParameterError, StoreConnectivityError
from graph_models import FILTERABLE_PARAMETERS, QueryParameterSet


SLIGO = QueryParameterSet(
    county_name="Sligo",
    plant_type="Vegetable",
    soil_type="Clay",
    season="Winter",
    growing_property="harvestSeason",
)


class TestStrategies:
    def test_nine_strategies_in_documented_order(self):
        assert [s.name for s in DEFAULT_STRATEGIES] == [
            "drop_soil_type",
            "drop_plant_type",
            "drop_season",
            "county_and_plant_type",
            "county_and_soil_type",
            "county_only",
            "drop_county",
            "plant_type_only",
            "minimal",
        ]

    def test_drop_soil_type_describes_dropped_value(self):
        params, description = DEFAULT_STRATEGIES[0].apply(SLIGO)
        assert params.soil_type is None
        assert params.county_name == "Sligo"
        assert description == "Removed soil type (Clay) constraint"

    def test_keep_only_county_and_plant_type(self):
        params, _ = DEFAULT_STRATEGIES[3].apply(SLIGO)
        assert params.active_constraints() == {"county_name", "plant_type"}

    def test_drop_county_keeps_the_rest(self):
        params, description = DEFAULT_STRATEGIES[6].apply(SLIGO)
        assert params.active_constraints() == {"plant_type", "soil_type", "season"}
        assert description == "Removed county (Sligo) constraint"

    def test_minimal_keeps_growing_property(self):
        params, description = DEFAULT_STRATEGIES[8].apply(SLIGO)
        assert params.active_constraints() == frozenset()
        assert params.growing_property == "harvestSeason"
        assert description == "Used minimal constraints, only keeping growing property"

    def test_strategies_are_pure(self):
        strategy = DEFAULT_STRATEGIES[1]
        assert strategy.apply(SLIGO) == strategy.apply(SLIGO)
        assert SLIGO.plant_type == "Vegetable"


class TestExecuteWithFallback:
    def test_first_attempt_hits(self, make_store):
        store = make_store(lambda text, params: [{"plantName": "Leek"}])
        result = QueryRelaxationEngine(store).execute_with_fallback(SLIGO, build_growing_query)

        assert result.success
        assert not result.fallback_used
        assert len(result.trace) == 1
        assert result.trace[0].attempt == 1
        assert result.trace[0].description is None
        assert len(store.calls) == 1

    def test_sligo_scenario_three_attempts(self, make_store):
        def respond(text, params):
            if "soilType" not in params and "plantType" not in params:
                return [{"plantName": "Parsnip"}, {"plantName": "Leek"}]
            return []

        store = make_store(respond)
        result = QueryRelaxationEngine(store).execute_with_fallback(SLIGO, build_growing_query)

        assert result.success
        assert result.fallback_used
        assert [a.attempt for a in result.trace] == [1, 2, 3]
        assert [a.result_count for a in result.trace] == [0, 0, 2]
        assert result.trace[1].description == "Removed soil type (Clay) constraint"
        assert result.trace[2].description == "Removed plant type (Vegetable) constraint"
        assert result.params.active_constraints() == {"county_name", "season"}
        assert result.original_params == SLIGO
        assert len(result.records) == 2

    def test_trace_records_literal_query_text(self, make_store):
        store = make_store(lambda text, params: [] if "soilType" in params else [{"plantName": "Kale"}])
        result = QueryRelaxationEngine(store).execute_with_fallback(SLIGO, build_growing_query)

        assert "GROWS_WELL_IN" in result.trace[0].query
        assert "GROWS_WELL_IN" not in result.trace[1].query
        assert result.query == result.trace[-1].query

    def test_fully_failing_search_costs_one_plus_nine(self, empty_store):
        result = QueryRelaxationEngine(empty_store).execute_with_fallback(SLIGO, build_growing_query)

        assert not result.success
        assert not result.fallback_used
        assert len(result.trace) == 10
        assert len(empty_store.calls) == 1 + len(DEFAULT_STRATEGIES)
        assert result.original_params == SLIGO
        assert result.params.active_constraints() == frozenset()

    def test_relaxation_is_monotonic(self, empty_store):
        result = QueryRelaxationEngine(empty_store).execute_with_fallback(SLIGO, build_growing_query)

        for previous, current in zip(result.trace, result.trace[1:]):
            assert current.params.active_constraints() <= previous.params.active_constraints()

    def test_growing_property_bound_on_every_attempt(self, empty_store):
        QueryRelaxationEngine(empty_store).execute_with_fallback(SLIGO, build_growing_query)
        assert all(params["growingProperty"] == "harvestSeason" for _, params in empty_store.calls)

    def test_minimal_floor_query_has_no_filters(self, empty_store):
        result = QueryRelaxationEngine(empty_store).execute_with_fallback(SLIGO, build_growing_query)
        assert empty_store.calls[-1][1] == {"growingProperty": "harvestSeason"}
        assert "WHERE" not in result.trace[-1].query

    def test_connectivity_error_propagates_immediately(self, make_store):
        calls = []

        def respond(text, params):
            calls.append(text)
            if len(calls) == 2:
                return StoreConnectivityError("connection reset")
            return []

        store = make_store(respond)
        with pytest.raises(StoreConnectivityError):
            QueryRelaxationEngine(store).execute_with_fallback(SLIGO, build_growing_query)
        assert len(calls) == 2

    def test_missing_growing_property_is_a_binding_error(self, empty_store):
        params = QueryParameterSet(county_name="Cork")
        with pytest.raises(MissingParameterError):
            QueryRelaxationEngine(empty_store).execute_with_fallback(params, build_growing_query)
        assert empty_store.calls == []

    def test_custom_strategies(self, empty_store):
        only = RelaxationStrategy("drop_all", FILTERABLE_PARAMETERS, "Dropped everything")
        result = QueryRelaxationEngine(empty_store, strategies=[only]).execute_with_fallback(
            SLIGO, build_growing_query
        )
        assert len(result.trace) == 2
        assert result.trace[1].description == "Dropped everything"

    def test_string_query_builder_accepted(self, make_store):
        store = make_store(lambda text, params: [{"n": 1}])
        result = QueryRelaxationEngine(store).execute_with_fallback(
            QueryParameterSet(county_name="Cork", growing_property="waterNeeds"),
            lambda p: "MATCH (c:County {name: $countyName}) RETURN c",
        )
        assert result.success
        assert store.calls[0][1] == {"countyName": "Cork"}

    def test_to_dict_uses_camel_case_keys(self, empty_store):
        data = QueryRelaxationEngine(empty_store).execute_with_fallback(SLIGO, build_growing_query).to_dict()
        assert data["fallbackUsed"] is False
        assert data["originalParams"]["county_name"] == "Sligo"
        assert data["fallbackAttempts"][0]["resultCount"] == 0
