"""Store handle: session lifecycle, record conversion and driver error translation."""

from unittest.mock import MagicMock, patch

import pytest
from neo4j.exceptions import ClientError, Neo4jError, ServiceUnavailable, SessionExpired

from config import Neo4jConfig
from cypher_builder import CypherQuery
from graph_errors import MalformedQueryError, StoreConnectivityError, UnboundParameterError
from graph_store import GardenGraphStore, _missing_parameter_names, convert_value


@pytest.fixture
def raw_session():
    return MagicMock()


@pytest.fixture
def driver(raw_session):
    driver = MagicMock()
    driver.session.return_value.__enter__.return_value = raw_session
    return driver


@pytest.fixture
def store(driver):
    return GardenGraphStore(database="garden", driver=driver)


class TestRun:
    def test_records_converted(self, store, raw_session, driver):
        raw_session.run.return_value = [{"name": "Cork", "months": ["March"]}]
        records = store.run(CypherQuery.from_text("MATCH (c:County) RETURN c.name AS name"), {"x": 1})

        assert records[0]["name"] == "Cork"
        assert records[0].to_dict() == {"name": "Cork", "months": ["March"]}
        raw_session.run.assert_called_once_with("MATCH (c:County) RETURN c.name AS name", {"x": 1})
        driver.session.assert_called_once_with(database="garden")

    def test_session_released_after_error(self, store, raw_session, driver):
        raw_session.run.side_effect = ServiceUnavailable("no route")
        with pytest.raises(StoreConnectivityError):
            store.run("RETURN 1")
        driver.session.return_value.__exit__.assert_called_once()

    def test_one_session_for_several_queries(self, store, raw_session, driver):
        raw_session.run.return_value = []
        with store.session() as session:
            session.run("RETURN 1")
            session.run("RETURN 2")
        assert driver.session.call_count == 1
        assert raw_session.run.call_count == 2


class TestErrorTranslation:
    @pytest.mark.parametrize("error", [ServiceUnavailable("down"), SessionExpired("expired")])
    def test_connectivity(self, store, raw_session, error):
        raw_session.run.side_effect = error
        with pytest.raises(StoreConnectivityError):
            store.run("RETURN 1")

    def test_syntax_error(self, store, raw_session):
        raw_session.run.side_effect = Neo4jError.hydrate(
            message="Invalid input 'RETRUN'", code="Neo.ClientError.Statement.SyntaxError"
        )
        with pytest.raises(MalformedQueryError) as exc:
            store.run("MATCH (n) RETRUN n")
        assert not isinstance(exc.value, UnboundParameterError)
        assert exc.value.query == "MATCH (n) RETRUN n"

    def test_parameter_missing(self, store, raw_session):
        raw_session.run.side_effect = Neo4jError.hydrate(
            message="Expected parameter(s): countyName, season",
            code="Neo.ClientError.Statement.ParameterMissing",
        )
        with pytest.raises(UnboundParameterError) as exc:
            store.run("MATCH (c:County {name: $countyName}) RETURN c")
        assert exc.value.parameters == ("countyName", "season")

    def test_other_client_errors_propagate(self, store, raw_session):
        raw_session.run.side_effect = Neo4jError.hydrate(
            message="Type mismatch", code="Neo.ClientError.Statement.TypeError"
        )
        with pytest.raises(ClientError):
            store.run("RETURN 1 + 'a'")

    def test_session_open_failure(self, driver):
        driver.session.side_effect = ServiceUnavailable("refused")
        store = GardenGraphStore(driver=driver)
        with pytest.raises(StoreConnectivityError):
            with store.session():
                pass

    def test_verify_connectivity(self, store, driver):
        driver.verify_connectivity.side_effect = ServiceUnavailable("down")
        with pytest.raises(StoreConnectivityError):
            store.verify_connectivity()


class TestHelpers:
    def test_missing_parameter_names(self):
        assert _missing_parameter_names("Expected parameter(s): a, b") == ["a", "b"]
        assert _missing_parameter_names("something else") == []
        assert _missing_parameter_names(None) == []

    def test_raw_values_kept(self):
        assert convert_value({"a": [1, "x"], "b": None}) == {"a": [1, "x"], "b": None}


class TestLifecycle:
    def test_injected_driver_not_closed(self, store, driver):
        store.close()
        driver.close.assert_not_called()

    def test_from_config_creates_driver_lazily(self):
        cfg = Neo4jConfig(uri="bolt://garden:7687", user="neo4j", password="secret", database="garden")
        with patch("graph_store.GraphDatabase") as graph_db:
            with GardenGraphStore.from_config(cfg) as store:
                graph_db.driver.assert_not_called()
                store.driver
            graph_db.driver.assert_called_once_with(
                "bolt://garden:7687",
                auth=("neo4j", "secret"),
                max_connection_pool_size=50,
                connection_acquisition_timeout=120.0,
                max_connection_lifetime=10800,
            )
            graph_db.driver.return_value.close.assert_called_once()
