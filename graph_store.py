#!/usr/bin/env python3
"""
graph_store.py - Store-client handle over the Neo4j driver

The handle is passed explicitly to the extractor, relaxation engine and scorer.
Sessions are acquired per logical unit of work and always released, and driver
errors are translated into the retrieval-layer error taxonomy:

    ServiceUnavailable / SessionExpired / AuthError -> StoreConnectivityError
    CypherSyntaxError                               -> MalformedQueryError
    ClientError (Statement.ParameterMissing)        -> UnboundParameterError
"""

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Union

from neo4j import GraphDatabase
from neo4j.exceptions import AuthError, ClientError, CypherSyntaxError, ServiceUnavailable, SessionExpired
from neo4j.graph import Node, Relationship

from cypher_builder import CypherQuery
from graph_errors import MalformedQueryError, StoreConnectivityError, UnboundParameterError
from graph_models import GraphEntity, GraphRecord, GraphRelationship

logger = logging.getLogger(__name__)

PARAMETER_MISSING_CODE = "Neo.ClientError.Statement.ParameterMissing"
_EXPECTED_PARAMS = re.compile(r"Expected parameter\(s\):\s*(.+)", re.IGNORECASE)

QueryLike = Union[CypherQuery, str]


def _query_text(query: QueryLike) -> str:
    return query.text if isinstance(query, CypherQuery) else str(query)


def _missing_parameter_names(message: Optional[str]) -> List[str]:
    match = _EXPECTED_PARAMS.search(message or "")
    if not match:
        return []
    return [name.strip() for name in match.group(1).split(",") if name.strip()]


def convert_value(value: Any) -> Any:
    """Map driver values onto the record union; unknown shapes stay raw"""
    if isinstance(value, Node):
        return GraphEntity.from_node(value.labels, dict(value))
    if isinstance(value, Relationship):
        start = value.start_node.get("name", "") if value.start_node is not None else ""
        end = value.end_node.get("name", "") if value.end_node is not None else ""
        return GraphRelationship(rel_type=value.type, source_name=start, target_name=end, properties=dict(value))
    if isinstance(value, list):
        return [convert_value(v) for v in value]
    if isinstance(value, dict):
        return {k: convert_value(v) for k, v in value.items()}
    return value


def convert_record(record) -> GraphRecord:
    return GraphRecord(values={key: convert_value(value) for key, value in record.items()})


class GraphSession:
    """One open driver session; runs queries and translates driver errors"""

    def __init__(self, session):
        self._session = session

    def run(self, query: QueryLike, parameters: Optional[Mapping[str, Any]] = None) -> List[GraphRecord]:
        text = _query_text(query)
        params = dict(parameters or {})
        try:
            result = self._session.run(text, params)
            return [convert_record(record) for record in result]
        except (ServiceUnavailable, SessionExpired, AuthError) as e:
            raise StoreConnectivityError(f"Graph store unavailable: {e}") from e
        except CypherSyntaxError as e:
            raise MalformedQueryError(e.message or str(e), query=text) from e
        except ClientError as e:
            if e.code == PARAMETER_MISSING_CODE:
                raise UnboundParameterError(_missing_parameter_names(e.message), query=text) from e
            raise


class GardenGraphStore:
    """Explicit handle to the gardening graph; callers own its lifecycle"""

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "",
        database: str = "neo4j",
        driver=None,
        **driver_options,
    ):
        self.uri = uri
        self.user = user
        self.password = password
        self.database = database
        self._driver = driver
        self._owns_driver = driver is None
        self._driver_options = driver_options

    @classmethod
    def from_config(cls, neo4j_config) -> "GardenGraphStore":
        return cls(
            uri=neo4j_config.uri,
            user=neo4j_config.user,
            password=neo4j_config.password,
            database=neo4j_config.database,
            max_connection_pool_size=neo4j_config.max_connection_pool_size,
            connection_acquisition_timeout=neo4j_config.connection_acquisition_timeout,
            max_connection_lifetime=neo4j_config.max_connection_lifetime,
        )

    @property
    def driver(self):
        if self._driver is None:
            logger.info(f"Connecting to Neo4j at {self.uri}")
            self._driver = GraphDatabase.driver(self.uri, auth=(self.user, self.password), **self._driver_options)
        return self._driver

    @contextmanager
    def session(self) -> Iterator[GraphSession]:
        """Acquire a session for one unit of work; released on every exit path"""
        try:
            raw = self.driver.session(database=self.database)
        except (ServiceUnavailable, SessionExpired, AuthError) as e:
            raise StoreConnectivityError(f"Could not open graph session: {e}") from e
        with raw as session:
            yield GraphSession(session)

    def run(self, query: QueryLike, parameters: Optional[Mapping[str, Any]] = None) -> List[GraphRecord]:
        """Run a single query in its own session"""
        with self.session() as session:
            return session.run(query, parameters)

    def verify_connectivity(self) -> None:
        try:
            self.driver.verify_connectivity()
        except (ServiceUnavailable, SessionExpired, AuthError) as e:
            raise StoreConnectivityError(f"Graph store unavailable: {e}") from e

    def close(self):
        if self._driver is not None and self._owns_driver:
            self._driver.close()
            logger.info("Neo4j driver closed")
        self._driver = None if self._owns_driver else self._driver

    def __enter__(self) -> "GardenGraphStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
