#!/usr/bin/env python3
"""
graph_errors.py - Error taxonomy for the gardening knowledge graph retrieval layer

Only connectivity and binding problems are real failures. An empty result after
every relaxation strategy is a normal return value (success=False), not an error.
"""

from typing import Iterable, Optional, Tuple


class GardenGraphError(Exception):
    """Base class for retrieval-layer errors"""


class StoreConnectivityError(GardenGraphError):
    """The graph store is unreachable or a session could not be opened"""


class MissingParameterError(GardenGraphError):
    """A query parameter is required but was neither supplied nor defaulted"""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"Missing required query parameter: {parameter}")


class MalformedQueryError(GardenGraphError):
    """The store rejected the query text"""

    def __init__(self, message: str, query: Optional[str] = None):
        self.query = query
        super().__init__(message)


class UnboundParameterError(MalformedQueryError):
    """
    Store-reported parameter binding mismatch: the query references names that
    were not bound at execution time. This is the one malformed-query signature
    the parameter safety layer knows how to recover from.
    """

    def __init__(self, parameters: Iterable[str], query: Optional[str] = None):
        self.parameters: Tuple[str, ...] = tuple(parameters)
        names = ", ".join(self.parameters) or "unknown"
        super().__init__(f"Query references unbound parameter(s): {names}", query=query)
