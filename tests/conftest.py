"""Shared fixtures for the gardening retrieval test suite.

The fake store exposes the same run()/session() surface as GardenGraphStore and
answers queries from a scripted responder, recording every call. No live Neo4j
or OpenAI access is needed.
"""

from contextlib import contextmanager

import pytest

from graph_models import GraphEntity, GraphRecord


class FakeSession:
    def __init__(self, store):
        self.store = store

    def run(self, query, parameters=None):
        return self.store.run(query, parameters)


class FakeGraphStore:
    """Scripted stand-in for GardenGraphStore.

    responder(text, params) returns a list of dicts/GraphRecords, or an
    exception instance to raise.
    """

    def __init__(self, responder=None):
        self.responder = responder or (lambda text, params: [])
        self.calls = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    @contextmanager
    def session(self):
        self.sessions_opened += 1
        try:
            yield FakeSession(self)
        finally:
            self.sessions_closed += 1

    def run(self, query, parameters=None):
        text = query.text if hasattr(query, "text") else str(query)
        params = dict(parameters or {})
        self.calls.append((text, params))
        result = self.responder(text, params)
        if isinstance(result, Exception):
            raise result
        return [r if isinstance(r, GraphRecord) else GraphRecord(values=r) for r in result]

    def close(self):
        pass


def plant(name, **properties):
    """Plant entity as the store would return it"""
    return GraphEntity(label="Plant", name=name, properties={"name": name, **properties})


def vocabulary_responder(vocabulary, fallback=None):
    """Answer vocabulary queries (MATCH (n:Label)) from a label -> names mapping"""
    def respond(text, params):
        for label, names in vocabulary.items():
            if text.startswith(f"MATCH (n:{label})\nWHERE n.name IS NOT NULL"):
                return [{"name": n} for n in names]
        if fallback is not None:
            return fallback(text, params)
        return []
    return respond


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def make_store():
    """Factory: make_store(responder) -> FakeGraphStore"""
    return FakeGraphStore


@pytest.fixture
def empty_store():
    """Store where every query returns no rows."""
    return FakeGraphStore()


@pytest.fixture
def garden_vocabulary():
    return {
        "Plant": ["Potato", "Carrot", "Cabbage", "Apple Tree"],
        "SoilType": ["Clay", "Loam", "Peat"],
        "County": ["Cork", "Dublin", "Sligo", "Kerry"],
        "Month": ["January", "February", "March", "April", "May"],
    }
