"""Configuration loading from the environment and validation."""

import os
from unittest.mock import patch

from config import Config


def test_defaults_without_environment():
    with patch.dict(os.environ, {}, clear=True):
        cfg = Config()
    assert cfg.neo4j.uri == "bolt://localhost:7687"
    assert cfg.neo4j.max_connection_pool_size == 50
    assert cfg.retrieval.recommendation_limit == 8
    assert cfg.retrieval.match_score_ceiling == 80
    assert cfg.retrieval.default_county == "Dublin"


def test_environment_overrides():
    env = {
        "NEO4J_URI": "bolt://garden:7687",
        "NEO4J_PASSWORD": "secret",
        "NEO4J_DATABASE": "garden",
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_CYPHER_MODEL": "gpt-4o",
        "RETRIEVAL_RECOMMENDATION_LIMIT": "5",
        "RETRIEVAL_MAX_FACTS": "12",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env, clear=True):
        cfg = Config()
    assert cfg.neo4j.uri == "bolt://garden:7687"
    assert cfg.neo4j.database == "garden"
    assert cfg.openai.cypher_model == "gpt-4o"
    assert cfg.retrieval.recommendation_limit == 5
    assert cfg.retrieval.max_facts == 12
    assert cfg.retrieval.log_level == "DEBUG"

    ok, errors = cfg.validate()
    assert ok
    assert errors == []


def test_validation_errors():
    with patch.dict(os.environ, {}, clear=True):
        cfg = Config()
    cfg.openai.temperature = 1.5
    cfg.retrieval.recommendation_limit = 0

    ok, errors = cfg.validate()
    assert not ok
    assert "Neo4j password is required" in errors
    assert "OpenAI API key is required" in errors
    assert "OpenAI temperature must be between 0 and 1" in errors
    assert "Recommendation limit must be between 1 and 8" in errors


def test_recommendation_limit_above_cap_rejected():
    env = {"NEO4J_PASSWORD": "secret", "OPENAI_API_KEY": "sk-test", "RETRIEVAL_RECOMMENDATION_LIMIT": "20"}
    with patch.dict(os.environ, env, clear=True):
        cfg = Config()

    ok, errors = cfg.validate()
    assert not ok
    assert errors == ["Recommendation limit must be between 1 and 8"]
