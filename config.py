#!/usr/bin/env python3
"""
config.py - Configuration settings for the gardening graph retrieval engine.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Recommendations are never ranked beyond this many plants
MAX_RECOMMENDATIONS = 8

@dataclass
class Neo4jConfig:
    """Neo4j database configuration"""
    uri: str = "bolt://localhost:7687"
    user: str = "neo4j"
    password: str = ""
    database: str = "neo4j"
    max_connection_pool_size: int = 50
    connection_acquisition_timeout: float = 120.0  # seconds
    max_connection_lifetime: float = 3 * 60 * 60  # seconds

@dataclass
class OpenAIConfig:
    """OpenAI API configuration"""
    api_key: str = ""
    model: str = "gpt-3.5-turbo-instruct"  # Answer generation (completion model)
    cypher_model: str = "gpt-4o-mini"  # Cypher generation (chat model)
    temperature: float = 0.7
    max_tokens: int = 500

@dataclass
class RetrievalConfig:
    """Retrieval and recommendation settings"""
    recommendation_limit: int = MAX_RECOMMENDATIONS
    match_score_ceiling: int = 80
    default_county: str = "Dublin"
    default_sun_exposure: str = "Full Sun"
    max_facts: int = 40
    log_level: str = "INFO"

class Config:
    """Main configuration class"""

    def __init__(self):
        self.neo4j = Neo4jConfig()
        self.openai = OpenAIConfig()
        self.retrieval = RetrievalConfig()
        self._load_from_env()

    def _load_from_env(self):
        """Load configuration from environment variables"""
        # Neo4j configuration
        self.neo4j.uri = os.getenv("NEO4J_URI", self.neo4j.uri)
        self.neo4j.user = os.getenv("NEO4J_USER", self.neo4j.user)
        self.neo4j.password = os.getenv("NEO4J_PASSWORD", self.neo4j.password)
        self.neo4j.database = os.getenv("NEO4J_DATABASE", self.neo4j.database)

        # OpenAI configuration
        self.openai.api_key = os.getenv("OPENAI_API_KEY", self.openai.api_key)
        self.openai.model = os.getenv("OPENAI_MODEL", self.openai.model)
        self.openai.cypher_model = os.getenv("OPENAI_CYPHER_MODEL", self.openai.cypher_model)

        # Retrieval configuration
        if os.getenv("RETRIEVAL_RECOMMENDATION_LIMIT"):
            self.retrieval.recommendation_limit = int(os.getenv("RETRIEVAL_RECOMMENDATION_LIMIT"))

        if os.getenv("RETRIEVAL_MAX_FACTS"):
            self.retrieval.max_facts = int(os.getenv("RETRIEVAL_MAX_FACTS"))

        self.retrieval.log_level = os.getenv("LOG_LEVEL", self.retrieval.log_level)

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration and return any errors"""
        errors = []

        if not self.neo4j.password:
            errors.append("Neo4j password is required")

        if not self.openai.api_key:
            errors.append("OpenAI API key is required")

        if self.openai.temperature < 0 or self.openai.temperature > 1:
            errors.append("OpenAI temperature must be between 0 and 1")

        if not 0 < self.retrieval.recommendation_limit <= MAX_RECOMMENDATIONS:
            errors.append(f"Recommendation limit must be between 1 and {MAX_RECOMMENDATIONS}")

        if self.retrieval.match_score_ceiling <= 0:
            errors.append("Match score ceiling must be positive")

        if self.retrieval.max_facts <= 0:
            errors.append("Max facts must be positive")

        return len(errors) == 0, errors

# Global configuration instance
config = Config()
