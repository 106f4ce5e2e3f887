#!/usr/bin/env python3
"""
llm_chain.py - Answer generation for the gardening GraphRAG assistant
Turns retrieved graph facts (or their absence) into a natural language answer
"""

import logging
from typing import Dict, Optional
from langchain_openai import OpenAI
from langchain_core.prompts import PromptTemplate
from langchain_core.output_parsers import StrOutputParser

logger = logging.getLogger(__name__)

GARDENING_SYSTEM_INSTRUCTION = """You are an expert Irish gardening assistant backed by a knowledge graph of plants, soils, counties and seasons.
Only answer gardening questions: plants, soil, garden tasks, seasonal work and sustainable practice.
Keep advice specific to Irish growing conditions."""

APOLOGY_ANSWER = "I'm sorry, I couldn't generate an answer due to a technical issue."


class GardenResponseGenerator:
    """
    Text-generation collaborator: prompt text in, plain text out.
    Builds answer prompts from retrieved facts, or a general-advice prompt when
    retrieval found nothing.
    """

    def __init__(
        self,
        openai_api_key: Optional[str] = None,
        model: str = "gpt-3.5-turbo-instruct",
        temperature: float = 0.7,
        max_tokens: int = 500,
        llm=None,
    ):
        """
        Initialize the response generator

        Args:
            openai_api_key: OpenAI API key (unused when llm is given)
            model: completion model name
            temperature: default sampling temperature
            max_tokens: default answer length
            llm: prebuilt LangChain LLM, e.g. for tests
        """
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.llm = llm or OpenAI(
            openai_api_key=openai_api_key,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        self.output_parser = StrOutputParser()
        self.raw_prompt = PromptTemplate(input_variables=["prompt"], template="{prompt}")
        self.answer_prompt = self._create_answer_prompt()
        self.no_data_prompt = self._create_no_data_prompt()

    def _create_answer_prompt(self) -> PromptTemplate:
        template = GARDENING_SYSTEM_INSTRUCTION + """

Answer the following question based on the provided context.
Question: {question}
Context: {context}

Give practical advice for Irish gardens. Mention plant names from the context where they help."""
        return PromptTemplate(input_variables=["question", "context"], template=template)

    def _create_no_data_prompt(self) -> PromptTemplate:
        template = GARDENING_SYSTEM_INSTRUCTION + """

Answer: "{question}"
No specific garden data was found for this question. Provide general Irish gardening advice that addresses it.
Include practical tips, seasonal considerations and growing conditions common in Ireland.
{context}"""
        return PromptTemplate(input_variables=["question", "context"], template=template)

    def _chain(self, prompt: PromptTemplate, max_tokens: Optional[int], temperature: Optional[float]):
        options = {}
        if max_tokens is not None and max_tokens != self.max_tokens:
            options["max_tokens"] = max_tokens
        if temperature is not None and temperature != self.temperature:
            options["temperature"] = temperature
        llm = self.llm.bind(**options) if options else self.llm
        return prompt | llm | self.output_parser

    def generate(self, prompt_text: str, max_tokens: Optional[int] = None, temperature: Optional[float] = None) -> str:
        """Plain prompt in, plain text out; errors propagate"""
        chain = self._chain(self.raw_prompt, max_tokens, temperature)
        return chain.invoke({"prompt": prompt_text}).strip()

    def generate_answer(self, question: str, context_text: str, has_data: bool = True) -> Dict[str, object]:
        """
        Generate the final answer

        Args:
            question: the user's question
            context_text: formatted facts and caller context
            has_data: False when retrieval found nothing after relaxation

        Returns:
            Dict with answer, fallback flag and (on failure) error
        """
        prompt = self.answer_prompt if has_data else self.no_data_prompt
        try:
            logger.info(f"Generating {'grounded' if has_data else 'general'} answer for: {question[:50]}...")
            chain = self._chain(prompt, self.max_tokens, self.temperature)
            answer = chain.invoke({"question": question, "context": context_text}).strip()
            return {"answer": answer, "fallback": False}
        except Exception as e:
            logger.error(f"Response generation failed: {e}")
            return {"answer": APOLOGY_ANSWER, "fallback": True, "error": str(e)}
