"""LLM package: model client, prompt templates, guardrails and the agent router."""

from cortex.llm.client import LLMClient, LLMResponse, call_llm

__all__ = ["LLMClient", "LLMResponse", "call_llm"]
