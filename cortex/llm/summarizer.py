"""Long-term conversation memory: condenses recent turns into a lead summary."""

from __future__ import annotations

from cortex.core.exceptions import LLMError
from cortex.llm.client import LLMClient
from cortex.llm.prompt_templates.defaults import render_summary_prompt

MAX_SUMMARY_LENGTH = 2000


class ConversationSummarizer:
    def __init__(self, client: LLMClient) -> None:
        self.client = client

    def summarize(self, history: list[str], previous_summary: str | None = None) -> str:
        system = render_summary_prompt({"history": "\n".join(history), "summary": previous_summary})
        response = self.client.generate(system, "Genera el resumen.", json_mode=False, temperature=0.2)
        summary = response.text.strip()
        if not summary:
            raise LLMError("Empty conversation summary.")
        return summary[:MAX_SUMMARY_LENGTH]
