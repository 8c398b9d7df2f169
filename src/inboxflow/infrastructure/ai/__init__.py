"""AI service adapters."""

from inboxflow.infrastructure.ai.langchain_service import LangChainAiService, parse_classification, parse_drafts
from inboxflow.infrastructure.ai.llm_factory import create_llm

__all__ = ["LangChainAiService", "create_llm", "parse_classification", "parse_drafts"]
