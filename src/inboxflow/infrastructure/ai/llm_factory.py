"""Chat model construction for the configured provider."""

from langchain_core.language_models.chat_models import BaseChatModel
from loguru import logger

from inboxflow.infrastructure.settings import Settings


def create_llm(settings: Settings) -> BaseChatModel:
    """Create the appropriate LLM based on settings."""
    provider = settings.llm_provider

    if provider == "local":
        from langchain_openai import ChatOpenAI

        logger.info(f"Initializing local vLLM at {settings.vllm_base_url} with model {settings.vllm_model_name}")
        return ChatOpenAI(
            base_url=settings.vllm_base_url,
            api_key="not-needed",
            model_name=settings.vllm_model_name,
            temperature=0.3,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    elif provider == "groq":
        from langchain_groq import ChatGroq

        if not settings.groq_api_key:
            raise ValueError("GROQ_API_KEY is required when llm_provider=groq")

        logger.info("Initializing Groq LLM with model llama-3.3-70b-versatile")
        return ChatGroq(
            api_key=settings.groq_api_key.get_secret_value(),
            model_name="llama-3.3-70b-versatile",
            temperature=0.3,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    elif provider == "openai":
        from langchain_openai import ChatOpenAI

        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required when llm_provider=openai")

        logger.info("Initializing OpenAI LLM with model gpt-4o-mini")
        return ChatOpenAI(
            api_key=settings.openai_api_key.get_secret_value(),
            model_name="gpt-4o-mini",
            temperature=0.3,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    elif provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is required when llm_provider=anthropic")

        logger.info(f"Initializing Anthropic LLM with model {settings.anthropic_model}")
        return ChatAnthropic(
            api_key=settings.anthropic_api_key.get_secret_value(),
            model_name=settings.anthropic_model,
            temperature=0.3,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
