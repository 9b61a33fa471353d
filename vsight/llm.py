from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import AzureChatOpenAI

from vsight.config import AppConfig
from vsight.insights import summarize


logger = logging.getLogger(__name__)

EMPTY_PROMPT_ANSWER = (
    "Ask me about drops/spikes, Top keywords, or GBP trends. "
    "(Full AI coming in the next patch.)"
)

SYSTEM_PROMPT = (
    "You are an SEO analyst for a small-business dashboard. Answer in at most "
    "four short sentences, using only the data summary provided. If the summary "
    "is empty, say that no data is connected yet."
)


def build_llm(config: AppConfig) -> AzureChatOpenAI:
    if not config.llm_enabled:
        raise RuntimeError(
            "LLM config missing. Required: LLM_ENDPOINT, LLM_API_KEY, "
            "LLM_API_VERSION, LLM_MODEL."
        )

    return AzureChatOpenAI(
        azure_endpoint=config.llm_endpoint,
        api_key=config.llm_api_key,
        openai_api_version=config.llm_api_version,
        azure_deployment=config.llm_model,
        temperature=config.llm_temperature,
        timeout=config.llm_timeout_sec,
        max_retries=0,
    )


def placeholder_answer(prompt: str) -> str:
    if prompt:
        return f"Thanks! I’ll soon analyze your connected data for: “{prompt}”."
    return EMPTY_PROMPT_ANSWER


def answer_question(
    prompt: str,
    rows: Sequence[Mapping[str, Any]] | None,
    config: AppConfig,
    llm: Any = None,
) -> str:
    question = (prompt or "").strip()
    if not question or (llm is None and not config.llm_enabled):
        return placeholder_answer(question)

    model = llm if llm is not None else build_llm(config)
    template = ChatPromptTemplate.from_messages(
        [
            ("system", SYSTEM_PROMPT),
            ("human", "Data summary:\n{summary}\n\nQuestion: {question}"),
        ]
    )
    chain = template | model | StrOutputParser()
    summary = summarize(list(rows or []))
    logger.info("Answering dashboard question with %s row(s) of context.", len(rows or []))
    return str(chain.invoke({"summary": summary or "(no data)", "question": question})).strip()
