from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from fm_chat.app.settings import AppSettings

from fm_chat.ports.llm import LLMClient
from fm_chat.ports.summarizer import Summarizer
from fm_chat.ports.tokens import TokenCounter

from fm_chat.adapters.repo_json import JsonFileConversationRepo
from fm_chat.adapters.trunc_recency import RecencyTruncation

from fm_chat.use_cases.budget import TokenBudget
from fm_chat.use_cases.chat_engine import ChatEngine
from fm_chat.use_cases.context_manager import ContextBudgetManager, SummaryPolicy


@dataclass(frozen=True)
class EngineBundle:
    engine: ChatEngine
    repo: JsonFileConversationRepo
    manager: ContextBudgetManager
    llm: LLMClient
    counter: TokenCounter


# -----------------------
# Internal shared cache
# -----------------------
_cache_lock = Lock()
_shared: Dict[Tuple[Any, ...], EngineBundle] = {}


def _settings_key(s: AppSettings) -> Tuple[Any, ...]:
    return (s.data_store_dir, s.engine, s.budget)


def _build(settings: AppSettings) -> EngineBundle:
    eng = settings.engine
    bs = settings.budget

    if eng.tokenizer_backend == "tiktoken":
        from fm_chat.adapters.tokens_tiktoken import TiktokenTokenCounter
        counter: TokenCounter = TiktokenTokenCounter()
    else:
        from fm_chat.adapters.tokens_approx import ApproxTokenCounter
        counter = ApproxTokenCounter()

    if eng.llm_backend == "ollama":
        from fm_chat.adapters.llm_ollama import OllamaLLMClient
        llm: LLMClient = OllamaLLMClient(base_url=eng.ollama_url, model=eng.ollama_model)
    else:
        from fm_chat.adapters.llm_mock import EchoMockLLM
        llm = EchoMockLLM()

    summarizer: Optional[Summarizer]
    if not eng.enable_summary:
        summarizer = None
    elif eng.summarizer_backend == "llm":
        from fm_chat.adapters.summarizer_llm import LLMSummarizer
        summarizer = LLMSummarizer(llm=llm)
    else:
        from fm_chat.adapters.summarizer_mock import MockSummarizer
        summarizer = MockSummarizer()

    manager = ContextBudgetManager(
        counter,
        summarizer,
        truncation=RecencyTruncation(),
        policy=SummaryPolicy(
            max_summary_tokens=bs.summary_max_tokens,
            max_rounds=bs.summary_max_rounds,
            timeout_s=bs.summary_timeout_s if bs.summary_timeout_s > 0 else None,
        ),
        framing_overhead=bs.framing_overhead,
    )

    repo = JsonFileConversationRepo(settings.data_store_dir)

    engine = ChatEngine(
        repo=repo,
        llm=llm,
        manager=manager,
        budget=TokenBudget(hard_limit=bs.hard_limit, safe_limit=bs.safe_limit),
        system_prompt=eng.system_prompt,
        reserve_output_tokens=eng.reserve_output_tokens,
    )

    return EngineBundle(engine=engine, repo=repo, manager=manager, llm=llm, counter=counter)


def build_bundle(settings: AppSettings) -> EngineBundle:
    key = _settings_key(settings)

    with _cache_lock:
        bundle = _shared.get(key)
        if bundle is None:
            bundle = _build(settings)
            _shared[key] = bundle

    return bundle


def reset_cache() -> None:
    with _cache_lock:
        _shared.clear()
