from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_choice(name: str, default: str, allowed: set[str]) -> str:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    val = v.strip().lower()
    return val if val in allowed else default


def _env_limits(hard: int, safe: int) -> tuple[int, int]:
    # несогласованная пара лимитов целиком откатывается к дефолтам
    if hard <= 0 or safe <= 0 or safe > hard:
        return BudgetSettings.hard_limit, BudgetSettings.safe_limit
    return hard, safe


@dataclass(frozen=True)
class BudgetSettings:
    hard_limit: int = 4096
    safe_limit: int = 3500
    framing_overhead: int = 32

    summary_max_tokens: int = 512
    summary_max_rounds: int = 3
    summary_timeout_s: float = 30.0


@dataclass(frozen=True)
class EngineSettings:
    system_prompt: str = "You are a helpful assistant."
    reserve_output_tokens: int = 512

    enable_summary: bool = True

    llm_backend: str = "mock"          # mock | ollama
    summarizer_backend: str = "mock"   # mock | llm
    tokenizer_backend: str = "approx"  # approx | tiktoken

    ollama_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "llama3.1:8b"


@dataclass(frozen=True)
class AppSettings:
    data_store_dir: str = "./data"
    engine: EngineSettings = EngineSettings()
    budget: BudgetSettings = BudgetSettings()

    @staticmethod
    def from_env() -> "AppSettings":
        eng = EngineSettings(
            system_prompt=_env_str("FM_SYSTEM_PROMPT", EngineSettings.system_prompt),
            reserve_output_tokens=_env_int("FM_RESERVE_OUTPUT", EngineSettings.reserve_output_tokens),

            enable_summary=_env_bool("FM_ENABLE_SUMMARY", EngineSettings.enable_summary),

            llm_backend=_env_choice("FM_LLM", EngineSettings.llm_backend, {"mock", "ollama"}),
            summarizer_backend=_env_choice("FM_SUMMARIZER", EngineSettings.summarizer_backend, {"mock", "llm"}),
            tokenizer_backend=_env_choice("FM_TOKENIZER", EngineSettings.tokenizer_backend, {"approx", "tiktoken"}),

            ollama_url=_env_str("FM_OLLAMA_URL", EngineSettings.ollama_url),
            ollama_model=_env_str("FM_OLLAMA_MODEL", EngineSettings.ollama_model),
        )

        hard_limit, safe_limit = _env_limits(
            _env_int("FM_HARD_LIMIT", BudgetSettings.hard_limit),
            _env_int("FM_SAFE_LIMIT", BudgetSettings.safe_limit),
        )
        budget = BudgetSettings(
            hard_limit=hard_limit,
            safe_limit=safe_limit,
            framing_overhead=_env_int("FM_FRAMING_OVERHEAD", BudgetSettings.framing_overhead),
            summary_max_tokens=_env_int("FM_SUMMARY_MAX_TOKENS", BudgetSettings.summary_max_tokens),
            summary_max_rounds=_env_int("FM_SUMMARY_MAX_ROUNDS", BudgetSettings.summary_max_rounds),
            summary_timeout_s=_env_float("FM_SUMMARY_TIMEOUT", BudgetSettings.summary_timeout_s),
        )

        return AppSettings(
            data_store_dir=_env_str("FM_DATA_STORE", "./data"),
            engine=eng,
            budget=budget,
        )
