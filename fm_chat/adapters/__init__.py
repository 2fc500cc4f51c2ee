from .llm_mock import EchoMockLLM, ScriptedMockLLM
from .tokens_approx import ApproxTokenCounter
from .repo_json import JsonFileConversationRepo
from .summarizer_mock import MockSummarizer
from .trunc_recency import RecencyTruncation

__all__ = [
    "EchoMockLLM", "ScriptedMockLLM",
    "ApproxTokenCounter",
    "JsonFileConversationRepo",
    "MockSummarizer",
    "RecencyTruncation",
]
