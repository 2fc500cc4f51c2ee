from .llm import LLMClient, LLMResponse, LLMUsage
from .repo import ConversationRepo
from .summarizer import Summarizer
from .tokens import TokenCounter
from .truncation import TruncationStrategy

__all__ = [
    "LLMClient",
    "LLMResponse",
    "LLMUsage",
    "ConversationRepo",
    "Summarizer",
    "TokenCounter",
    "TruncationStrategy",
]
