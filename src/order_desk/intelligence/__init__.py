"""Classification of threads: rules, LLM classifier and document analysis."""

from order_desk.core.interfaces import ClassifierError

from .batching import Outcome, run_batched
from .classifier import ClassificationEngine, ClassificationRun
from .documents import CachingDocumentAnalyzer
from .llm import LLMClient, LLMError, LLMThreadClassifier, OllamaClient

__all__ = [
    "CachingDocumentAnalyzer",
    "ClassificationEngine",
    "ClassificationRun",
    "ClassifierError",
    "LLMClient",
    "LLMError",
    "LLMThreadClassifier",
    "OllamaClient",
    "Outcome",
    "run_batched",
]
