"""Inference engine contract and the in-process mock engine."""

import json
from abc import ABC, abstractmethod

from wordforge.models import SamplingConfig
from wordforge.prompt_builder import Prompt


class EngineError(Exception):
    """Raised when the inference engine cannot produce text."""

    pass


class EngineTimeoutError(EngineError):
    """Raised when a generation call does not finish in time."""

    pass


class EngineUnavailableError(EngineError):
    """Raised when the engine cannot be reached or answers unusably."""

    pass


class EngineAbortedError(EngineError):
    """Raised when a generation call is cut off before completing."""

    pass


class InferenceEngine(ABC):
    """Produces raw text for a prompt under a grammar constraint."""

    name = "engine"

    @abstractmethod
    async def generate(self, prompt: Prompt, grammar: str, sampling: SamplingConfig) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Prompt built for one word
            grammar: GBNF grammar every emitted token sequence must satisfy
            sampling: Decoding parameters for this call

        Returns:
            Raw generated text

        Raises:
            EngineTimeoutError: If the call timed out
            EngineUnavailableError: If the engine is down or misconfigured
            EngineAbortedError: If generation was cut off
        """

    async def aclose(self) -> None:
        """Release engine resources."""
        return None


class MockEngine(InferenceEngine):
    """Deterministic engine returning a schema-conformant entry for any word.

    Used when no model is configured, e.g. for local development.
    """

    name = "mock"

    async def generate(self, prompt: Prompt, grammar: str, sampling: SamplingConfig) -> str:
        word = prompt.word
        entry = {
            "word": word,
            "baseForm": word.lower(),
            "phonetic": "/ˈwɜːd/",
            "difficulty": "intermediate",
            "language": "english",
            "meanings": [
                {
                    "definition": "A carefully constructed placeholder definition that exceeds thirty characters.",
                    "partOfSpeech": "noun",
                    "exampleSentence": f"This sentence uses the word {word} in context.",
                    "grammarTip": "Use consistently within proper grammatical context.",
                    "synonyms": [s for s in ("term", "expression") if s != word.casefold()],
                    "antonyms": [a for a in ("silence",) if a != word.casefold()],
                    "translations": {
                        "es": "palabra",
                        "fr": "mot",
                        "de": "Wort",
                        "zh": "词",
                        "ja": "言葉",
                        "it": "parola",
                        "pt": "palavra",
                        "ru": "слово",
                        "ar": "كلمة",
                    },
                }
            ],
        }
        return json.dumps(entry, ensure_ascii=False)
