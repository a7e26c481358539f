"""
Shared test doubles and payload builders
"""
import asyncio
import copy
import json
from typing import Callable, Union

from wordforge.engine import InferenceEngine
from wordforge.models import SamplingConfig
from wordforge.prompt_builder import Prompt


TRANSLATIONS = {
    "es": "x", "fr": "x", "de": "x", "zh": "x", "ja": "x",
    "it": "x", "pt": "x", "ru": "x", "ar": "x",
}


def make_entry(word: str = "run", **overrides) -> dict:
    """A schema-valid word entry; top-level keys can be overridden."""
    entry = {
        "word": word,
        "baseForm": word.lower(),
        "phonetic": "/rʌn/",
        "difficulty": "beginner",
        "language": "english",
        "meanings": [
            {
                "definition": "To move swiftly on foot so that both feet leave the ground.",
                "partOfSpeech": "verb",
                "exampleSentence": "She runs every morning.",
                "grammarTip": "Irregular: run, ran, run.",
                "synonyms": ["sprint", "dash"],
                "antonyms": ["walk"],
                "translations": dict(TRANSLATIONS),
            }
        ],
    }
    entry.update(overrides)
    return entry


def make_meaning(pos: str = "noun", **overrides) -> dict:
    meaning = copy.deepcopy(make_entry()["meanings"][0])
    meaning["partOfSpeech"] = pos
    meaning.update(overrides)
    return meaning


def entry_json(word: str = "run", **overrides) -> str:
    return json.dumps(make_entry(word, **overrides), ensure_ascii=False)


Reply = Union[str, Exception]


class ScriptedEngine(InferenceEngine):
    """
    Test double engine.

    `script(word, call_number)` decides each reply: a string is returned as raw
    output, an exception instance is raised. The default script answers with a
    valid entry for the requested word. Calls and concurrency are recorded.
    """

    name = "scripted"

    def __init__(self, script: Callable[[str, int], Reply] | None = None, delay: float = 0.0):
        self.script = script or (lambda word, n: entry_json(word))
        self.delay = delay
        self.calls: list[tuple[str, SamplingConfig]] = []
        self.active = 0
        self.peak = 0
        self.cancelled = 0

    def calls_for(self, word: str) -> list[SamplingConfig]:
        return [sampling for w, sampling in self.calls if w == word]

    async def generate(self, prompt: Prompt, grammar: str, sampling: SamplingConfig) -> str:
        call_number = len(self.calls_for(prompt.word))
        self.calls.append((prompt.word, sampling))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.script(prompt.word, call_number)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1
        if isinstance(reply, Exception):
            raise reply
        return reply


