"""Shared fixtures: an in-process tokenizer/vectorizer and utterance helpers"""

import re

import numpy as np
import pytest

from nlu_engine.models import Intent, SlotDefinition, StructuredTrainInput
from nlu_engine.utterance import SPACE, Utterance

_TOKEN_PATTERN = re.compile(r"\s*\w+|\s*[^\w\s]|\s+")


def tokenize(text):
    """Words and punctuation, whitespace carried as space markers on the next token"""
    return [t.replace(" ", SPACE) for t in _TOKEN_PATTERN.findall(text)]


def vectorize(token):
    codes = [ord(c) for c in token]
    return np.array([len(token), sum(codes) % 97, codes[0] % 13], dtype=np.float32)


class FakeTrainTools:
    """Tooling adapter recording every call it receives"""

    def __init__(self):
        self.tokenize_calls = []
        self.vectorize_calls = []

    async def tokenize_utterances(self, utterances, language_code):
        self.tokenize_calls.append((list(utterances), language_code))
        return [tokenize(u) for u in utterances]

    async def vectorize_tokens(self, tokens, language_code):
        self.vectorize_calls.append((list(tokens), language_code))
        return [vectorize(t) for t in tokens]


@pytest.fixture
def tools():
    return FakeTrainTools()


@pytest.fixture
def make_utterance():
    def _make(text):
        tokens = tokenize(text)
        return Utterance(tokens, [vectorize(t) for t in tokens])
    return _make


@pytest.fixture
def train_input():
    return StructuredTrainInput(
        bot_id="coffee-bot",
        language_code="en",
        contexts=["global"],
        intents=[
            Intent[str](
                name="order_drink",
                contexts=["global"],
                slot_definitions=[SlotDefinition(name="drink_type", entities=["drink"])],
                utterances=[
                    "I want [a latte](drink_type) please",
                    "give me [an espresso](drink_type)",
                    "I want coffee",
                ],
            ),
            Intent[str](
                name="greeting",
                contexts=["global"],
                utterances=["hello there", "hello"],
            ),
        ],
    )
