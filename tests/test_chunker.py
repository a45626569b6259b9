"""
Slot annotation parsing tests.
"""

import pytest

from nlu_engine.chunker import SLOT_PATTERN, chunk_slots_in_utterance, plain_text
from nlu_engine.errors import InvalidInputError
from nlu_engine.models import SlotDefinition, UtteranceChunk

DRINK = SlotDefinition(name="drink_type", entities=["drink"])


class TestChunkSlots:

    def test_recognized_slot(self):
        chunks = chunk_slots_in_utterance("I want [a latte](drink_type) please", [DRINK])
        assert chunks == [
            UtteranceChunk(value="I want "),
            UtteranceChunk(value="a latte", slot_name="drink_type", slot_idx=0, entities=["drink"]),
            UtteranceChunk(value=" please"),
        ]

    def test_undefined_slot_is_kept_verbatim(self):
        text = "I want [foo](bar) please"
        chunks = chunk_slots_in_utterance(text, [DRINK])
        assert chunks == [UtteranceChunk(value=text)]
        assert not chunks[0].is_slot

    def test_slot_indices_increase_left_to_right(self):
        definitions = [
            SlotDefinition(name="city", entities=["city"]),
            SlotDefinition(name="day", entities=["time"]),
        ]
        chunks = chunk_slots_in_utterance("from [paris](city) to [rome](city) on [monday](day)", definitions)

        slots = [c for c in chunks if c.is_slot]
        assert [(c.value, c.slot_name, c.slot_idx) for c in slots] == [
            ("paris", "city", 0),
            ("rome", "city", 1),
            ("monday", "day", 2),
        ]
        assert plain_text(chunks) == "from paris to rome on monday"

    def test_unknown_annotation_stays_in_literal_before_a_known_slot(self):
        chunks = chunk_slots_in_utterance("I want [foo](bar) and [a latte](drink_type)", [DRINK])
        assert chunks == [
            UtteranceChunk(value="I want [foo](bar) and "),
            UtteranceChunk(value="a latte", slot_name="drink_type", slot_idx=0, entities=["drink"]),
        ]

    def test_unknown_annotations_do_not_consume_slot_indices(self):
        chunks = chunk_slots_in_utterance("[x](nope) [a latte](drink_type)", [DRINK])
        assert [c.slot_idx for c in chunks if c.is_slot] == [0]

    def test_whole_utterance_is_a_slot(self):
        chunks = chunk_slots_in_utterance("[espresso](drink_type)", [DRINK])
        assert chunks == [
            UtteranceChunk(value="espresso", slot_name="drink_type", slot_idx=0, entities=["drink"]),
        ]

    def test_empty_utterance(self):
        assert chunk_slots_in_utterance("", [DRINK]) == []

    def test_plain_utterance(self):
        assert chunk_slots_in_utterance("hello there", []) == [UtteranceChunk(value="hello there")]

    @pytest.mark.parametrize("name", ["my.slot", "my-slot", "my_slot", "slot2"])
    def test_identifier_characters(self, name):
        chunks = chunk_slots_in_utterance(f"book [tomorrow]({name})", [SlotDefinition(name=name)])
        assert chunks[-1].slot_name == name
        assert chunks[-1].entities == []

    def test_identifier_with_other_characters_is_not_a_slot(self):
        assert SLOT_PATTERN.search("[tomorrow](my slot)") is None

    def test_chunks_partition_the_clean_text(self):
        text = "[a](drink_type) then [b](other) and [c](drink_type)!"
        chunks = chunk_slots_in_utterance(text, [DRINK])

        assert plain_text(chunks) == "a then [b](other) and c!"
        for chunk in chunks:
            if not chunk.is_slot:
                assert "(drink_type)" not in chunk.value
        assert all(chunk.value for chunk in chunks)

    def test_chunk_entities_are_not_shared_with_the_definition(self):
        chunks = chunk_slots_in_utterance("[a latte](drink_type)", [DRINK])
        assert chunks[0].entities == DRINK.entities
        assert chunks[0].entities is not DRINK.entities

    @pytest.mark.parametrize("text", ["I want [ ](drink_type)", "[\t](drink_type) please"])
    def test_blank_slot_value_is_rejected(self, text):
        with pytest.raises(InvalidInputError, match="drink_type"):
            chunk_slots_in_utterance(text, [DRINK])

    def test_blank_value_of_unknown_slot_stays_literal(self):
        assert chunk_slots_in_utterance("say [ ](other)", [DRINK]) == [UtteranceChunk(value="say [ ](other)")]
