"""
Intent service tests: validation, flow-derived intents and training requests.
"""

import json

import pytest

from nlu_engine.errors import InvalidInputError, NotFoundError
from nlu_engine.intent_service import IntentService, sanitize_file_name
from nlu_engine.models import IntentDefinition, SlotDefinition
from nlu_engine.storage import FileSystemDocumentStore

BOT = "coffee-bot"

MAIN_FLOW = {
    "variables": [
        {"type": "string", "params": {"name": "drink_type", "subType": "drink"}},
        {"type": "number", "params": {"name": "count"}},
        {"type": "string", "params": {}},
    ],
    "nodes": [
        {
            "name": "Entry Node",
            "type": "trigger",
            "conditions": [
                {"id": "user_intent_is", "params": {"utterances": {"en": ["I want [a latte](drink_type)"]}}},
                {"id": "raw_js", "params": {}},
                {"id": "user_intent_is", "params": {"utterances": {"en": ["coffee please"], "fr": ["un café"]}}},
            ],
        },
        {
            "name": "standard",
            "type": "standard",
            "triggers": [
                {"conditions": [{"id": "user_intent_is", "params": {"utterances": {"en": ["go back"]}}}]},
            ],
        },
        {"name": "say", "type": "say_something"},
    ],
}


async def _write_json(service, folder, name, data):
    await service.store.for_bot(BOT).write(folder, name, json.dumps(data))


@pytest.fixture
def service(tmp_path):
    return IntentService(FileSystemDocumentStore(tmp_path))


def _greeting(**overrides):
    data = dict(
        name="greeting",
        contexts=["global"],
        slots=[],
        utterances={"en": ["hello", "hi there"], "fr": ["bonjour"]},
    )
    data.update(overrides)
    return IntentDefinition(**data)


class TestSanitizeFileName:

    @pytest.mark.parametrize("name,expected", [
        ("Greeting", "greeting"),
        ("greeting.json", "greeting"),
        ("main/Entry Node/0", "main/entry-node/0"),
        ("  spaced  ", "spaced"),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_file_name(name) == expected


class TestStoredIntents:

    @pytest.mark.asyncio
    async def test_save_and_get(self, service):
        await service.save_intent(BOT, _greeting())

        intent = await service.get_intent(BOT, "greeting")
        assert intent == _greeting()

    @pytest.mark.asyncio
    async def test_get_missing_intent(self, service):
        with pytest.raises(NotFoundError):
            await service.get_intent(BOT, "greeting")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", ".json", "../escape", "/tmp/escape"])
    async def test_invalid_names(self, service, name):
        with pytest.raises(InvalidInputError):
            await service.save_intent(BOT, _greeting(name=name))
        with pytest.raises(InvalidInputError):
            await service.get_intent(BOT, name)

    @pytest.mark.asyncio
    async def test_slot_with_undefined_entity_is_rejected(self, service):
        intent = _greeting(slots=[SlotDefinition(name="drink_type", entities=["drink"])])
        with pytest.raises(InvalidInputError, match='"drink"'):
            await service.save_intent(BOT, intent)

    @pytest.mark.asyncio
    async def test_slot_with_system_or_custom_entity(self, service):
        await _write_json(service, "entities", "drink.json", {"name": "drink", "type": "list"})
        intent = _greeting(slots=[
            SlotDefinition(name="drink_type", entities=["drink"]),
            SlotDefinition(name="when", entities=["time"]),
        ])

        assert await service.save_intent(BOT, intent) == intent

    @pytest.mark.asyncio
    async def test_duplicate_slot_names_are_rejected(self, service):
        intent = _greeting(slots=[
            SlotDefinition(name="when", entities=["time"]),
            SlotDefinition(name="when", entities=["time"]),
        ])
        with pytest.raises(InvalidInputError):
            await service.save_intent(BOT, intent)

    @pytest.mark.asyncio
    async def test_delete(self, service):
        await service.save_intent(BOT, _greeting())
        await service.delete_intent(BOT, "greeting")

        assert not await service.intent_exists(BOT, "greeting")
        with pytest.raises(NotFoundError):
            await service.delete_intent(BOT, "greeting")

    @pytest.mark.asyncio
    async def test_absolute_name_does_not_write_outside_the_store(self, tmp_path):
        service = IntentService(FileSystemDocumentStore(tmp_path / "store"))
        outside = tmp_path / "outside" / "greeting"

        with pytest.raises(InvalidInputError):
            await service.save_intent(BOT, _greeting(name=str(outside)))
        assert not outside.with_suffix(".json").exists()
        assert not (tmp_path / "outside").exists()


class TestIntentUpdates:

    @pytest.mark.asyncio
    async def test_update_merges_utterances_per_language(self, service):
        await service.save_intent(BOT, _greeting())

        updated = await service.update_intent(BOT, "greeting", {
            "contexts": ["support"],
            "utterances": {"fr": ["salut"], "de": ["hallo"]},
        })

        assert updated.contexts == ["support"]
        assert updated.utterances == {"en": ["hello", "hi there"], "fr": ["salut"], "de": ["hallo"]}
        assert await service.get_intent(BOT, "greeting") == updated

    @pytest.mark.asyncio
    async def test_rename_moves_the_file(self, service):
        await service.save_intent(BOT, _greeting())

        renamed = await service.update_intent(BOT, "greeting", {"name": "Welcome"})

        assert renamed.name == "Welcome"
        assert not await service.intent_exists(BOT, "greeting")
        assert (await service.get_intent(BOT, "welcome")).utterances == _greeting().utterances

    @pytest.mark.asyncio
    async def test_invalid_rename_keeps_the_original(self, service):
        await service.save_intent(BOT, _greeting())

        with pytest.raises(InvalidInputError):
            await service.update_intent(BOT, "greeting", {
                "name": "welcome",
                "slots": [{"name": "drink_type", "entities": ["drink"]}],
            })
        assert await service.intent_exists(BOT, "greeting")
        assert not await service.intent_exists(BOT, "welcome")

    @pytest.mark.asyncio
    async def test_update_missing_intent(self, service):
        with pytest.raises(NotFoundError):
            await service.update_intent(BOT, "greeting", {"contexts": []})

    @pytest.mark.asyncio
    async def test_entity_rename_updates_slots(self, service):
        await _write_json(service, "entities", "drink.json", {"name": "drink", "type": "list"})
        await service.save_intent(BOT, _greeting(name="order", slots=[
            SlotDefinition(name="drink_type", entities=["drink", "any"]),
            SlotDefinition(name="when", entities=["time"]),
        ]))
        await service.save_intent(BOT, _greeting())

        await service.store.for_bot(BOT).delete("entities", "drink.json")
        await _write_json(service, "entities", "beverage.json", {"name": "beverage", "type": "list"})
        updated = await service.update_slot_entities(BOT, "drink", "beverage")

        assert updated == ["order"]
        assert (await service.get_intent(BOT, "order")).slots == [
            SlotDefinition(name="drink_type", entities=["beverage", "any"]),
            SlotDefinition(name="when", entities=["time"]),
        ]
        assert await service.get_intent(BOT, "greeting") == _greeting()


class TestFlowIntents:

    @pytest.mark.asyncio
    async def test_intents_derived_from_trigger_nodes(self, service):
        await _write_json(service, "flows", "main.flow.json", MAIN_FLOW)

        intents = await service.get_intents_from_flows(BOT)

        assert [(i.name, i.contexts) for i in intents] == [
            ("main/entry-node/0", ["main"]),
            ("main/entry-node/1", ["main"]),
            ("main/standard/0", ["explicit:main/standard"]),
        ]
        assert intents[1].utterances == {"en": ["coffee please"], "fr": ["un café"]}
        assert intents[0].filename == "main"
        assert intents[0].slots == [
            SlotDefinition(name="drink_type", entities=["drink"]),
            SlotDefinition(name="count", entities=["number"]),
        ]

    @pytest.mark.asyncio
    async def test_topic_is_the_first_path_segment(self, service):
        await _write_json(service, "flows", "orders/take.flow.json", MAIN_FLOW)

        intents = await service.get_intents_from_flows(BOT)
        assert intents[0].name == "orders/take/entry-node/0"
        assert intents[0].contexts == ["orders"]

    @pytest.mark.asyncio
    async def test_duplicated_derived_names_are_rejected(self, service):
        flow = {"nodes": [MAIN_FLOW["nodes"][0], MAIN_FLOW["nodes"][0]]}
        await _write_json(service, "flows", "main.flow.json", flow)

        with pytest.raises(InvalidInputError, match="Duplicated intent"):
            await service.get_intents_from_flows(BOT)

    @pytest.mark.asyncio
    async def test_get_intents_lists_files_then_flows(self, service):
        await service.save_intent(BOT, _greeting())
        await _write_json(service, "flows", "main.flow.json", MAIN_FLOW)

        names = [i.name for i in await service.get_intents(BOT)]
        assert names == ["greeting", "main/entry-node/0", "main/entry-node/1", "main/standard/0"]

    @pytest.mark.asyncio
    async def test_update_contexts_from_topics(self, service):
        await service.save_intent(BOT, _greeting())
        await service.save_intent(BOT, _greeting(name="goodbye"))
        await _write_json(service, "flows", "support/main.flow.json", {
            "nodes": [
                {"name": "a", "type": "trigger", "conditions": [
                    {"id": "user_intent_is", "params": {"intentName": "greeting"}},
                ]},
                {"name": "b", "type": "trigger", "conditions": [
                    {"id": "user_intent_is", "params": {"intentName": "none"}},
                ]},
            ],
        })

        await service.update_contexts_from_topics(BOT)

        assert (await service.get_intent(BOT, "greeting")).contexts == ["support"]
        assert (await service.get_intent(BOT, "goodbye")).contexts == ["global"]


class TestTrainInput:

    @pytest.mark.asyncio
    async def test_build_train_input(self, service):
        await _write_json(service, "entities", "drink.json", {
            "name": "drink",
            "type": "list",
            "fuzzy": 0.8,
            "occurrences": [{"name": "latte", "synonyms": ["caffe latte"]}],
        })
        await _write_json(service, "entities", "order_id.json", {
            "name": "order_id",
            "type": "pattern",
            "pattern": "[A-Z]{3}-\\d+",
            "matchCase": True,
        })
        await service.save_intent(BOT, _greeting())
        await _write_json(service, "flows", "main.flow.json", MAIN_FLOW)

        train_input = await service.build_train_input(BOT, "fr")

        assert train_input.bot_id == BOT
        assert train_input.language_code == "fr"
        assert [i.name for i in train_input.intents] == ["greeting", "main/entry-node/1"]
        assert train_input.intents[0].utterances == ["bonjour"]
        assert train_input.contexts == ["global", "main"]

        [drink] = train_input.list_entities
        assert drink.synonyms == {"latte": ["caffe latte"]}
        assert drink.fuzzy_matching

        [order_id] = train_input.pattern_entities
        assert order_id.pattern == "[A-Z]{3}-\\d+"
        assert order_id.ignore_case is False

    @pytest.mark.asyncio
    async def test_pattern_entity_without_pattern(self, service):
        await _write_json(service, "entities", "broken.json", {"name": "broken", "type": "pattern"})
        with pytest.raises(InvalidInputError):
            await service.build_train_input(BOT, "en")
