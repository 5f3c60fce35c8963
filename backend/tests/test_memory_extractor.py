"""Tests for memory fact extraction."""

import logging

import pytest
from sqlmodel import Session, select

from tests.conftest import ScriptedBackend, test_engine
from gerai.models.context import ContextItem
from gerai.services.extractor import EXTRACTION_INSTRUCTIONS, MemoryExtractor, parse_facts


def _items():
    with Session(test_engine) as session:
        return session.exec(select(ContextItem).order_by(ContextItem.id)).all()


def test_parse_plain_json():
    facts = parse_facts('{"general": ["a"], "scoped": ["b"]}')
    assert facts.general == ["a"]
    assert facts.scoped == ["b"]


def test_parse_fenced_json_with_missing_key():
    facts = parse_facts('```json\n{"general": ["a"]}\n```')
    assert facts.general == ["a"]
    assert facts.scoped == []


@pytest.mark.asyncio
async def test_extract_stores_facts_as_ai(store):
    backend = ScriptedBackend(complete_reply='{"general": ["Lives in Lisbon"], "scoped": ["Uses Postgres", " "]}')
    extractor = MemoryExtractor(store)

    stored = await extractor.extract(backend, "sk", "gpt-5-nano", "I live in Lisbon", scope_id=4)

    assert stored == 2
    assert [(i.content, i.scope_id, i.source) for i in _items()] == [
        ("Lives in Lisbon", None, "ai"),
        ("Uses Postgres", 4, "ai"),
    ]
    assert backend.complete_calls[0]["input"] == "I live in Lisbon"
    assert backend.complete_calls[0]["credential"] == "sk"


@pytest.mark.asyncio
async def test_extract_deduplicates_existing_fact(store):
    store.upsert_fact("Lives in Lisbon", source="manual", scope_id=None)
    backend = ScriptedBackend(complete_reply='{"general": ["Lives in Lisbon"]}')

    await MemoryExtractor(store).extract(backend, None, "m", "text", scope_id=None)

    items = _items()
    assert len(items) == 1
    assert items[0].source == "ai"


@pytest.mark.asyncio
async def test_malformed_output_stores_nothing(store, caplog):
    backend = ScriptedBackend(complete_reply="Sure! Here are the facts: tea")

    with caplog.at_level(logging.WARNING):
        stored = await MemoryExtractor(store).extract(backend, None, "m", "text", scope_id=1)

    assert stored == 0
    assert _items() == []
    assert "malformed" in caplog.text


@pytest.mark.asyncio
async def test_spawned_failure_is_contained(store, caplog):
    backend = ScriptedBackend(complete_reply=RuntimeError("db gone"))
    extractor = MemoryExtractor(store)

    with caplog.at_level(logging.ERROR):
        task = extractor.spawn(backend, None, "m", "text", scope_id=1)
        await extractor.wait_idle()

    assert task.result() == 0
    assert "Memory extraction failed" in caplog.text


def test_instructions_ask_for_json():
    assert '"general"' in EXTRACTION_INSTRUCTIONS
    assert '"scoped"' in EXTRACTION_INSTRUCTIONS
