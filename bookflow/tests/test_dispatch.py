"""
Unit tests for bookflow.dispatch module.
"""
import json
import logging

import pytest

from bookflow.dispatch import parse_command
from bookflow.model import CommandValidationError, SelectCover, UpstreamError


class TestParseCommand:
    def test_unknown_kind(self):
        with pytest.raises(CommandValidationError, match="Unknown update type"):
            parse_command("explode", None)

    def test_invalid_payload(self):
        with pytest.raises(CommandValidationError, match="Invalid payload"):
            parse_command("setBookPrefs", ["not", "a", "dict"])

    def test_select_cover(self):
        assert isinstance(parse_command("selectCover", "c1"), SelectCover)


class TestDispatch:
    """Tests for CommandDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_forwards_character_spec(self, dispatcher, engine):
        await dispatcher.dispatch("b1", "setCharacterSpec", {"name": "Mia", "age": 6})

        assert len(engine.updates) == 1
        update = engine.updates[0]
        assert update.workflow_id == "book-b1"
        assert update.name == "setCharacterSpec"
        assert update.args == ({"name": "Mia", "age": 6},)
        assert engine.get_state("book-b1")["characterSpec"] == {"name": "Mia", "age": 6}

    @pytest.mark.asyncio
    async def test_select_cover_uses_choose_cover_update(self, dispatcher, engine):
        await dispatcher.dispatch("b1", "selectCover", "cover-3")
        assert engine.updates[0].name == "chooseCover"
        assert engine.get_state("book-b1")["chosenCover"] == "cover-3"

    @pytest.mark.asyncio
    async def test_pause_ignores_payload(self, dispatcher, engine):
        await dispatcher.dispatch("b1", "pause", {"ignored": True})
        assert engine.updates[0].name == "pause"
        assert engine.updates[0].args == ()
        assert engine.get_state("book-b1")["paused"] is True

    @pytest.mark.asyncio
    async def test_cancel(self, dispatcher, engine):
        await dispatcher.dispatch("b1", "cancel")
        assert engine.get_state("book-b1")["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_invalid_payload_not_forwarded(self, dispatcher, engine):
        with pytest.raises(CommandValidationError, match="Invalid payload"):
            await dispatcher.dispatch("b1", "setCharacterSpec", "Mia")
        assert engine.updates == []

    @pytest.mark.asyncio
    async def test_unknown_kind_not_forwarded(self, dispatcher, engine):
        with pytest.raises(CommandValidationError, match="Unknown update type"):
            await dispatcher.dispatch("b1", "explode", None)
        assert engine.updates == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("book_id,kind", [("", "pause"), ("b1", ""), (None, "pause")])
    async def test_missing_ids(self, dispatcher, engine, book_id, kind):
        with pytest.raises(CommandValidationError, match="Missing bookId/type"):
            await dispatcher.dispatch(book_id, kind)
        assert engine.updates == []

    @pytest.mark.asyncio
    async def test_non_string_ids(self, dispatcher):
        with pytest.raises(CommandValidationError):
            await dispatcher.dispatch(42, "pause")

    @pytest.mark.asyncio
    async def test_engine_failure_becomes_upstream_error(self, dispatcher, engine):
        engine.fail_updates("book-b1", RuntimeError("workflow not found"))
        with pytest.raises(UpstreamError, match="workflow not found"):
            await dispatcher.dispatch("b1", "resume")
        # Forwarded exactly once
        assert len(engine.updates) == 1

    @pytest.mark.asyncio
    async def test_logs_update_record(self, dispatcher, caplog):
        caplog.set_level(logging.INFO, logger="bookflow.dispatch")
        payload = {"story": "x" * 1000}

        await dispatcher.dispatch("b1", "setBookPrefs", payload)

        lines = [r.getMessage() for r in caplog.records if "WF-UPDATE" in r.getMessage()]
        assert len(lines) == 1
        record = json.loads(lines[0].split("WF-UPDATE ", 1)[1])
        assert record["type"] == "setBookPrefs"
        assert record["bookId"] == "b1"
        assert record["workflowId"] == "book-b1"
        assert record["payloadType"] == "dict"
        assert record["payloadKeys"] == ["story"]
        assert len(record["payloadPreview"]) == 300

    @pytest.mark.asyncio
    async def test_invalid_update_is_still_logged(self, dispatcher, caplog):
        caplog.set_level(logging.INFO, logger="bookflow.dispatch")
        with pytest.raises(CommandValidationError):
            await dispatcher.dispatch("b1", "chooseCharacter", 7)
        assert any("WF-UPDATE" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_metrics_outcomes(self, dispatcher, engine, metrics):
        await dispatcher.dispatch("b1", "pause")
        with pytest.raises(CommandValidationError):
            await dispatcher.dispatch("b1", "explode")
        engine.fail_updates("book-b1", RuntimeError("down"))
        with pytest.raises(UpstreamError):
            await dispatcher.dispatch("b1", "resume")

        sample = metrics.registry.get_sample_value
        assert sample("bookflow_commands_total", {"kind": "pause", "outcome": "ok"}) == 1
        assert (
            sample("bookflow_commands_total", {"kind": "unknown", "outcome": "invalid"})
            == 1
        )
        assert (
            sample("bookflow_commands_total", {"kind": "resume", "outcome": "upstream_error"})
            == 1
        )


class TestStart:
    @pytest.mark.asyncio
    async def test_start_new_book(self, dispatcher, engine):
        ref = await dispatcher.start("b2")
        assert ref.workflow_id == "book-b2"
        assert engine.started == [("book-b2", "b2")]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, dispatcher, engine):
        ref = await dispatcher.start("b1")
        assert ref.workflow_id == "book-b1"
        assert engine.started == []

    @pytest.mark.asyncio
    async def test_generates_book_id(self, dispatcher, engine):
        ref = await dispatcher.start()
        assert ref.book_id
        assert ref.workflow_id == f"book-{ref.book_id}"
        assert engine.started == [(ref.workflow_id, ref.book_id)]
