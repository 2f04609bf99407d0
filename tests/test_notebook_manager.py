"""
Tests for notebook persistence across tiers.
"""
import asyncio

import pytest

from fincoach.core.errors import NotebookConflictError, NotebookStateError
from fincoach.core.schemas import FinancialReport, NotebookStatus, QualitativeReport
from fincoach.core.services.notebook import Notebook
from fincoach.core.services.notebook_manager import (
    CURRENT_KEY,
    LATEST_KEY,
    NotebookApiClient,
    NotebookManager,
    notebook_key,
)
from fincoach.core.services.reports import build_quantitative
from fincoach.core.storage.memory import MemoryStorage


class FailingStorage(MemoryStorage):
    name = "failing"

    async def save(self, key, value):
        return False


class RecordingRemote:
    def __init__(self, stored=None) -> None:
        self.saved = []
        self.stored = stored or {}

    async def save(self, payload):
        self.saved.append(payload)
        return True

    async def load(self, notebook_id):
        return self.stored.get(notebook_id)


def _manager(**kwargs) -> NotebookManager:
    kwargs.setdefault("autosave_interval", None)
    return NotebookManager(**kwargs)


@pytest.mark.asyncio
async def test_create_or_restore_creates_and_saves_when_nothing_exists() -> None:
    durable = MemoryStorage()
    manager = _manager(storage=durable)
    notebook = await manager.create_or_restore("ramit-sethi", client_name="Sam")

    assert manager.current is notebook
    assert not notebook.has_changes()
    assert notebook.revision == 1
    stored = await durable.load(notebook_key(notebook.id))
    assert stored["client_name"] == "Sam"
    assert (await durable.load(LATEST_KEY))["id"] == notebook.id
    assert (await manager.cache.load(CURRENT_KEY))["id"] == notebook.id


@pytest.mark.asyncio
async def test_restore_prefers_cache_then_durable_pointer() -> None:
    durable = MemoryStorage()
    first = _manager(storage=durable)
    original = await first.create_or_restore("ramit-sethi")
    original.add_message("user", "I'd like to start")
    await first.save()

    # fresh process: empty cache, same durable storage
    second = _manager(storage=durable)
    restored = await second.create_or_restore("ramit-sethi")
    assert restored.id == original.id
    assert [m.text for m in restored.messages] == ["I'd like to start"]


@pytest.mark.asyncio
async def test_pointer_notebook_of_another_therapist_is_not_restored() -> None:
    durable = MemoryStorage()
    other = await _manager(storage=durable).create_or_restore("aja-evans")
    mine = await _manager(storage=durable).create_or_restore("ramit-sethi")
    assert mine.id != other.id
    assert mine.therapist_id == "ramit-sethi"


@pytest.mark.asyncio
async def test_restore_by_id_and_finished_notebooks() -> None:
    durable = MemoryStorage()
    manager = _manager(storage=durable)
    created = await manager.create_or_restore("ramit-sethi", notebook_id="conv_1")
    assert created.id == "conv_1"

    again = await _manager(storage=durable).create_or_restore("ramit-sethi", notebook_id="conv_1")
    assert again.id == "conv_1"
    assert again.revision == created.revision

    await manager.complete_session()
    with pytest.raises(NotebookStateError):
        await _manager(storage=durable).create_or_restore("ramit-sethi", notebook_id="conv_1")
    fresh = await _manager(storage=durable).create_or_restore("ramit-sethi")
    assert fresh.id != "conv_1"


@pytest.mark.asyncio
async def test_durable_failure_keeps_changes_pending() -> None:
    manager = _manager(storage=FailingStorage())
    notebook = await manager.create_or_restore("ramit-sethi")
    assert notebook.has_changes()
    assert not await manager.save()
    # the cache tier still received the write
    assert await manager.cache.load(notebook_key(notebook.id)) is not None


@pytest.mark.asyncio
async def test_cache_only_manager_clears_dirty_flag() -> None:
    manager = _manager()
    notebook = await manager.create_or_restore("ramit-sethi")
    notebook.add_message("user", "hello")
    assert await manager.save()
    assert not notebook.has_changes()


@pytest.mark.asyncio
async def test_remote_tier_used_without_durable_storage() -> None:
    remote = RecordingRemote()
    manager = _manager(remote=remote)
    notebook = await manager.create_or_restore("ramit-sethi")
    assert remote.saved[-1]["id"] == notebook.id
    assert not notebook.has_changes()

    stored = Notebook.create("aja-evans", notebook_id="remote_only").to_dict()
    loader = _manager(remote=RecordingRemote({"remote_only": stored}))
    loaded = await loader.load("remote_only")
    assert loaded.therapist_id == "aja-evans"
    assert await loader.load("missing") is None


@pytest.mark.asyncio
async def test_remote_client_round_trips_through_api(client) -> None:
    manager = _manager(remote=NotebookApiClient("http://test", client=client))
    notebook = await manager.create_or_restore("peter-lynch", notebook_id="via_api")
    notebook.add_message("user", "Index funds mostly")
    assert await manager.save()

    loaded = await _manager(remote=NotebookApiClient("http://test", client=client)).load("via_api")
    assert loaded.messages[0].text == "Index funds mostly"


@pytest.mark.asyncio
async def test_optimistic_locking_rejects_stale_saves() -> None:
    durable = MemoryStorage()
    first = _manager(storage=durable, optimistic_locking=True)
    notebook = await first.create_or_restore("ramit-sethi", notebook_id="shared")

    second = _manager(storage=durable, optimistic_locking=True)
    other_copy = await second.create_or_restore("ramit-sethi", notebook_id="shared")
    other_copy.add_message("user", "written elsewhere first")
    assert await second.save()

    notebook.add_message("user", "stale write")
    with pytest.raises(NotebookConflictError) as excinfo:
        await first.save()
    assert excinfo.value.stored_revision == 2
    assert excinfo.value.local_revision == 1


@pytest.mark.asyncio
async def test_last_write_wins_by_default() -> None:
    durable = MemoryStorage()
    first = _manager(storage=durable)
    notebook = await first.create_or_restore("ramit-sethi", notebook_id="shared")
    second = _manager(storage=durable)
    other_copy = await second.create_or_restore("ramit-sethi", notebook_id="shared")
    other_copy.add_message("user", "first writer")
    await second.save()
    notebook.add_message("user", "second writer")
    assert await first.save()
    stored = await durable.load(notebook_key("shared"))
    assert [m["text"] for m in stored["messages"]] == ["second writer"]


@pytest.mark.asyncio
async def test_upsert_refuses_to_reopen_a_finished_notebook() -> None:
    durable = MemoryStorage()
    manager = _manager(storage=durable)
    await manager.create_or_restore("ramit-sethi", notebook_id="done")
    finished = await manager.complete_session()

    reopened = finished.to_dict()
    reopened["status"] = "active"
    with pytest.raises(NotebookStateError):
        await _manager(storage=durable).upsert(Notebook.from_dict(reopened))
    assert (await durable.load(notebook_key("done")))["status"] == "completed"

    # pushing the finished notebook unchanged is still accepted
    assert await _manager(storage=durable).upsert(Notebook.from_dict(finished.to_dict()))


@pytest.mark.asyncio
async def test_upsert_refuses_to_change_attached_reports_and_figures() -> None:
    durable = MemoryStorage()
    manager = _manager(storage=durable)
    notebook = await manager.create_or_restore("ramit-sethi", notebook_id="reported")
    notebook.attach_report(
        FinancialReport(
            id="report_1",
            therapist_id="ramit-sethi",
            qualitative=QualitativeReport(summary="Balanced"),
            quantitative=build_quantitative(3000, {"housing": 1000}),
        )
    )
    notebook.set_extracted_data({"expenses": {"housing": 1000.0, "total": 1000.0}})
    await manager.save()
    original = notebook.to_dict()

    for field, value in (
        ("report_id", None),
        ("report_id", "report_2"),
        ("qualitative_report", None),
        ("quantitative_report", None),
        ("extracted_data", None),
        ("extracted_data", {"expenses": {}}),
    ):
        tampered = dict(original, **{field: value})
        with pytest.raises(NotebookStateError):
            await _manager(storage=durable).upsert(Notebook.from_dict(tampered))

    stored = await durable.load(notebook_key("reported"))
    assert stored["report_id"] == "report_1"
    assert stored["extracted_data"] == {"expenses": {"housing": 1000.0, "total": 1000.0}}

    # other fields may still change
    renamed = dict(original, client_name="Sam")
    assert await _manager(storage=durable).upsert(Notebook.from_dict(renamed))
    assert (await durable.load(notebook_key("reported")))["client_name"] == "Sam"


@pytest.mark.asyncio
async def test_list_notebooks_is_deduplicated_and_newest_first() -> None:
    durable = MemoryStorage()
    manager = _manager(storage=durable)
    older = await manager.create_new("ramit-sethi", notebook_id="older")
    newer = await manager.create_new("ramit-sethi", notebook_id="newer")
    assert older.status is NotebookStatus.completed

    listed = await manager.list_notebooks()
    assert [nb.id for nb in listed] == ["newer", "older"]
    assert listed[0].session_date >= listed[1].session_date
    assert newer.is_active


@pytest.mark.asyncio
async def test_create_new_completes_the_restored_active_notebook() -> None:
    durable = MemoryStorage()
    previous = await _manager(storage=durable).create_or_restore("ramit-sethi", notebook_id="previous")
    assert previous.is_active

    manager = _manager(storage=durable)
    fresh = await manager.create_new("ramit-sethi")
    assert fresh.id != "previous"
    stored = await durable.load(notebook_key("previous"))
    assert stored["status"] == "completed"


@pytest.mark.asyncio
async def test_complete_and_abandon_release_current_notebook() -> None:
    durable = MemoryStorage()
    manager = NotebookManager(storage=durable, autosave_interval=60)
    await manager.create_or_restore("ramit-sethi", notebook_id="nb")
    completed = await manager.complete_session()
    assert completed.status is NotebookStatus.completed
    assert manager.current is None
    assert await manager.cache.load(CURRENT_KEY) is None
    assert (await durable.load(notebook_key("nb")))["status"] == "completed"
    assert await manager.complete_session() is None

    await manager.create_or_restore("ramit-sethi", notebook_id="nb2")
    abandoned = await manager.abandon_session()
    assert abandoned.status is NotebookStatus.abandoned


@pytest.mark.asyncio
async def test_autosave_only_saves_when_dirty() -> None:
    durable = MemoryStorage()
    manager = NotebookManager(storage=durable, autosave_interval=0.01)
    notebook = await manager.create_or_restore("ramit-sethi", notebook_id="auto")
    revision = notebook.revision

    await asyncio.sleep(0.05)
    assert notebook.revision == revision

    notebook.add_message("user", "autosave me")
    for _ in range(50):
        if not notebook.has_changes():
            break
        await asyncio.sleep(0.01)
    assert not notebook.has_changes()
    stored = await durable.load(notebook_key("auto"))
    assert stored["messages"][0]["text"] == "autosave me"
    await manager.close()


@pytest.mark.asyncio
async def test_close_saves_pending_changes_and_stops_autosave() -> None:
    durable = MemoryStorage()
    manager = NotebookManager(storage=durable, autosave_interval=60)
    notebook = await manager.create_or_restore("ramit-sethi", notebook_id="closing")
    notebook.add_message("user", "before close")
    await manager.close()
    assert manager.current is None
    assert not notebook.has_changes()
    assert (await durable.load(notebook_key("closing")))["messages"][0]["text"] == "before close"
