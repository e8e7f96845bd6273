from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from infragraph.core.state import ResourceInstance, State
from infragraph.core.store import LocalStateStore
from infragraph.engine.errors import StateStoreError


def _record(address: str, **attributes: object) -> ResourceInstance:
    resource_type, name = address.split(".")
    return ResourceInstance(
        address=address,
        resource_type=resource_type,
        name=name,
        id=f"{name}-1",
        attributes=dict(attributes),
    )


class TestLocalStateStore:
    def test_missing_file_loads_empty_state_without_lineage(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")

        state = store.load()

        assert state.resources == {}
        assert state.serial == 0
        assert state.lineage == ""
        assert not store.exists()

    def test_first_save_assigns_lineage_and_bumps_serial(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")

        store.save(_record("aws_vpc.main", cidr_block="10.0.0.0/16"))

        data = json.loads((tmp_path / "state.json").read_text())
        assert data["serial"] == 1
        assert data["lineage"]
        assert data["resources"]["aws_vpc.main"]["attributes"] == {"cidr_block": "10.0.0.0/16"}

    def test_every_write_bumps_serial_and_keeps_lineage(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        store.save(_record("aws_vpc.a"))
        lineage = store.load().lineage

        store.save(_record("aws_vpc.b"))
        store.remove("aws_vpc.a")

        state = LocalStateStore(tmp_path / "state.json").load()
        assert state.serial == 3
        assert state.lineage == lineage
        assert set(state.resources) == {"aws_vpc.b"}

    def test_remove_of_absent_record_does_not_write(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        store.save(_record("aws_vpc.a"))

        store.remove("aws_vpc.nope")

        assert store.load().serial == 1

    def test_save_create_then_remove_leaves_no_record(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")

        store.save(_record("aws_vpc.a"))
        store.remove("aws_vpc.a")

        assert "aws_vpc.a" not in store.load().resources

    def test_write_keeps_backup_of_previous_file(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        store = LocalStateStore(path)
        store.save(_record("aws_vpc.a"))
        store.save(_record("aws_vpc.b"))

        backup = json.loads(Path(str(path) + ".backup").read_text())
        assert backup["serial"] == 1
        assert set(backup["resources"]) == {"aws_vpc.a"}

    def test_replace_persists_whole_state(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        store.save(_record("aws_vpc.a"))
        state = store.load()
        state.resources.pop("aws_vpc.a")

        store.replace(state)

        reloaded = store.load()
        assert reloaded.resources == {}
        assert reloaded.serial == 2

    def test_load_returns_copies(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        store.save(_record("aws_vpc.a"))

        state = store.load()
        state.resources.clear()

        assert set(store.snapshot().resources) == {"aws_vpc.a"}

    def test_corrupt_file_raises_state_store_error(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")

        with pytest.raises(StateStoreError, match="Failed to read state"):
            LocalStateStore(path).load()

    def test_unwritable_location_raises_state_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = LocalStateStore(blocker / "state.json")

        with pytest.raises(StateStoreError, match="Failed to write state"):
            store.save(_record("aws_vpc.a"))

    def test_failed_write_leaves_cached_state_untouched(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        store.save(_record("aws_vpc.a"))
        before = store.snapshot()

        def disk_full(state: State) -> None:
            raise OSError("No space left on device")

        monkeypatch.setattr(store, "_write", disk_full)
        with pytest.raises(StateStoreError, match="No space left"):
            store.save(_record("aws_vpc.b"))
        with pytest.raises(StateStoreError):
            store.remove("aws_vpc.a")

        assert store.snapshot() == before
        assert set(store.snapshot().resources) == {"aws_vpc.a"}

    def test_failed_first_write_does_not_assign_lineage(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = LocalStateStore(tmp_path / "state.json")

        def disk_full(state: State) -> None:
            raise OSError("No space left on device")

        monkeypatch.setattr(store, "_write", disk_full)
        with pytest.raises(StateStoreError):
            store.save(_record("aws_vpc.a"))

        snapshot = store.snapshot()
        assert snapshot.lineage == ""
        assert snapshot.serial == 0
        assert snapshot.resources == {}

    def test_concurrent_saves_are_all_persisted(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        records = [_record(f"aws_subnet.s{i}", index=i) for i in range(20)]

        threads = [threading.Thread(target=store.save, args=(r,)) for r in records]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        state = LocalStateStore(tmp_path / "state.json").load()
        assert state.serial == 20
        assert set(state.resources) == {r.address for r in records}

    def test_state_round_trips_through_json(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path / "state.json")
        record = _record("aws_vpc.a", tags={"env": "prod"}, cidrs=["10.0.0.0/16"])
        store.save(record)

        loaded = State.model_validate_json((tmp_path / "state.json").read_text())
        assert loaded.resources["aws_vpc.a"].attributes == record.attributes
