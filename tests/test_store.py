"""Tests for the chunk store: appends, compaction, persistence."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from chunkvault.store import ChunkRecord, ChunkStore, StoreConfigurationError


def _vector(position: int, dimension: int = 3) -> list[float]:
    return [float(position) + component / 10 for component in range(dimension)]


def _fill(store: ChunkStore, sources: list[str], make_record) -> None:
    for position, source in enumerate(sources):
        store.add_chunk(make_record(source, position), _vector(position))


class TestAppendAndRoundTrip:
    def test_round_trip_through_fresh_instance(self, store: ChunkStore, make_record) -> None:
        sources = ["a.md", "b.md", "a.md", "c.md", "b.md", "d.md", "e.md"]
        _fill(store, sources, make_record)
        store.save()

        reopened = ChunkStore(store.root, batch_size=3)

        chunks = reopened.get_chunks()
        assert [c.id for c in chunks] == [f"{s}#{i}" for i, s in enumerate(sources)]
        assert chunks[3] == make_record("c.md", 3)

        embeddings = reopened.get_embeddings()
        expected = np.asarray([_vector(i) for i in range(len(sources))], dtype=np.float32)
        assert embeddings.dtype == np.float32
        assert embeddings.tobytes() == expected.tobytes()

    def test_unsaved_appends_are_visible_in_memory(self, store, make_record) -> None:
        _fill(store, ["a", "b"], make_record)

        assert store.has_data()
        assert len(store) == 2
        assert [c.source for c in store.get_chunks()] == ["a", "b"]
        assert not store.layout.chunk_path(0).exists()

    def test_unsaved_appends_are_lost_without_save(self, store, make_record) -> None:
        _fill(store, ["a", "b"], make_record)

        reopened = ChunkStore(store.root, batch_size=3)

        assert not reopened.has_data()
        assert reopened.get_chunks() == []

    @pytest.mark.parametrize("count", [0, 1, 3, 7, 9])
    def test_batch_boundaries(self, store, make_record, count: int) -> None:
        _fill(store, [f"s{i}" for i in range(count)], make_record)
        store.save()

        expected_batches = -(-count // 3)
        chunk_files = sorted(store.layout.chunks_dir.glob("batch-*.json"))
        embedding_files = sorted(store.layout.embeddings_dir.glob("batch-*.bin"))
        assert len(chunk_files) == len(embedding_files) == expected_batches

        sizes = [len(json.loads(p.read_text())["chunks"]) for p in chunk_files]
        if count:
            assert sizes[:-1] == [3] * (expected_batches - 1)
            assert sizes[-1] == count - 3 * (expected_batches - 1)
        assert store.verify().ok

    def test_on_disk_format(self, store, make_record) -> None:
        _fill(store, ["docs/a.md"], make_record)
        store.save()

        config = json.loads(store.layout.config_path.read_text())
        index = json.loads(store.layout.index_path.read_text())
        batch = json.loads(store.layout.chunk_path(0).read_text())

        assert set(config) == {"version", "dimension", "threshold", "createdAt", "updatedAt"}
        assert config["dimension"] == 3
        assert index["chunkCount"] == 1 and index["batchSize"] == 3
        assert "lastUpdated" in index
        assert batch == {
            "chunks": [
                {"id": "docs/a.md#0", "text": "docs/a.md chunk 0", "source": "docs/a.md", "chunkIndex": 0}
            ]
        }
        assert store.layout.embedding_path(0).stat().st_size == 4 + 3 * 4

    def test_add_requires_dimension(self, temp_dir: Path, make_record) -> None:
        fresh = ChunkStore(temp_dir / "fresh")

        with pytest.raises(StoreConfigurationError):
            fresh.add_chunk(make_record("a"), [1.0, 2.0])
        assert len(fresh) == 0

    def test_add_rejects_wrong_vector_length(self, store, make_record) -> None:
        with pytest.raises(StoreConfigurationError):
            store.add_chunk(make_record("a"), [1.0, 2.0])
        assert len(store) == 0

    def test_add_chunks_pairs_inputs(self, store, make_record) -> None:
        records = [make_record("a", i) for i in range(4)]

        assert store.add_chunks(records, np.ones((4, 3), dtype=np.float32)) == 4
        with pytest.raises(StoreConfigurationError):
            store.add_chunks(records, np.ones((3, 3)))

    def test_records_are_immutable(self, make_record) -> None:
        record = make_record("a")

        with pytest.raises(ValueError):
            record.text = "changed"  # type: ignore[misc]

    def test_record_rejects_negative_chunk_index(self) -> None:
        with pytest.raises(ValueError):
            ChunkRecord(id="x", text="t", source="s", chunk_index=-1)


class TestCacheBound:
    def test_cache_never_exceeds_bound(self, store, make_record) -> None:
        for position in range(20):
            store.add_chunk(make_record("s", position), _vector(position))
            assert store.cached_batches <= store.cache.max_cached_batches

    def test_evicted_batches_are_readable_from_disk(self, store, make_record) -> None:
        _fill(store, [f"s{i}" for i in range(10)], make_record)

        on_disk = [n for n in range(store.batch_count) if store.layout.chunk_path(n).exists()]
        assert on_disk  # batches 0 and 1 were pushed out by batch 3

        for batch_number in on_disk:
            records, vectors = store.cache.load(batch_number)
            assert len(records) == len(vectors) == 3
            assert records[0].id == f"s{batch_number * 3}#{batch_number * 3}"

        assert [c.source for c in store.get_chunks()] == [f"s{i}" for i in range(10)]


class TestCompaction:
    def test_removes_only_target_source_and_keeps_order(self, store, make_record) -> None:
        _fill(store, ["A", "B", "A", "C", "B"], make_record)
        store.save()

        removed = store.remove_chunks_by_source("A")

        assert removed == 2
        assert len(store) == 3
        chunks = store.get_chunks()
        assert [c.source for c in chunks] == ["B", "C", "B"]
        assert [c.chunk_index for c in chunks] == [1, 3, 4]
        embeddings = store.get_embeddings()
        assert embeddings.tolist() == np.asarray(
            [_vector(1), _vector(3), _vector(4)], dtype=np.float32
        ).tolist()

    def test_compaction_is_durable_without_save(self, store, make_record) -> None:
        _fill(store, ["A", "B", "A", "C", "B", "A", "D"], make_record)

        store.remove_chunks_by_source("A")
        reopened = ChunkStore(store.root, batch_size=3)

        assert [c.source for c in reopened.get_chunks()] == ["B", "C", "B", "D"]
        assert reopened.batch_count == 2
        assert reopened.verify().ok
        assert not reopened.layout.chunk_path(2).exists()

    def test_compaction_includes_unsaved_cached_batches(self, store, make_record) -> None:
        _fill(store, ["A", "B"], make_record)
        store.save()
        _fill(store, ["X", "A", "C"], make_record)

        store.remove_chunks_by_source("A")

        assert [c.source for c in store.get_chunks()] == ["B", "X", "C"]

    def test_removing_everything_leaves_empty_store(self, store, make_record) -> None:
        _fill(store, ["A", "A", "A", "A"], make_record)
        store.save()

        assert store.remove_chunks_by_source("A") == 4
        assert not store.has_data()
        assert list(store.layout.chunks_dir.iterdir()) == []
        assert json.loads(store.layout.index_path.read_text())["chunkCount"] == 0

    def test_no_match_is_noop(self, store, make_record) -> None:
        _fill(store, ["A", "B", "C", "D"], make_record)
        store.save()
        files = store.layout.list_batch_files() + [store.layout.index_path]
        before = {path: path.stat().st_mtime_ns for path in files}

        assert store.remove_chunks_by_source("missing") == 0

        assert {path: path.stat().st_mtime_ns for path in files} == before
        assert len(store) == 4

    def test_append_after_compaction_continues_at_tail(self, store, make_record) -> None:
        _fill(store, ["A", "B", "A", "C"], make_record)
        store.remove_chunks_by_source("A")

        store.add_chunk(make_record("E", 9), _vector(9))
        store.save()

        reopened = ChunkStore(store.root, batch_size=3)
        assert [c.source for c in reopened.get_chunks()] == ["B", "C", "E"]


class TestQueriesAndReset:
    def test_has_chunks_for_source(self, store, make_record) -> None:
        _fill(store, ["A", "B"], make_record)

        assert store.has_chunks_for_source("B")
        assert not store.has_chunks_for_source("Z")

    def test_get_sources_in_first_seen_order(self, store, make_record) -> None:
        _fill(store, ["b", "a", "b", "c", "a"], make_record)

        assert store.get_sources() == ["b", "a", "c"]

    def test_iter_batches_yields_ascending_batches(self, store, make_record) -> None:
        _fill(store, [f"s{i}" for i in range(7)], make_record)

        batches = list(store.iter_batches())

        assert [number for number, _, _ in batches] == [0, 1, 2]
        assert [len(records) for _, records, _ in batches] == [3, 3, 1]

    def test_empty_store_exports(self, store) -> None:
        assert store.get_chunks() == []
        assert store.get_embeddings().shape == (0, 3)
        assert store.get_graph_inputs() is None

    def test_graph_inputs_use_config_unless_overridden(self, store, make_record) -> None:
        _fill(store, ["a", "b"], make_record)

        inputs = store.get_graph_inputs()
        assert inputs is not None
        assert [record.source for record in inputs.chunks] == ["a", "b"]
        assert inputs.embeddings.shape == (2, 3)
        assert inputs.dimension == 3
        assert inputs.threshold == pytest.approx(0.7)

        overridden = store.get_graph_inputs(threshold=0.9)
        assert overridden.threshold == pytest.approx(0.9)

    def test_graph_inputs_refuse_zero_dimension(self, store, make_record) -> None:
        _fill(store, ["a"], make_record)

        with pytest.raises(StoreConfigurationError):
            store.get_graph_inputs(dimension=0)

    def test_stats_and_config(self, store, make_record) -> None:
        _fill(store, ["a", "b", "c", "d"], make_record)

        stats = store.get_stats()
        config = store.get_config()

        assert stats.chunk_count == 4
        assert stats.batch_count == 2
        assert stats.dimension == config.dimension == 3
        assert config.threshold == pytest.approx(0.7)

    def test_set_config_persists_immediately(self, store) -> None:
        store.set_config(3, 0.5)

        reopened = ChunkStore(store.root)
        assert reopened.get_config().threshold == pytest.approx(0.5)
        assert reopened.dimension == 3

    def test_set_config_refuses_dimension_change_with_data(self, store, make_record) -> None:
        _fill(store, ["a"], make_record)

        with pytest.raises(StoreConfigurationError):
            store.set_config(8, 0.7)
        store.set_config(3, 0.9)

    def test_clear_resets_store(self, store, make_record) -> None:
        _fill(store, [f"s{i}" for i in range(8)], make_record)
        store.save()

        store.clear()

        assert not store.has_data()
        assert store.cached_batches == 0
        assert store.layout.list_batch_files() == []
        assert json.loads(store.layout.index_path.read_text())["chunkCount"] == 0
        assert ChunkStore(store.root).get_chunks() == []

    def test_existing_batch_size_wins(self, store, make_record) -> None:
        _fill(store, ["a", "b", "c", "d"], make_record)
        store.save()

        reopened = ChunkStore(store.root, batch_size=100)

        assert reopened.batch_size == 3
        assert len(reopened.get_chunks()) == 4

    def test_independent_instances_do_not_share_cache(self, temp_dir, make_record) -> None:
        first = ChunkStore(temp_dir / "one", batch_size=2)
        second = ChunkStore(temp_dir / "two", batch_size=2)
        first.set_config(3, 0.7)
        second.set_config(3, 0.7)

        first.add_chunk(make_record("a"), _vector(0))

        assert second.get_chunks() == []
        assert second.cached_batches == 0

    def test_verify_reports_missing_batch_file(self, store, make_record) -> None:
        _fill(store, ["a", "b", "c", "d"], make_record)
        store.save()
        store.layout.chunk_path(1).unlink()

        report = store.verify()

        assert not report.ok
        assert report.records_on_disk == 3
        assert any("embedding batches" in problem for problem in report.problems)
