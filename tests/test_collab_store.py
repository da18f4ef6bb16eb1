"""Tests for AnnotationStore."""

from __future__ import annotations

from pathlib import Path

import pytest

from markon.collab.store import AnnotationStore
from markon.errors import StorageError
from markon.models import Annotation


@pytest.fixture
def store(tmp_path: Path):
    s = AnnotationStore(tmp_path / "state" / "annotation.sqlite")
    yield s
    s.close()


def _annotation(annotation_id: str, file_path: str = "a.md", **extra) -> Annotation:
    return Annotation(id=annotation_id, file_path=file_path, payload={"id": annotation_id, **extra})


class TestSchema:
    def test_creates_parent_and_tables(self, store: AnnotationStore) -> None:
        assert store.db_path.exists()
        tables = {row[0] for row in store.connection.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"annotations", "viewed_state"} <= tables


class TestAnnotations:
    """Test annotation CRUD."""

    def test_add_and_get(self, store: AnnotationStore) -> None:
        store.add_annotation(_annotation("x", text="hello"))

        (stored,) = store.get_annotations("a.md")
        assert stored.id == "x"
        assert stored.payload == {"id": "x", "text": "hello"}

    def test_scoped_by_file_path(self, store: AnnotationStore) -> None:
        store.add_annotation(_annotation("x", "a.md"))
        store.add_annotation(_annotation("y", "b.md"))

        assert [a.id for a in store.get_annotations("a.md")] == ["x"]
        assert [a.id for a in store.get_annotations("b.md")] == ["y"]

    def test_same_id_replaces(self, store: AnnotationStore) -> None:
        store.add_annotation(_annotation("x", text="first"))
        store.add_annotation(_annotation("x", text="second"))

        (stored,) = store.get_annotations("a.md")
        assert stored.payload["text"] == "second"

    def test_delete(self, store: AnnotationStore) -> None:
        store.add_annotation(_annotation("x"))

        assert store.delete_annotation("x") is True
        assert store.delete_annotation("x") is False
        assert store.get_annotations("a.md") == []

    def test_clear_only_affects_file(self, store: AnnotationStore) -> None:
        store.add_annotation(_annotation("x", "a.md"))
        store.add_annotation(_annotation("z", "a.md"))
        store.add_annotation(_annotation("y", "b.md"))

        assert store.clear_annotations("a.md") == 2
        assert store.get_annotations("a.md") == []
        assert len(store.get_annotations("b.md")) == 1


class TestViewedState:
    """Test viewed-state persistence."""

    def test_default_is_empty(self, store: AnnotationStore) -> None:
        viewed = store.get_viewed_state("a.md")

        assert viewed.state == {}
        assert viewed.updated_at is None

    def test_overwritten_wholesale(self, store: AnnotationStore) -> None:
        store.save_viewed_state("a.md", {"intro": True, "setup": True})
        store.save_viewed_state("a.md", {"setup": False})

        viewed = store.get_viewed_state("a.md")
        assert viewed.state == {"setup": False}
        assert viewed.updated_at is not None


class TestDurability:
    def test_survives_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "annotation.sqlite"
        first = AnnotationStore(db_path)
        first.add_annotation(_annotation("x"))
        first.save_viewed_state("a.md", {"intro": True})
        first.close()

        second = AnnotationStore(db_path)
        try:
            assert [a.id for a in second.get_annotations("a.md")] == ["x"]
            assert second.get_viewed_state("a.md").state == {"intro": True}
        finally:
            second.close()

    def test_sqlite_error_becomes_storage_error(self, store: AnnotationStore) -> None:
        store.connection.execute("DROP TABLE annotations")

        with pytest.raises(StorageError):
            store.add_annotation(_annotation("x"))
