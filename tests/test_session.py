"""Tests for EditorSession."""

import pytest

from allocman.errors import NotFoundError, UnsavedChangesError
from allocman.schemas import CompileState
from allocman.session import EditorSession

from conftest import allocator_source


@pytest.fixture
def session(registry):
    return EditorSession(registry)


class TestOpenAndNew:
    """Tests for new() and open()."""

    def test_new_opens(self, session, registry):
        session.new("A", "text")
        assert session.current == "A"
        assert session.text == "text"
        assert not session.modified
        assert registry.list() == ["A"]

    def test_new_from_template(self, session):
        session.new("A")
        assert "class A(Allocator)" in session.text

    def test_open_loads_persisted_text(self, session, registry):
        registry.create("A", "persisted")
        assert session.open("A") == "persisted"
        assert session.current == "A"

    def test_open_unknown(self, session):
        with pytest.raises(NotFoundError):
            session.open("Ghost")
        assert session.current is None

    def test_open_refused_with_unsaved_changes(self, session, registry):
        registry.create("B", "b")
        session.new("A", "a")
        session.edit("changed")
        with pytest.raises(UnsavedChangesError):
            session.open("B")
        assert session.current == "A"

    def test_edit_without_open(self, session):
        with pytest.raises(RuntimeError):
            session.edit("text")


class TestSaveAndCompile:
    """Tests for save() and compile()."""

    def test_save_only_when_modified(self, session, registry):
        session.new("A", "v1")
        assert session.save() is None

        session.edit("v2")
        record = session.save()
        assert record.dirty is False
        assert not session.modified
        assert registry.open("A") == "v2"

    def test_compile_saves_first(self, session, registry):
        session.new("A", "v1")
        session.edit(allocator_source("A"))
        outcome = session.compile()
        assert outcome.success
        assert not session.modified
        assert registry.open("A") == allocator_source("A")
        assert registry.get("A").state == CompileState.COMPILED


class TestDeleteAndClose:
    """Tests for delete() and close()."""

    def test_delete_open_allocator_closes_session(self, session, registry):
        session.new("A", "a")
        assert session.delete("A") is True
        assert session.current is None
        assert registry.list() == []

    def test_delete_other_allocator_keeps_session(self, session, registry):
        registry.create("B", "b")
        session.new("A", "a")
        assert session.delete("B") is False
        assert session.current == "A"

    def test_close_refuses_unsaved(self, session):
        session.new("A", "a")
        session.edit("changed")
        with pytest.raises(UnsavedChangesError):
            session.close()
        assert session.current == "A"

    def test_close_discard_reverts_registry(self, session, registry):
        session.new("A", "a")
        session.edit("changed")
        session.close(discard=True)
        assert session.current is None
        record = registry.get("A")
        assert record.source_text == "a"
        assert record.dirty is False

    def test_close_when_nothing_open(self, session):
        session.close()
        assert session.current is None
