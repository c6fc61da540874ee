"""
Tests for creating / opening linked documents and the workspace facade.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from connectors.errors import (
    DuplicatePath,
    NotConnected,
    RemoteCreateFailed,
    StorageFailure,
    UnresolvedReference,
)
from linking.orchestrator import RESOURCE_TYPE, document_url
from linking.workspace import Workspace


class TestCreateLinkedDocument:
    @pytest.mark.asyncio
    async def test_creates_remote_pointer_and_mapping(self, workspace, connected, tmp_path, google):
        pointer = await workspace.create_linked_document(tmp_path, "Report")

        assert pointer == tmp_path / "Report.goox"
        assert pointer.read_text() == "abc123"
        assert google.created_names == ["Report"]
        row = await workspace.references.get_by_path(pointer)
        assert row.remote_id == "abc123"
        assert row.resource_type == RESOURCE_TYPE

    @pytest.mark.asyncio
    async def test_not_connected(self, workspace, tmp_path, google):
        with pytest.raises(NotConnected):
            await workspace.create_linked_document(tmp_path, "Report")
        assert not (tmp_path / "Report.goox").exists()
        assert google.requests == []

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_nothing_local(self, workspace, connected, tmp_path, google):
        google.create_fails = True
        with pytest.raises(RemoteCreateFailed):
            await workspace.create_linked_document(tmp_path, "Report")

        assert not (tmp_path / "Report.goox").exists()
        assert await workspace.links.list_linked_documents() == []

    @pytest.mark.asyncio
    async def test_existing_pointer_is_not_overwritten(self, workspace, connected, tmp_path, google):
        (tmp_path / "Report.goox").write_text("old-id")
        with pytest.raises(DuplicatePath):
            await workspace.create_linked_document(tmp_path, "Report")

        assert (tmp_path / "Report.goox").read_text() == "old-id"
        assert google.created_names == []

    @pytest.mark.asyncio
    async def test_not_connected_wins_over_existing_pointer(self, workspace, tmp_path, google):
        (tmp_path / "Report.goox").write_text("old-id")
        with pytest.raises(NotConnected):
            await workspace.create_linked_document(tmp_path, "Report")
        assert google.requests == []

    @pytest.mark.asyncio
    async def test_stale_mapping_is_replaced(self, workspace, connected, tmp_path, google):
        pointer = tmp_path / "Report.goox"
        await workspace.references.add(RESOURCE_TYPE, pointer, "old-id")

        assert await workspace.create_linked_document(tmp_path, "Report") == pointer

        assert pointer.read_text() == "abc123"
        assert (await workspace.references.get_by_path(pointer)).remote_id == "abc123"
        assert await workspace.open_linked_document(pointer) == document_url("abc123")

    @pytest.mark.asyncio
    async def test_mapping_failure_keeps_openable_pointer(self, workspace, connected, tmp_path):
        with patch.object(workspace.references, "add", side_effect=StorageFailure("disk full")):
            with pytest.raises(StorageFailure):
                await workspace.create_linked_document(tmp_path, "Report")

        pointer = tmp_path / "Report.goox"
        assert pointer.read_text() == "abc123"
        assert await workspace.references.get_by_path(pointer) is None

        url = await workspace.open_linked_document(pointer)
        assert url == document_url("abc123")


class TestOpenLinkedDocument:
    @pytest.mark.asyncio
    async def test_opens_via_mapping(self, workspace, connected, tmp_path):
        pointer = await workspace.create_linked_document(tmp_path, "Report")
        url = await workspace.open_linked_document(pointer)

        assert url == "https://docs.google.com/document/d/abc123/edit"
        assert workspace.opened == [url]

    @pytest.mark.asyncio
    async def test_pointer_content_wins_over_stale_mapping(self, workspace, tmp_path):
        pointer = tmp_path / "Report.goox"
        pointer.write_text("from-file")
        await workspace.references.add(RESOURCE_TYPE, pointer, "from-db")

        assert await workspace.links.resolve_remote_id(pointer) == "from-file"
        assert (await workspace.references.get_by_path(pointer)).remote_id == "from-file"

    @pytest.mark.asyncio
    async def test_mapping_answers_for_empty_pointer(self, workspace, tmp_path):
        pointer = tmp_path / "Report.goox"
        pointer.write_text("")
        await workspace.references.add(RESOURCE_TYPE, pointer, "from-db")

        assert await workspace.links.resolve_remote_id(pointer) == "from-db"

    @pytest.mark.asyncio
    async def test_mapping_without_pointer_file_is_not_trusted(self, workspace, tmp_path):
        pointer = tmp_path / "Report.goox"
        await workspace.references.add(RESOURCE_TYPE, pointer, "old-id")

        with pytest.raises(UnresolvedReference):
            await workspace.open_linked_document(pointer)

        assert workspace.opened == []
        assert await workspace.references.get_by_path(pointer) is None

    @pytest.mark.asyncio
    async def test_falls_back_to_pointer_content(self, workspace, tmp_path):
        pointer = tmp_path / "Report.goox"
        pointer.write_text("xyz789\n")

        url = await workspace.open_linked_document(pointer)

        assert url == document_url("xyz789")
        assert workspace.opened == [url]
        # the missing row is restored from the pointer
        assert (await workspace.references.get_by_path(pointer)).remote_id == "xyz789"

    @pytest.mark.asyncio
    async def test_unresolvable(self, workspace, tmp_path):
        with pytest.raises(UnresolvedReference):
            await workspace.open_linked_document(tmp_path / "Missing.goox")

        (tmp_path / "Empty.goox").write_text("  ")
        with pytest.raises(UnresolvedReference):
            await workspace.open_linked_document(tmp_path / "Empty.goox")
        assert workspace.opened == []

    @pytest.mark.asyncio
    async def test_open_path_dispatches_by_extension(self, workspace, tmp_path):
        (tmp_path / "Report.goox").write_text("abc123")
        (tmp_path / "notes.txt").write_text("hello")

        await workspace.links.open_path(tmp_path / "Report.goox")
        await workspace.links.open_path(tmp_path / "notes.txt")

        assert workspace.opened == [document_url("abc123"), str(tmp_path / "notes.txt")]


class TestPointerLifecycle:
    @pytest.mark.asyncio
    async def test_rename_carries_mapping(self, workspace, connected, tmp_path):
        pointer = await workspace.create_linked_document(tmp_path, "Report")
        moved = await workspace.links.rename_pointer(pointer, tmp_path / "Final.goox")

        assert moved == tmp_path / "Final.goox"
        assert not pointer.exists()
        assert await workspace.references.is_external(pointer) is False
        assert (await workspace.references.get_by_path(moved)).remote_id == "abc123"

    @pytest.mark.asyncio
    async def test_delete_removes_mapping(self, workspace, connected, tmp_path):
        pointer = await workspace.create_linked_document(tmp_path, "Report")
        await workspace.links.delete_pointer(pointer)

        assert not pointer.exists()
        assert await workspace.links.list_linked_documents() == []

    @pytest.mark.asyncio
    async def test_delete_with_pointer_already_gone(self, workspace, connected, tmp_path):
        pointer = await workspace.create_linked_document(tmp_path, "Report")
        pointer.unlink()

        await workspace.links.delete_pointer(pointer)

        assert await workspace.links.list_linked_documents() == []

    @pytest.mark.asyncio
    async def test_list_remote_documents(self, workspace, connected):
        docs = await workspace.links.list_remote_documents()
        assert [(d.id, d.name) for d in docs] == [("d1", "Notes")]


class TestWorkspaceIdentity:
    @pytest.mark.asyncio
    async def test_connected_email_and_disconnect(self, workspace, connected, google):
        assert workspace.is_connected() is True
        assert workspace.connected_email() == "user@example.com"

        await workspace.disconnect()

        assert workspace.is_connected() is False
        assert workspace.connected_email() is None
        assert len(google.calls("/revoke")) == 1

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected(self, workspace, google):
        await workspace.disconnect()
        assert workspace.is_connected() is False
        assert google.requests == []

    @pytest.mark.asyncio
    async def test_default_database_lives_in_app_data(self, settings):
        settings = settings.model_copy(update={"database_url": None})
        ws = Workspace(settings, opener=lambda url: None)
        await ws.open()
        await ws.close()
        assert (Path(settings.app_data_dir) / "finder.db").exists()

    @pytest.mark.asyncio
    async def test_corrupt_credential_can_still_be_disconnected(self, workspace, memory_keyring, google):
        memory_keyring.passwords[("finder-tests", "google-oauth")] = "garbage"

        assert workspace.is_connected() is False
        assert workspace.connected_email() is None

        await workspace.disconnect()

        assert ("finder-tests", "google-oauth") not in memory_keyring.passwords
        assert google.calls("/revoke") == []
