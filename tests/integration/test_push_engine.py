"""Integration tests for pushing local files to the remote space."""

import pytest
from unittest.mock import patch

from src.confluence_client.errors import ApiError, SyncError, VersionConflictError
from src.file_mapper.frontmatter_handler import FrontmatterHandler
from src.sync.models import PushOptions, SpaceState
from src.sync.push_engine import PushEngine
from src.sync.state_store import StateManager
from src.sync.sync_engine import SyncEngine
from tests.helpers.fake_remote import FakeConverter, FakeRemote


@pytest.fixture
def remote():
    fake = FakeRemote()
    fake.add_page("1", "Home", version=1)
    fake.add_page("2", "Guide", version=2, parent_id="1")
    fake.add_page("3", "API", version=1, parent_id="1")
    fake.add_page("4", "Auth", version=1, parent_id="3")
    return fake


@pytest.fixture
def work_dir(tmp_path, remote):
    """A directory pulled from the fake remote."""
    StateManager.save(str(tmp_path), SpaceState(space_id="98765", space_key="DOCS"))
    SyncEngine(remote, FakeConverter()).sync(str(tmp_path))
    return tmp_path


def read_page(work_dir, local_path):
    return FrontmatterHandler.parse(local_path, (work_dir / local_path).read_text(encoding="utf-8"))


def edit_body(work_dir, local_path, new_body):
    page = read_page(work_dir, local_path)
    (work_dir / local_path).write_text(FrontmatterHandler.generate(page.metadata, new_body), encoding="utf-8")


class TestUpdate:
    """Test cases for pushing a file that tracks an existing page."""

    def test_update_bumps_version(self, work_dir, remote):
        edit_body(work_dir, "guide.md", "New text\n")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md")

        assert remote.operations("update") == [("update", "2", 3)]
        assert remote.pages["2"].body == "<p>New text</p>"
        assert result.version == 3
        assert result.created is False
        assert read_page(work_dir, "guide.md").version == 3
        assert StateManager.load(str(work_dir)).pages["2"].version == 3

    def test_remote_change_is_a_conflict(self, work_dir, remote):
        remote.pages["2"].version = 5

        with pytest.raises(VersionConflictError) as exc_info:
            PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md")

        assert exc_info.value.local_version == 2
        assert exc_info.value.remote_version == 5
        assert remote.operations("update") == []

    def test_force_overwrites_newer_remote(self, work_dir, remote):
        remote.pages["2"].version = 5

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md", PushOptions(force=True))

        assert remote.operations("update") == [("update", "2", 6)]
        assert result.version == 6

    def test_dry_run_does_not_update(self, work_dir, remote):
        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "./guide.md", PushOptions(dry_run=True))

        assert result.dry_run is True
        assert result.version == 3
        assert remote.operations("update") == []
        assert read_page(work_dir, "guide.md").version == 2

    def test_changed_parent_moves_the_page(self, work_dir, remote):
        page = read_page(work_dir, "guide.md")
        page.metadata["parent_id"] = "3"
        (work_dir / "guide.md").write_text(FrontmatterHandler.generate(page.metadata, page.content), encoding="utf-8")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md")

        assert remote.operations("move") == [("move", "2", "3")]
        assert result.moved is True
        assert remote.pages["2"].parent_id == "3"


class TestCreate:
    """Test cases for pushing a file that has never been synced."""

    def test_new_root_file_becomes_child_of_homepage(self, work_dir, remote):
        (work_dir / "release-notes.md").write_text("---\ntitle: Release Notes\n---\nShipped\n", encoding="utf-8")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "release-notes.md")

        assert remote.operations("create_page") == [("create_page", "Release Notes", "1")]
        assert result.created is True
        page = read_page(work_dir, "release-notes.md")
        assert page.page_id == result.page_id
        assert page.version == 1
        assert "Shipped" in page.content
        assert StateManager.load(str(work_dir)).pages[result.page_id].local_path == "release-notes.md"

    def test_title_defaults_to_file_name(self, work_dir, remote):
        (work_dir / "faq.md").write_text("Questions\n", encoding="utf-8")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "faq.md")

        assert result.title == "faq"

    def test_file_next_to_index_page_becomes_its_child(self, work_dir, remote):
        (work_dir / "api" / "tokens.md").write_text("---\ntitle: Tokens\n---\nText\n", encoding="utf-8")

        PushEngine(remote, FakeConverter()).push(str(work_dir), "api/tokens.md")

        assert remote.operations("create_page") == [("create_page", "Tokens", "3")]
        assert remote.operations("create_folder") == []

    def test_file_in_new_directory_goes_under_a_created_folder(self, work_dir, remote):
        (work_dir / "team").mkdir()
        (work_dir / "team" / "plans.md").write_text("---\ntitle: Plans\n---\nText\n", encoding="utf-8")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "team/plans.md")

        assert remote.operations("create_folder") == [("create_folder", "team", None)]
        folder_id = StateManager.load(str(work_dir)).folder_id_for_path("team")
        assert remote.operations("create_page") == [("create_page", "Plans", None)]
        assert remote.operations("move") == [("move", result.page_id, folder_id)]
        assert result.moved is True

    def test_failed_move_still_records_the_created_page(self, work_dir, remote):
        (work_dir / "team").mkdir()
        (work_dir / "team" / "plans.md").write_text("---\ntitle: Plans\n---\nText\n", encoding="utf-8")
        engine = PushEngine(remote, FakeConverter())

        with patch.object(remote, "move", side_effect=ApiError(500, "move failed")):
            result = engine.push(str(work_dir), "team/plans.md")

        assert result.moved is False
        assert any("could not be moved" in warning for warning in result.warnings)
        assert read_page(work_dir, "team/plans.md").page_id == result.page_id
        assert StateManager.load(str(work_dir)).pages[result.page_id].local_path == "team/plans.md"

        retry = engine.push(str(work_dir), "team/plans.md")

        folder_id = StateManager.load(str(work_dir)).folder_id_for_path("team")
        assert len(remote.operations("create_page")) == 1
        assert retry.page_id == result.page_id
        assert retry.moved is True
        assert remote.pages[result.page_id].parent_id == folder_id

    def test_dry_run_plans_folders_without_creating(self, work_dir, remote):
        (work_dir / "team").mkdir()
        (work_dir / "team" / "plans.md").write_text("Text\n", encoding="utf-8")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "team/plans.md", PushOptions(dry_run=True))

        assert result.dry_run is True
        assert result.warnings == ["Would create folder: team"]
        assert remote.operations("create_folder") == []
        assert remote.operations("create_page") == []


class TestRejectedPushes:
    """Test cases for files that cannot be pushed."""

    def test_reserved_filename(self, work_dir, remote):
        (work_dir / "CLAUDE.md").write_text("Instructions\n", encoding="utf-8")

        with pytest.raises(SyncError, match="reserved filename"):
            PushEngine(remote, FakeConverter()).push(str(work_dir), "CLAUDE.md")

    def test_missing_file(self, work_dir, remote):
        with pytest.raises(FileNotFoundError):
            PushEngine(remote, FakeConverter()).push(str(work_dir), "nope.md")


class TestRenameAfterTitle:
    """Test cases for renaming pushed files to follow the page title."""

    def retitle(self, work_dir, local_path, title):
        page = read_page(work_dir, local_path)
        page.metadata["title"] = title
        (work_dir / local_path).write_text(FrontmatterHandler.generate(page.metadata, page.content), encoding="utf-8")

    def test_new_title_renames_file_and_updates_links(self, work_dir, remote):
        edit_body(work_dir, "README.md", "Start with [the guide](./guide.md).\n")
        edit_body(work_dir, "api/auth.md", "See [guide](../guide.md).\n")
        self.retitle(work_dir, "guide.md", "Getting Started")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md")

        assert result.local_path == "getting-started.md"
        assert result.renamed_from == "guide.md"
        assert not (work_dir / "guide.md").exists()
        assert read_page(work_dir, "getting-started.md").title == "Getting Started"
        assert StateManager.load(str(work_dir)).pages["2"].local_path == "getting-started.md"
        assert "[the guide](./getting-started.md)" in read_page(work_dir, "README.md").content
        assert "[guide](../getting-started.md)" in read_page(work_dir, "api/auth.md").content

    def test_existing_file_keeps_the_old_name(self, work_dir, remote):
        (work_dir / "getting-started.md").write_text("Draft\n", encoding="utf-8")
        self.retitle(work_dir, "guide.md", "Getting Started")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md")

        assert result.local_path == "guide.md"
        assert result.renamed_from is None
        assert result.warnings == ["Keeping file name guide.md (getting-started.md already exists)"]
        assert (work_dir / "getting-started.md").read_text(encoding="utf-8") == "Draft\n"

    def test_index_file_is_never_renamed(self, work_dir, remote):
        self.retitle(work_dir, "api/README.md", "API Reference")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "api/README.md")

        assert result.local_path == "api/README.md"
        assert (work_dir / "api" / "README.md").exists()

    def test_created_page_takes_its_title_as_file_name(self, work_dir, remote):
        (work_dir / "draft.md").write_text("---\ntitle: Release Notes\n---\nShipped\n", encoding="utf-8")

        result = PushEngine(remote, FakeConverter()).push(str(work_dir), "draft.md")

        assert result.local_path == "release-notes.md"
        assert read_page(work_dir, "release-notes.md").page_id == result.page_id
        assert StateManager.load(str(work_dir)).pages[result.page_id].local_path == "release-notes.md"

    def test_dry_run_does_not_rename(self, work_dir, remote):
        self.retitle(work_dir, "guide.md", "Getting Started")

        PushEngine(remote, FakeConverter()).push(str(work_dir), "guide.md", PushOptions(dry_run=True))

        assert (work_dir / "guide.md").exists()
        assert not (work_dir / "getting-started.md").exists()
