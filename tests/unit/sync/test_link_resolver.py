"""Unit tests for sync.link_resolver module."""

from src.sync.link_resolver import (
    build_lookup_map,
    relative_path_to_remote_link,
    remote_link_to_relative_path,
    update_references_after_rename,
)
from src.sync.models import PageInfo, PageStateCache, RemoteLinkTarget


def make_cache(*infos):
    cache = PageStateCache()
    for info in infos:
        cache.add(info)
    return cache


def info(page_id, local_path, title):
    return PageInfo(page_id=page_id, local_path=local_path, title=title, version=1)


class TestBuildLookupMap:
    """Test cases for build_lookup_map."""

    def test_indexes_by_id_path_and_title(self):
        page = info("1", "guides/setup.md", "Setup")

        lookup = build_lookup_map(make_cache(page))

        assert lookup.id_to_page == {"1": page}
        assert lookup.path_to_page == {"guides/setup.md": page}
        assert lookup.title_to_page == {"Setup": page}

    def test_duplicate_title_resolves_to_smallest_id_in_either_order(self):
        first = info("page-1", "a/overview.md", "Overview")
        second = info("page-2", "b/overview.md", "Overview")

        forward = build_lookup_map(make_cache(first, second))
        backward = build_lookup_map(make_cache(second, first))

        assert forward.title_to_page["Overview"].page_id == "page-1"
        assert backward.title_to_page["Overview"].page_id == "page-1"

    def test_duplicate_title_warning_names_both_paths(self):
        lookup = build_lookup_map(
            make_cache(info("2", "b/overview.md", "Overview"), info("1", "a/overview.md", "Overview")),
            warn_duplicates=True,
        )

        assert lookup.warnings == [
            'Duplicate title "Overview" found in a/overview.md and b/overview.md. '
            'Links to this title will resolve to a/overview.md.'
        ]

    def test_no_warning_unless_requested(self):
        lookup = build_lookup_map(make_cache(info("1", "a.md", "Same"), info("2", "b.md", "Same")))

        assert lookup.warnings == []

    def test_untitled_pages_are_not_indexed_by_title(self):
        lookup = build_lookup_map(make_cache(info("1", "README.md", "")))

        assert lookup.title_to_page == {}
        assert "README.md" in lookup.path_to_page


class TestRemoteLinkToRelativePath:
    """Test cases for remote_link_to_relative_path."""

    def setup_method(self):
        self.lookup = build_lookup_map(make_cache(
            info("1", "README.md", "Home"),
            info("2", "guides/setup.md", "Setup"),
            info("3", "guides/intro.md", "Intro"),
            info("4", "api/README.md", "API"),
        ))

    def test_sibling_link(self):
        assert remote_link_to_relative_path("Intro", "guides/setup.md", self.lookup) == "./intro.md"

    def test_link_to_other_directory(self):
        assert remote_link_to_relative_path("API", "guides/setup.md", self.lookup) == "../api/README.md"

    def test_link_from_root(self):
        assert remote_link_to_relative_path("Setup", "README.md", self.lookup) == "./guides/setup.md"

    def test_unknown_title_is_none(self):
        assert remote_link_to_relative_path("Nope", "README.md", self.lookup) is None


class TestRelativePathToRemoteLink:
    """Test cases for relative_path_to_remote_link."""

    def setup_method(self):
        self.lookup = build_lookup_map(make_cache(
            info("2", "guides/setup.md", "Setup"),
            info("4", "api/README.md", "API"),
        ))

    def test_resolves_relative_link(self, tmp_path):
        target = relative_path_to_remote_link("../api/README.md", "guides/setup.md", str(tmp_path), self.lookup)

        assert target == RemoteLinkTarget(title="API", page_id="4")

    def test_link_outside_space_root_is_none(self, tmp_path):
        assert relative_path_to_remote_link("../../x.md", "guides/setup.md", str(tmp_path), self.lookup) is None

    def test_untracked_file_is_none(self, tmp_path):
        assert relative_path_to_remote_link("./other.md", "guides/setup.md", str(tmp_path), self.lookup) is None

    def test_round_trip_returns_original_title(self, tmp_path):
        relative = remote_link_to_relative_path("Setup", "api/README.md", self.lookup)

        target = relative_path_to_remote_link(relative, "api/README.md", str(tmp_path), self.lookup)

        assert target.title == "Setup"


class TestUpdateReferencesAfterRename:
    """Test cases for update_references_after_rename."""

    def write(self, root, local_path, text):
        path = root / local_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def test_rewrites_links_relative_to_each_file(self, tmp_path):
        home = self.write(
            tmp_path, "README.md", "---\ntitle: Home\n---\nSee [guide](./guide.md) and [again](guide.md#setup).\n"
        )
        nested = self.write(tmp_path, "api/auth.md", "Back to [the guide](../guide.md).\n")
        self.write(tmp_path, "getting-started.md", "Self\n")

        updated, warnings = update_references_after_rename(str(tmp_path), "guide.md", "getting-started.md")

        assert updated == {"README.md": 2, "api/auth.md": 1}
        assert warnings == []
        assert home.read_text(encoding="utf-8") == (
            "---\ntitle: Home\n---\nSee [guide](./getting-started.md) and [again](getting-started.md#setup).\n"
        )
        assert "[the guide](../getting-started.md)" in nested.read_text(encoding="utf-8")

    def test_leaves_other_links_and_front_matter_alone(self, tmp_path):
        text = "---\nsource: ./guide.md\n---\n[other](./other-guide.md) and [ext](https://example.com/guide.md)\n"
        page = self.write(tmp_path, "notes.md", text)

        updated, _ = update_references_after_rename(str(tmp_path), "guide.md", "getting-started.md")

        assert updated == {}
        assert page.read_text(encoding="utf-8") == text

    def test_skips_hidden_directories(self, tmp_path):
        hidden = self.write(tmp_path, ".confluence-sync/notes.md", "[guide](../guide.md)\n")

        update_references_after_rename(str(tmp_path), "guide.md", "getting-started.md")

        assert hidden.read_text(encoding="utf-8") == "[guide](../guide.md)\n"
