"""Unit tests for sync.diff_engine module."""

from src.confluence_client.models import RemoteNode
from src.sync.diff_engine import (
    build_forced_diff,
    build_specific_diff,
    compute_diff,
    local_version,
    resolve_specific_pages,
)
from src.sync.models import PageInfo, PageLink, PageStateCache, SpaceState


def node(page_id, title, version, parent_id=None):
    return RemoteNode(id=page_id, title=title, version=version, parent_id=parent_id)


def make_state(**pages):
    return SpaceState(space_id="98765", space_key="DOCS", pages=dict(pages))


def ids(changes):
    return [change.page_id for change in changes]


class TestComputeDiff:
    """Test cases for compute_diff."""

    def test_new_child_page_is_added(self):
        remote = [node("1", "Home", 1), node("2", "Guide", 2, parent_id="1")]
        state = make_state(**{"1": PageLink(local_path="home.md", version=1)})

        diff = compute_diff(remote, state)

        assert ids(diff.added) == ["2"]
        assert diff.modified == []
        assert diff.deleted == []

    def test_no_state_adds_everything(self):
        diff = compute_diff([node("1", "A", 1), node("2", "B", 1)], None)

        assert ids(diff.added) == ["1", "2"]

    def test_newer_remote_version_is_modified(self):
        state = make_state(**{"1": PageLink(local_path="a.md", version=2)})

        diff = compute_diff([node("1", "A", 3)], state)

        assert ids(diff.modified) == ["1"]
        assert diff.modified[0].local_path == "a.md"

    def test_equal_or_older_remote_version_is_unchanged(self):
        state = make_state(**{
            "1": PageLink(local_path="a.md", version=3),
            "2": PageLink(local_path="b.md", version=5),
        })

        diff = compute_diff([node("1", "A", 3), node("2", "B", 4)], state)

        assert diff.is_empty()

    def test_tracked_page_missing_remotely_is_deleted(self):
        state = make_state(**{"9": PageLink(local_path="guides/old-page.md", version=1)})

        diff = compute_diff([], state)

        assert ids(diff.deleted) == ["9"]
        assert diff.deleted[0].title == "old-page"

    def test_front_matter_version_wins_over_state(self):
        state = make_state(**{"1": PageLink(local_path="a.md", version=1)})
        cache = PageStateCache()
        cache.add(PageInfo(page_id="1", local_path="a.md", title="A", version=4))

        diff = compute_diff([node("1", "A", 4)], state, cache)

        assert diff.is_empty()

    def test_unknown_local_version_forces_repull(self):
        state = make_state(**{"1": PageLink(local_path="a.md")})

        diff = compute_diff([node("1", "A", 1)], state)

        assert ids(diff.modified) == ["1"]

    def test_each_page_in_at_most_one_list(self):
        remote = [node("1", "A", 2), node("2", "B", 1), node("1", "A", 2)]
        state = make_state(**{
            "1": PageLink(local_path="a.md", version=1),
            "3": PageLink(local_path="c.md", version=1),
        })

        diff = compute_diff(remote, state)

        all_ids = ids(diff.added) + ids(diff.modified) + ids(diff.deleted)
        assert sorted(all_ids) == ["1", "2", "3"]

    def test_force_and_protected_ids(self):
        state = make_state(**{
            "1": PageLink(local_path="a.md", version=5),
            "2": PageLink(local_path="deep/b.md", version=1),
        })

        diff = compute_diff([node("1", "A", 5)], state, force_page_ids={"1"}, protected_page_ids={"2"})

        assert ids(diff.modified) == ["1"]
        assert diff.deleted == []


class TestSpecificPages:
    """Test cases for resolving and diffing user-selected pages."""

    def test_resolves_paths_and_ids(self):
        state = make_state(**{
            "1": PageLink(local_path="guides/setup.md", version=1),
            "2": PageLink(local_path="README.md", version=1),
        })

        page_ids, warnings = resolve_specific_pages(["./guides/setup.md", "2", "1", "nope.md"], state)

        assert page_ids == ["1", "2"]
        assert warnings == ["Could not find page for: nope.md"]

    def test_specific_diff_marks_pages_modified(self):
        state = make_state(**{"1": PageLink(local_path="guides/setup.md", version=9)})
        cache = PageStateCache()
        cache.add(PageInfo(page_id="1", local_path="guides/setup.md", title="Setup Guide", version=9))

        diff = build_specific_diff(["1"], state, cache)

        assert ids(diff.modified) == ["1"]
        assert diff.modified[0].title == "Setup Guide"
        assert diff.added == [] and diff.deleted == []

    def test_forced_diff_adds_every_page(self):
        diff = build_forced_diff([node("1", "A", 1), node("2", "B", 1)])

        assert ids(diff.added) == ["1", "2"]

    def test_local_version_fallbacks(self):
        assert local_version("1", PageLink(local_path="a.md", version=3), None) == 3
        assert local_version("1", PageLink(local_path="a.md"), PageStateCache()) == 0
