"""Unit tests for cli.init_command module."""

from unittest.mock import Mock

import pytest

from src.cli.errors import InitError
from src.cli.init_command import InitCommand
from src.confluence_client.errors import ApiError
from src.confluence_client.models import RemoteSpace
from src.sync.models import PageLink, SpaceState
from src.sync.state_store import StateManager


def create_mock_api(space_key="TEAM"):
    api = Mock()
    api.get_space.return_value = RemoteSpace(id="98765", key=space_key, name="Team Space")
    return api


class TestParseSpaceKey:
    """Test cases for space key and URL parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("TEAM", "TEAM"),
        ("  TEAM  ", "TEAM"),
        ("~alex", "~alex"),
        ("https://acme.atlassian.net/wiki/spaces/TEAM", "TEAM"),
        ("https://acme.atlassian.net/wiki/spaces/TEAM/overview", "TEAM"),
        ("https://acme.atlassian.net/wiki/spaces/TEAM/pages/123456/Getting+Started", "TEAM"),
    ])
    def test_accepted_forms(self, value, expected):
        assert InitCommand(create_mock_api())._parse_space_key(value) == expected

    @pytest.mark.parametrize("value", ["", "bad key", "https://acme.atlassian.net/wiki/display/TEAM"])
    def test_rejected_forms(self, value):
        with pytest.raises(InitError):
            InitCommand(create_mock_api())._parse_space_key(value)


class TestRun:
    """Test cases for InitCommand.run."""

    def test_writes_fresh_state(self, tmp_path):
        work_dir = tmp_path / "docs"
        api = create_mock_api()

        state = InitCommand(api).run(str(work_dir), "TEAM")

        api.get_space.assert_called_once_with("TEAM")
        assert state == SpaceState(space_id="98765", space_key="TEAM", space_name="Team Space")
        assert StateManager.load(str(work_dir)) == state

    def test_reinit_same_space_keeps_tracked_pages(self, tmp_path):
        existing = SpaceState(space_id="old", space_key="TEAM", last_sync_at="2024-01-01T00:00:00Z")
        existing.pages["1"] = PageLink(local_path="README.md", version=2)
        StateManager.save(str(tmp_path), existing)

        state = InitCommand(create_mock_api()).run(str(tmp_path), "TEAM")

        assert state.space_id == "98765"
        assert state.pages == existing.pages
        assert state.last_sync_at == "2024-01-01T00:00:00Z"

    def test_directory_bound_to_another_space(self, tmp_path):
        StateManager.save(str(tmp_path), SpaceState(space_id="1", space_key="OTHER"))
        api = create_mock_api()

        with pytest.raises(InitError, match="already initialized for space 'OTHER'"):
            InitCommand(api).run(str(tmp_path), "TEAM")

        api.get_space.assert_not_called()

    def test_unknown_space(self, tmp_path):
        api = Mock()
        api.get_space.side_effect = ApiError(404, "Space 'NOPE' not found")

        with pytest.raises(InitError, match="Failed to resolve space 'NOPE'"):
            InitCommand(api).run(str(tmp_path), "NOPE")

        assert not StateManager.exists(str(tmp_path))
