# tests/test_app.py
"""Test the application wiring"""

from unittest.mock import Mock

import pytest

from playlist_sync.app import Application
from playlist_sync.core.config import load_config
from playlist_sync.core.database import Database
from playlist_sync.core.models import SyncStatus


def write_config(temp_dir, extra: str = ""):
    path = temp_dir / "config.yaml"
    path.write_text(
        f'storage:\n  directory: "{temp_dir / "data"}"\n{extra}',
        encoding="utf-8"
    )
    return load_config(path)


@pytest.fixture
def remote():
    client = Mock()
    client.playlist_details.return_value = {
        "remote_id": "PLmix",
        "title": "Mix",
        "item_count": 120,
    }
    return client


@pytest.fixture
def app(temp_dir, source, remote):
    config = write_config(temp_dir, 'youtube:\n  api_key: "key"\n')
    (temp_dir / "data").mkdir()
    application = Application(
        config, Database(config.storage.database_path), source=source, remote=remote
    )
    yield application
    application.close()


class TestStartup:
    """Test opening the application"""

    def test_interrupted_sync_is_marked_failed(self, temp_dir, source):
        """Test a target a dead process left IN_PROGRESS comes back FAILED"""
        config = write_config(temp_dir)
        first = Application.from_config(config, source=source)
        target = first.database.add_target("PLstuck")
        first.database.set_sync_status(target.target_id, SyncStatus.IN_PROGRESS)
        first.close()

        second = Application.from_config(config, source=source)
        try:
            assert second.database.get_target(target.target_id).sync_status == SyncStatus.FAILED
            assert not second.engine.is_running(target.target_id)
        finally:
            second.close()

    def test_interrupted_target_can_sync_again(self, temp_dir, source):
        """Test the reset target is picked up by the next run"""
        config = write_config(temp_dir)
        first = Application.from_config(config, source=source)
        target = first.database.add_target("PLstuck")
        first.database.set_sync_status(target.target_id, SyncStatus.IN_PROGRESS)
        first.close()

        source.playlists["PLstuck"] = ["A", "B"]
        second = Application.from_config(config, source=source)
        try:
            outcome = second.engine.run(target.target_id)
            assert outcome.status == SyncStatus.COMPLETED
            assert second.database.get_target(target.target_id).item_count == 2
        finally:
            second.close()


class TestAddTarget:
    """Test registering targets"""

    def test_remote_details_are_stored(self, app, remote):
        """Test the looked-up title and item count are kept"""
        target = app.add_target("PLmix")

        remote.playlist_details.assert_called_once_with("PLmix")
        assert target.title == "Mix"
        assert target.item_count == 120
        assert app.ledger.entry().used == 1

    def test_first_reservation_covers_remote_count(self, app):
        """Test the first sync estimate uses the looked-up item count"""
        target = app.add_target("PLmix")
        assert app.ledger.estimate_cost("playlist.items", target.item_count) == 3

    def test_no_lookup_without_fetch(self, app, remote):
        """Test an offline add costs nothing and keeps a zero count"""
        target = app.add_target("PLmix", fetch_details=False)

        remote.playlist_details.assert_not_called()
        assert target.item_count == 0
        assert app.ledger.entry().used == 0

    def test_explicit_title_skips_lookup(self, app, remote):
        """Test a given title needs no remote call"""
        target = app.add_target("PLmix", title="Mine")

        remote.playlist_details.assert_not_called()
        assert target.title == "Mine"
        assert target.item_count == 0

    def test_synced_target_keeps_local_count(self, app, source):
        """Test re-adding a synced target does not overwrite its count"""
        source.playlists["PLmix"] = ["A", "B"]
        target = app.add_target("PLmix", fetch_details=False)
        app.engine.run(target.target_id)

        again = app.add_target("PLmix")
        assert again.title == "Mix"
        assert again.item_count == 2
