# tests/test_diff.py
"""Test the snapshot diff"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from playlist_sync.core.exceptions import DiffError
from playlist_sync.core.models import EditScript
from playlist_sync.sync.diff import apply_edit_script, dedupe, diff


ITEM_IDS = st.sampled_from([f"v{i}" for i in range(12)])


@st.composite
def local_snapshots(draw):
    """Dense (id, position) snapshots with unique ids, in random order."""
    ids = draw(st.lists(ITEM_IDS, unique=True, max_size=12))
    pairs = [(item_id, position) for position, item_id in enumerate(ids)]
    return draw(st.permutations(pairs))


REMOTE_LISTS = st.lists(ITEM_IDS, max_size=20)


def as_snapshot(remote):
    return [(item_id, position) for position, item_id in enumerate(dedupe(remote))]


class TestDiffScenarios:
    """Test hand-written diff cases"""

    def test_remove_shift_and_append(self):
        """Test A,B,C -> B,C,D"""
        script = diff([("A", 0), ("B", 1), ("C", 2)], ["B", "C", "D"])

        assert script.added == (("D", 2),)
        assert script.removed == ("A",)
        assert script.reordered == (("B", 1, 0), ("C", 2, 1))

    def test_identical_snapshots_produce_empty_script(self):
        """Test no-op diff"""
        script = diff([("A", 0), ("B", 1)], ["A", "B"])

        assert script.is_empty
        assert len(script) == 0
        assert script == EditScript()

    def test_empty_local_adds_everything(self):
        """Test first sync of a target"""
        script = diff([], ["X", "Y"])

        assert script.added == (("X", 0), ("Y", 1))
        assert script.removed == ()
        assert script.reordered == ()

    def test_empty_remote_removes_everything_in_old_order(self):
        """Test removals come out by old position"""
        script = diff([("C", 2), ("A", 0), ("B", 1)], [])

        assert script.removed == ("A", "B", "C")
        assert script.added == ()

    def test_swap(self):
        """Test two items trading places"""
        script = diff([("A", 0), ("B", 1)], ["B", "A"])

        assert script.reordered == (("B", 1, 0), ("A", 0, 1))
        assert script.summary() == "+0 -0 ~2"

    def test_remote_duplicates_keep_first_occurrence(self):
        """Test repeated remote ids do not leave position gaps"""
        script = diff([("A", 0)], ["A", "B", "A", "C"])

        assert script.added == (("B", 1), ("C", 2))
        assert script.reordered == ()

    def test_local_duplicates_raise(self):
        """Test a corrupted local snapshot is rejected"""
        with pytest.raises(DiffError):
            diff([("A", 0), ("A", 1)], ["A"])

    def test_dedupe(self):
        """Test dedupe keeps order"""
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


class TestDiffProperties:
    """Test diff properties over generated snapshots"""

    @settings(max_examples=200, deadline=None)
    @given(local=local_snapshots(), remote=REMOTE_LISTS)
    def test_round_trip(self, local, remote):
        """Applying diff(local, remote) to local yields remote"""
        script = diff(local, remote)

        assert apply_edit_script(local, script) == as_snapshot(remote)

    @settings(max_examples=200, deadline=None)
    @given(local=local_snapshots(), remote=REMOTE_LISTS)
    def test_idempotence(self, local, remote):
        """A second diff after applying the first is empty"""
        applied = apply_edit_script(local, diff(local, remote))

        assert diff(applied, remote).is_empty

    @settings(max_examples=100, deadline=None)
    @given(remote=REMOTE_LISTS)
    def test_no_op(self, remote):
        """A snapshot diffed against its own remote list is empty"""
        assert diff(as_snapshot(remote), remote).is_empty

    @settings(max_examples=100, deadline=None)
    @given(local=local_snapshots(), remote=REMOTE_LISTS)
    def test_canonical_ordering(self, local, remote):
        """Added and reordered by new position, removed by old position"""
        script = diff(local, remote)
        old_positions = dict(local)

        assert [p for _, p in script.added] == sorted(p for _, p in script.added)
        assert [n for _, _, n in script.reordered] == sorted(n for _, _, n in script.reordered)
        removed_positions = [old_positions[item_id] for item_id in script.removed]
        assert removed_positions == sorted(removed_positions)
