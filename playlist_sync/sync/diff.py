"""
Snapshot diff for playlist-sync.

Computes the edit script that turns the stored ordering of a target into
the ordering currently reported by the remote. The diff is pure: no I/O,
no hidden state, and the result depends only on the two inputs.

Algorithm (linear in the size of the larger snapshot):
    1. Index the local snapshot: remote_item_id -> local position
    2. Walk the remote list in order, skipping repeated ids (first
       occurrence wins, so new positions stay dense)
    3. Each remote id gets its index in the de-duplicated list as its
       new position. Absent locally -> added; present with another
       position -> reordered
    4. Local ids never seen in the remote -> removed

Example:
    local  = [("A", 0), ("B", 1), ("C", 2)]
    remote = ["B", "C", "D"]

    diff(local, remote)
    # added     = (("D", 2),)
    # removed   = ("A",)
    # reordered = (("B", 1, 0), ("C", 2, 1))
"""

from typing import Iterable

from playlist_sync.core.exceptions import DiffError
from playlist_sync.core.models import EditScript


def diff(local: Iterable[tuple[str, int]], remote: Iterable[str]) -> EditScript:
    """
    Compute the edit script from a local snapshot to a remote ordering.

    Args:
        local: (remote_item_id, position) pairs as stored, in any order.
        remote: remote_item_ids in remote order. Repeated ids are kept
                at their first occurrence only.

    Returns:
        EditScript with added/reordered ordered by new position and
        removed ordered by old position.

    Raises:
        DiffError: If the local snapshot lists the same item twice.
    """
    local_positions: dict[str, int] = {}
    for remote_item_id, position in local:
        if remote_item_id in local_positions:
            raise DiffError(
                f"Local snapshot lists item twice: {remote_item_id}",
                details={"remote_item_id": remote_item_id}
            )
        local_positions[remote_item_id] = position

    added: list[tuple[str, int]] = []
    reordered: list[tuple[str, int, int]] = []
    seen: set[str] = set()

    new_position = 0
    for remote_item_id in remote:
        if remote_item_id in seen:
            continue
        seen.add(remote_item_id)

        old_position = local_positions.get(remote_item_id)
        if old_position is None:
            added.append((remote_item_id, new_position))
        elif old_position != new_position:
            reordered.append((remote_item_id, old_position, new_position))
        new_position += 1

    removed = sorted(
        (
            (position, remote_item_id)
            for remote_item_id, position in local_positions.items()
            if remote_item_id not in seen
        ),
    )

    return EditScript(
        added=tuple(added),
        removed=tuple(remote_item_id for _, remote_item_id in removed),
        reordered=tuple(reordered),
    )


def apply_edit_script(
    local: Iterable[tuple[str, int]],
    script: EditScript
) -> list[tuple[str, int]]:
    """
    Apply an edit script to an in-memory snapshot.

    Mirrors what the store does in a transaction and is used to check
    that applying diff(local, remote) to local yields remote.

    Returns:
        The resulting (remote_item_id, position) pairs ordered by position.
    """
    positions = dict(local)

    for remote_item_id in script.removed:
        del positions[remote_item_id]

    for remote_item_id, _, new_position in script.reordered:
        positions[remote_item_id] = new_position

    for remote_item_id, position in script.added:
        positions[remote_item_id] = position

    return sorted(positions.items(), key=lambda pair: pair[1])


def dedupe(remote: Iterable[str]) -> list[str]:
    """Remote ids in order with repeats dropped (first occurrence wins)."""
    return list(dict.fromkeys(remote))
