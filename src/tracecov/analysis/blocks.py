"""Block tree linking for freshly analyzed files.

The structural pass records each block with a ``parent_id`` but does not
build ``children`` lists. ``link_blocks`` does that in three passes:

1. Attach each block to its parent in table order. A block whose parent has
   not been seen yet waits in a pending list keyed by the parent id and is
   attached when that parent shows up.
2. Drop cross references that no longer hold: children that do not exist
   or that name a different parent.
3. Check the tree shape. Every block except root has exactly one parent,
   is listed in that parent's children, and has no cycle in its parent
   chain. Anything else is reattached to root and counted.

The store runs the same checks on its own records (``store.relationships``).
"""

from __future__ import annotations

from tracecov.analysis.models import ROOT_BLOCK_ID, BlockInfo, BlockKind
from tracecov.core.errors import RelationshipInconsistency
from tracecov.core.logging import get_logger

log = get_logger("analysis.blocks")


def make_root(line_count: int) -> BlockInfo:
    return BlockInfo(
        block_id=ROOT_BLOCK_ID,
        kind=BlockKind.ROOT,
        start_line=1,
        end_line=max(line_count, 1),
        parent_id=None,
    )


def _has_cycle(blocks: dict[str, BlockInfo], block_id: str) -> bool:
    seen = {block_id}
    current = blocks[block_id].parent_id
    while current is not None and current in blocks:
        if current in seen:
            return True
        seen.add(current)
        current = blocks[current].parent_id
    return False


def link_blocks(blocks: dict[str, BlockInfo], path: str) -> int:
    """Populate ``children`` and repair the tree in place.

    Returns:
        Number of blocks reattached to root.
    """
    if ROOT_BLOCK_ID not in blocks:
        blocks[ROOT_BLOCK_ID] = make_root(max((b.end_line for b in blocks.values()), default=1))

    # Pass 1: attach in table order, deferring children of unseen parents.
    seen: set[str] = set()
    pending: dict[str, list[str]] = {}
    for block_id, block in blocks.items():
        seen.add(block_id)
        for waiting in pending.pop(block_id, []):
            if waiting not in block.children:
                block.children.append(waiting)
        parent_id = block.parent_id
        if parent_id is None:
            continue
        if parent_id in seen:
            parent = blocks[parent_id]
            if block_id not in parent.children:
                parent.children.append(block_id)
        else:
            pending.setdefault(parent_id, []).append(block_id)

    # Pass 2: drop stale cross references.
    for block in blocks.values():
        block.children = [
            c for c in block.children if c in blocks and blocks[c].parent_id == block.block_id
        ]

    # Pass 3: every non-root block hangs off exactly one live parent.
    reattached = 0
    root = blocks[ROOT_BLOCK_ID]
    for block_id, block in blocks.items():
        if block_id == ROOT_BLOCK_ID:
            continue
        parent = blocks.get(block.parent_id) if block.parent_id is not None else None
        cyclic = parent is not None and _has_cycle(blocks, block_id)
        if parent is not None and not cyclic and block_id in parent.children:
            continue

        err = (
            RelationshipInconsistency.cycle(path, block_id)
            if cyclic
            else RelationshipInconsistency.orphan(path, block_id, block.parent_id)
        )
        log.warning("block_reattached", error=err.error_name, **err.details)
        if parent is not None and block_id in parent.children:
            parent.children.remove(block_id)
        block.parent_id = ROOT_BLOCK_ID
        if block_id not in root.children:
            root.children.append(block_id)
        reattached += 1

    return reattached
