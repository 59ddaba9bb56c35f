"""Block relationship resolver for store records.

Blocks may be added in any order, so a child can name a parent that does
not exist yet. Such children wait in ``FileRecord.pending`` keyed by the
missing parent id. ``fix_relationships`` repairs the two directions of the
tree and is safe to call any number of times: once per file while
collection runs (``finalize=False``) and once more at stop.

Invariant after a finalizing call: every non-root block is listed in
exactly one parent's ``children``, and no parent chain cycles back to the
block itself. Anything that cannot satisfy this is reattached to root and
flagged.
"""

from __future__ import annotations

from dataclasses import dataclass

from tracecov.analysis.models import ROOT_BLOCK_ID, BlockKind
from tracecov.core.errors import RelationshipInconsistency
from tracecov.core.logging import get_logger
from tracecov.store.models import BlockRecord, FileRecord

log = get_logger("store.relationships")


@dataclass(frozen=True, slots=True)
class RelationshipStats:
    relationships_fixed: int = 0
    pending_resolved: int = 0
    reattached: int = 0

    def __add__(self, other: RelationshipStats) -> RelationshipStats:
        return RelationshipStats(
            relationships_fixed=self.relationships_fixed + other.relationships_fixed,
            pending_resolved=self.pending_resolved + other.pending_resolved,
            reattached=self.reattached + other.reattached,
        )


def _ensure_root(record: FileRecord) -> BlockRecord:
    root = record.blocks.get(ROOT_BLOCK_ID)
    if root is None:
        end = max((b.end_line for b in record.blocks.values()), default=len(record.source_lines))
        root = BlockRecord(
            block_id=ROOT_BLOCK_ID,
            kind=BlockKind.ROOT,
            start_line=1,
            end_line=max(end, 1),
            parent_id=None,
        )
        record.blocks[ROOT_BLOCK_ID] = root
    return root


def _in_cycle(record: FileRecord, block_id: str) -> bool:
    seen = {block_id}
    current = record.blocks[block_id].parent_id
    while current is not None:
        if current in seen:
            return True
        parent = record.blocks.get(current)
        if parent is None:
            return False
        seen.add(current)
        current = parent.parent_id
    return False


def _reattach(record: FileRecord, block: BlockRecord, err: RelationshipInconsistency) -> None:
    log.warning("block_reattached", error=err.error_name, **err.details)
    if block.parent_id is not None:
        old = record.blocks.get(block.parent_id)
        if old is not None:
            old.children.discard(block.block_id)
    block.parent_id = ROOT_BLOCK_ID
    block.flagged = True
    record.blocks[ROOT_BLOCK_ID].children.add(block.block_id)


def fix_relationships(record: FileRecord, *, finalize: bool = True) -> RelationshipStats:
    """Repair parent/child references in one file's block table.

    Args:
        record: File whose blocks are repaired in place.
        finalize: Attach blocks still waiting on a missing parent to root.
            Collection-time calls pass False so late parents can still claim
            their children.

    Returns:
        Counts of children inserted or removed, pending links resolved, and
        blocks reattached to root.
    """
    blocks = record.blocks
    root = _ensure_root(record)
    fixed = 0
    resolved = 0
    reattached = 0

    # Parents that have appeared since their children were deferred.
    for parent_id in [p for p in record.pending if p in blocks]:
        parent = blocks[parent_id]
        for child_id in record.pending.pop(parent_id):
            child = blocks.get(child_id)
            if child is None or child.parent_id != parent_id:
                continue
            if child_id not in parent.children:
                parent.children.add(child_id)
                resolved += 1

    # Child -> parent: every block is listed by its parent, or waits for it.
    for block_id, block in blocks.items():
        if block_id == ROOT_BLOCK_ID:
            continue
        if block.parent_id is None:
            _reattach(record, block, RelationshipInconsistency.orphan(record.path, block_id, None))
            reattached += 1
            continue
        parent = blocks.get(block.parent_id)
        if parent is None:
            record.pending.setdefault(block.parent_id, set()).add(block_id)
        elif block_id not in parent.children:
            parent.children.add(block_id)
            fixed += 1

    # Parent -> child: drop entries that are gone or point elsewhere.
    for block in blocks.values():
        stale = {
            c for c in block.children if c not in blocks or blocks[c].parent_id != block.block_id
        }
        if stale:
            block.children -= stale
            fixed += len(stale)

    for block_id in sorted(blocks):
        if block_id == ROOT_BLOCK_ID:
            continue
        if _in_cycle(record, block_id):
            _reattach(record, blocks[block_id], RelationshipInconsistency.cycle(record.path, block_id))
            reattached += 1

    if finalize and record.pending:
        for parent_id, waiting in sorted(record.pending.items()):
            for child_id in sorted(waiting):
                child = blocks.get(child_id)
                if child is None or child.parent_id != parent_id:
                    continue
                _reattach(
                    record, child, RelationshipInconsistency.orphan(record.path, child_id, parent_id)
                )
                reattached += 1
        record.pending.clear()

    if root.parent_id is not None:
        root.parent_id = None
        fixed += 1

    if fixed or resolved or reattached:
        log.debug(
            "relationships_fixed",
            path=record.path,
            fixed=fixed,
            resolved=resolved,
            reattached=reattached,
        )
    return RelationshipStats(
        relationships_fixed=fixed,
        pending_resolved=resolved,
        reattached=reattached,
    )


def check_tree(record: FileRecord) -> list[str]:
    """Describe every block that breaks the single-parent, acyclic shape."""
    problems: list[str] = []
    owners: dict[str, list[str]] = {}
    for block in record.blocks.values():
        for child_id in block.children:
            owners.setdefault(child_id, []).append(block.block_id)
    for block_id, block in record.blocks.items():
        if block_id == ROOT_BLOCK_ID:
            continue
        listed_by = owners.get(block_id, [])
        if listed_by != [block.parent_id]:
            problems.append(f"{block_id}: parent {block.parent_id!r}, listed by {listed_by}")
        elif _in_cycle(record, block_id):
            problems.append(f"{block_id}: parent chain cycles")
    return problems
