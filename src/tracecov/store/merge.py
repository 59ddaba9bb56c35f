"""Store merging for sharded runs.

Each process or worker collects into its own ``CoverageStore``. Merging
combines them with additive semantics:

- execution counts are summed (every shard's hits happened);
- ``executed``, ``covered`` and ``executable`` are unioned;
- file flags (``discovered``, ``active``, ``degraded``, ``instrumented``)
  are unioned.

Inputs are never mutated; the merged store owns fresh copies.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable

from tracecov.store.models import FileRecord
from tracecov.store.relationships import fix_relationships
from tracecov.store.store import CoverageStore


def _merge_into(target: FileRecord, other: FileRecord) -> None:
    for number, line in other.lines.items():
        mine = target.lines.get(number)
        if mine is None:
            target.lines[number] = copy.copy(line)
            continue
        mine.executable = mine.executable or line.executable
        mine.executed = mine.executed or line.executed
        mine.covered = mine.covered or line.covered
        mine.execution_count += line.execution_count
        if mine.line_type is None:
            mine.line_type = line.line_type
            mine.reason = line.reason

    for block_id, block in other.blocks.items():
        mine_block = target.blocks.get(block_id)
        if mine_block is None:
            fresh = copy.copy(block)
            fresh.children = set(block.children)
            target.blocks[block_id] = fresh
            if fresh.entry_line is not None:
                ids = target.entry_index.setdefault(fresh.entry_line, [])
                if block_id not in ids:
                    ids.append(block_id)
            continue
        mine_block.executed = mine_block.executed or block.executed
        mine_block.execution_count += block.execution_count
        mine_block.flagged = mine_block.flagged or block.flagged
        mine_block.children |= block.children

    for function_id, fn in other.functions.items():
        mine_fn = target.functions.get(function_id)
        if mine_fn is None:
            target.functions[function_id] = copy.copy(fn)
            continue
        mine_fn.executed = mine_fn.executed or fn.executed
        mine_fn.execution_count += fn.execution_count

    for parent_id, waiting in other.pending.items():
        target.pending.setdefault(parent_id, set()).update(waiting)
    for key, function_id in other.code_index.items():
        target.code_index.setdefault(key, function_id)
    for line, function_ids in other.body_index.items():
        ids = target.body_index.setdefault(line, [])
        ids.extend(f for f in function_ids if f not in ids)

    if not target.source_lines:
        target.source_lines = list(other.source_lines)
    if target.content_hash is None:
        target.content_hash = other.content_hash
    target.discovered = target.discovered or other.discovered
    target.active = target.active or other.active
    target.analyzed = target.analyzed or other.analyzed
    target.degraded = target.degraded or other.degraded
    target.instrumented = target.instrumented or other.instrumented


def merge_file_records(records: Iterable[FileRecord]) -> FileRecord:
    """Merge records for the same file.

    Args:
        records: FileRecords to merge (must share a path).

    Returns:
        A new FileRecord combining all inputs.
    """
    records_list = list(records)
    if not records_list:
        raise ValueError("Cannot merge empty file record list")

    path = records_list[0].path
    merged = copy.deepcopy(records_list[0])
    for other in records_list[1:]:
        if other.path != path:
            raise ValueError(f"Cannot merge records for different files: {path} != {other.path}")
        _merge_into(merged, other)
    fix_relationships(merged, finalize=False)
    return merged


def merge_stores(*stores: CoverageStore) -> CoverageStore:
    """Merge shard stores into a new store."""
    by_path: dict[str, list[FileRecord]] = {}
    for store in stores:
        for record in store.files():
            by_path.setdefault(record.path, []).append(record)

    merged = CoverageStore()
    for path in sorted(by_path):
        merged.put_file(merge_file_records(by_path[path]))
    return merged
