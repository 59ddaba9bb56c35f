"""The coverage data store.

``CoverageStore`` exclusively owns every file, line, block and function
record. Collectors, the patch-up pass and assertion linkage mutate records
only through the accessors below; nothing outside this package assigns to
record fields directly.

The store is explicitly owned and passed by reference. There is no module
level instance; a session creates one on ``start`` and hands it to its
collector. Hot-path accessors (``mark_executed``, ``mark_function_executed``)
are dictionary lookups plus increments.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from tracecov.analysis.lexical import split_lines
from tracecov.analysis.models import ROOT_BLOCK_ID, AnalysisResult, BlockKind
from tracecov.core.errors import StoreError
from tracecov.core.logging import get_logger
from tracecov.store.models import (
    BlockRecord,
    CoverageSummary,
    FileRecord,
    FunctionRecord,
    LineRecord,
    summarize,
)

log = get_logger("store")


def _root_block(line_count: int) -> BlockRecord:
    return BlockRecord(
        block_id=ROOT_BLOCK_ID,
        kind=BlockKind.ROOT,
        start_line=1,
        end_line=max(line_count, 1),
        parent_id=None,
    )


@dataclass(frozen=True, slots=True)
class CoverageSnapshot:
    """Detached copy of the store handed to reporting.

    The path mapping is read-only. Records are deep copies owned by the
    snapshot: editing one changes neither the store nor later snapshots.
    """

    files: Mapping[str, FileRecord]
    summary: CoverageSummary


class CoverageStore:
    """Three-state coverage records for every file seen in a session."""

    def __init__(self) -> None:
        self._files: dict[str, FileRecord] = {}

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop all records (start of a new session)."""
        self._files.clear()

    def files(self) -> list[FileRecord]:
        return list(self._files.values())

    def paths(self) -> list[str]:
        return sorted(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(list(self._files.values()))

    def __len__(self) -> int:
        return len(self._files)

    def get_file(self, path: str) -> FileRecord | None:
        return self._files.get(path)

    def require_file(self, path: str) -> FileRecord:
        record = self._files.get(path)
        if record is None:
            raise StoreError.unknown_file(path)
        return record

    def get_or_create_file(self, path: str) -> FileRecord:
        """Return the record for *path*, creating an unanalyzed one if needed."""
        record = self._files.get(path)
        if record is None:
            record = FileRecord(path=path)
            record.blocks[ROOT_BLOCK_ID] = _root_block(0)
            self._files[path] = record
        return record

    def put_file(self, record: FileRecord) -> None:
        """Adopt a complete record, replacing any record for the same path."""
        if ROOT_BLOCK_ID not in record.blocks:
            record.blocks[ROOT_BLOCK_ID] = _root_block(len(record.source_lines))
        self._files[record.path] = record

    def initialize_file(
        self,
        path: str,
        source_text: str,
        analysis: AnalysisResult,
        *,
        discovered: bool = False,
        active: bool = True,
    ) -> FileRecord:
        """Populate a file's static structure from its analysis.

        Idempotent: a file already analyzed keeps its classification, since
        ``executable`` is fixed the first time it is set. A record created
        earlier without analysis keeps its execution counts.
        """
        record = self.get_or_create_file(path)
        record.discovered = record.discovered or discovered
        record.active = record.active or active
        if record.analyzed:
            return record

        record.source_lines = split_lines(source_text)
        record.content_hash = analysis.content_hash
        record.degraded = record.degraded or analysis.degraded
        record.analyzed = True

        for number, classification in analysis.lines.items():
            line = record.lines.get(number)
            if line is None:
                line = LineRecord(line=number)
                record.lines[number] = line
            line.executable = classification.executable
            line.line_type = classification.line_type
            line.reason = classification.reason

        root = record.blocks[ROOT_BLOCK_ID]
        root.end_line = max(analysis.line_count, 1)
        for info in analysis.blocks.values():
            if info.block_id == ROOT_BLOCK_ID:
                continue
            self.add_block(
                path,
                BlockRecord(
                    block_id=info.block_id,
                    kind=info.kind,
                    start_line=info.start_line,
                    end_line=info.end_line,
                    parent_id=info.parent_id,
                    label=info.label,
                    entry_line=info.entry_line,
                ),
            )

        for fn in analysis.functions.values():
            record.functions[fn.function_id] = FunctionRecord(
                function_id=fn.function_id,
                name=fn.name,
                kind=fn.kind,
                start_line=fn.start_line,
                def_line=fn.def_line,
                end_line=fn.end_line,
                body_line=fn.body_line,
            )
            code_name = fn.name if fn.name is not None else "<lambda>"
            record.code_index[(fn.start_line, code_name)] = fn.function_id
            record.code_index.setdefault((fn.def_line, code_name), fn.function_id)
            # A body on the def line runs at definition time too.
            if fn.body_line is not None and fn.body_line > fn.def_line:
                record.body_index.setdefault(fn.body_line, []).append(fn.function_id)

        log.debug(
            "file_initialized",
            path=path,
            lines=analysis.line_count,
            blocks=len(record.blocks) - 1,
            functions=len(record.functions),
            degraded=record.degraded,
        )
        return record

    def mark_discovered(self, path: str, *, degraded: bool = False) -> FileRecord:
        """Note a file that should appear in reports even if never tracked."""
        record = self.get_or_create_file(path)
        record.discovered = True
        record.degraded = record.degraded or degraded
        return record

    def set_instrumented(self, path: str, instrumented: bool = True) -> None:
        self.get_or_create_file(path).instrumented = instrumented

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def get_or_create_line(self, path: str, line: int) -> LineRecord:
        record = self.get_or_create_file(path)
        rec = record.lines.get(line)
        if rec is None:
            rec = LineRecord(line=line)
            record.lines[line] = rec
        return rec

    def mark_executed(self, path: str, line: int, count: int = 1) -> LineRecord:
        """Record *count* hits on a line and enter blocks starting there."""
        record = self._files.get(path) or self.get_or_create_file(path)
        record.active = True
        rec = record.lines.get(line)
        if rec is None:
            rec = LineRecord(line=line)
            record.lines[line] = rec
        rec.executed = True
        rec.execution_count += count

        block_ids = record.entry_index.get(line)
        if block_ids:
            for block_id in block_ids:
                block = record.blocks[block_id]
                block.executed = True
                block.execution_count += count
        return rec

    def mark_covered(self, path: str, line: int) -> bool:
        """Promote an executed, executable line to covered.

        Returns:
            True if the line is now covered. Lines that are unknown, not
            executable, or never executed are left alone.
        """
        record = self._files.get(path)
        if record is None:
            return False
        rec = record.lines.get(line)
        if rec is None or not (rec.executable and rec.executed):
            return False
        rec.covered = True
        return True

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def function_for_code(self, path: str, first_line: int, name: str) -> str | None:
        """Function id for a code object's (co_firstlineno, co_name)."""
        record = self._files.get(path)
        if record is None:
            return None
        return record.code_index.get((first_line, name))

    def functions_entered_at(self, path: str, line: int) -> list[str]:
        record = self._files.get(path)
        if record is None:
            return []
        return record.body_index.get(line, [])

    def mark_function_executed(self, path: str, function_id: str, count: int = 1) -> bool:
        record = self._files.get(path)
        if record is None:
            return False
        fn = record.functions.get(function_id)
        if fn is None:
            return False
        fn.executed = True
        fn.execution_count += count
        return True

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def mark_block_executed(self, path: str, block_id: str, count: int = 1) -> bool:
        record = self._files.get(path)
        if record is None:
            return False
        block = record.blocks.get(block_id)
        if block is None:
            return False
        block.executed = True
        block.execution_count += count
        return True

    def _index_entry(self, record: FileRecord, block: BlockRecord) -> None:
        if block.entry_line is None:
            return
        ids = record.entry_index.setdefault(block.entry_line, [])
        if block.block_id not in ids:
            ids.append(block.block_id)

    def add_block(self, path: str, block: BlockRecord) -> int:
        """Insert a block, linking it to its parent or deferring the link.

        Children waiting on this block's id are attached immediately.

        Returns:
            Number of pending children resolved by this insertion.
        """
        record = self.get_or_create_file(path)
        existing = record.blocks.get(block.block_id)
        if existing is not None:
            # Keep execution state gathered before a re-add.
            block.executed = block.executed or existing.executed
            block.execution_count = max(block.execution_count, existing.execution_count)
            block.children |= existing.children
        record.blocks[block.block_id] = block
        self._index_entry(record, block)

        parent_id = block.parent_id
        if parent_id is not None:
            parent = record.blocks.get(parent_id)
            if parent is not None:
                parent.children.add(block.block_id)
            else:
                record.pending.setdefault(parent_id, set()).add(block.block_id)

        resolved = 0
        for child_id in record.pending.pop(block.block_id, set()):
            child = record.blocks.get(child_id)
            if child is not None and child.parent_id == block.block_id:
                block.children.add(child_id)
                resolved += 1
        return resolved

    def set_parent(self, path: str, block_id: str, parent_id: str | None) -> None:
        """Re-point a block at a new parent, keeping both sides consistent."""
        record = self.require_file(path)
        block = record.blocks.get(block_id)
        if block is None:
            raise StoreError.unknown_file(f"{path}#{block_id}")

        old = block.parent_id
        if old is not None:
            old_parent = record.blocks.get(old)
            if old_parent is not None:
                old_parent.children.discard(block_id)
            waiting = record.pending.get(old)
            if waiting is not None:
                waiting.discard(block_id)
                if not waiting:
                    del record.pending[old]

        block.parent_id = parent_id
        if parent_id is None:
            return
        parent = record.blocks.get(parent_id)
        if parent is not None:
            parent.children.add(block_id)
        else:
            record.pending.setdefault(parent_id, set()).add(block_id)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def summary(self) -> CoverageSummary:
        """Recompute the global summary from all file records."""
        return summarize(list(self._files.values()))

    def snapshot(self) -> CoverageSnapshot:
        files = {path: copy.deepcopy(record) for path, record in sorted(self._files.items())}
        return CoverageSnapshot(
            files=MappingProxyType(files),
            summary=summarize(list(files.values())),
        )
