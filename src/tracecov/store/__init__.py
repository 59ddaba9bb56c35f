"""Coverage data store: records, accessors and post-run correction passes.

Usage:
    from tracecov.store import CoverageStore, fix_relationships, patch_all

    store = CoverageStore()
    store.initialize_file(path, source_text, analysis)
    store.mark_executed(path, 3)
    store.mark_covered(path, 3)
"""

from tracecov.store.merge import merge_file_records, merge_stores
from tracecov.store.models import (
    BlockRecord,
    CoverageSummary,
    FileRecord,
    FunctionRecord,
    LineRecord,
    summarize,
)
from tracecov.store.patchup import (
    PatchStats,
    find_violations,
    patch_all,
    reclassify,
    validate_invariants,
)
from tracecov.store.relationships import RelationshipStats, check_tree, fix_relationships
from tracecov.store.report import build_summary, build_text_summary, compute_file_stats
from tracecov.store.store import CoverageSnapshot, CoverageStore

__all__ = [
    # Records
    "BlockRecord",
    "CoverageSummary",
    "FileRecord",
    "FunctionRecord",
    "LineRecord",
    "summarize",
    # Store
    "CoverageSnapshot",
    "CoverageStore",
    # Passes
    "PatchStats",
    "RelationshipStats",
    "check_tree",
    "find_violations",
    "fix_relationships",
    "patch_all",
    "reclassify",
    "validate_invariants",
    # Merge / report
    "build_summary",
    "build_text_summary",
    "compute_file_stats",
    "merge_file_records",
    "merge_stores",
]
