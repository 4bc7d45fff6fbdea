"""Rebuild the entity → recording-count snapshot by scanning every chunk.

Exit codes: 0 complete, 2 stopped at the backend result ceiling (snapshot
written but partial), 1 backend unavailable, 130 cancelled with Ctrl-C.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from archive_search.entities.aggregator import EntityAggregator, RebuildStatus
from archive_search.errors import DependencyUnavailable

EXIT_CODES = {
    RebuildStatus.COMPLETE: 0,
    RebuildStatus.CACHE_PARTIAL: 2,
    RebuildStatus.CANCELLED: 130,
}


def rebuild_entity_counts(
    output: str | None = None,
    page_size: int | None = None,
    dry_run: bool = False,
) -> int:
    """Run the rebuild and print a summary. Returns the process exit code."""
    cancel = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: cancel.set())

    aggregator = EntityAggregator(snapshot_path=output, rebuild_page_size=page_size)
    print(f"Rebuilding entity recording counts -> {aggregator.snapshot_path}")

    try:
        result = aggregator.rebuild_recording_counts_snapshot(cancel=cancel, write=not dry_run)
    except DependencyUnavailable as e:
        print(f"ERROR: {e}")
        return 1

    print(f"  Pages fetched:   {result.pages}")
    print(f"  Chunks scanned:  {result.chunks_scanned}")
    print(f"  Entity keys:     {len(result.counts)}")

    if result.status is RebuildStatus.CANCELLED:
        print("\nCancelled. Existing snapshot left unchanged.")
    elif result.status is RebuildStatus.CACHE_PARTIAL:
        print(
            f"\nPARTIAL: the scan stopped at the backend result ceiling "
            f"({aggregator.result_ceiling} rows). Counts may be undercounted."
        )
    else:
        print("\nDone!")

    if result.snapshot_path is not None:
        print(f"Snapshot written to {result.snapshot_path}")
    elif dry_run:
        print("Dry run: snapshot not written.")

    return EXIT_CODES[result.status]


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--output", default=None, help="snapshot path (default: ENTITY_COUNTS_PATH)")
    parser.add_argument("--page-size", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()
    if args.page_size is not None and args.page_size <= 0:
        parser.error("--page-size must be positive")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(rebuild_entity_counts(args.output, args.page_size, args.dry_run))
