"""
Unified CLI Interface for DJ Catalog

One command with a subcommand per catalog stage:
- import-xml / scan feed the source tables
- clean / match / rebuild-index run a single stage
- sync runs cleanup, matching and the index rebuild in order
- status prints table counts
"""

import argparse
import sys
import time
from typing import Any, Dict, List, Optional

from .. import __version__
from ..core.engine import CatalogEngine
from ..core.exceptions import DJCatalogError
from ..core.models import CleanupResult, ImportResult, IndexResult, MatchResult
from ..utils.logging_config import setup_logging
from .config import load_config_from_args


REVIEW_PREVIEW_LIMIT = 10


def threshold(value: str) -> float:
    """Parse a 0-1 threshold; values above 1 are read as percentages"""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if number > 1.0:
        number = number / 100.0
    if not 0.0 <= number <= 1.0:
        raise argparse.ArgumentTypeError(f"must be between 0 and 1 (or 0-100%): {value!r}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per stage"""

    parser = argparse.ArgumentParser(
        prog='djcatalog',
        description="DJ Catalog - reconcile streaming, DJ software and filesystem libraries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import-xml ~/Music/Library.xml        # Import a streaming library export
  %(prog)s import-xml ~/rekordbox.xml            # Import a rekordbox collection
  %(prog)s scan /Volumes/USB/Music               # Scan audio files
  %(prog)s clean --confidence 80 --dry-run       # Preview metadata cleanup
  %(prog)s match --min-score 0.9                 # Link tracks across sources
  %(prog)s sync                                  # Clean, match and rebuild the index
  %(prog)s status                                # Show catalog counts
        """
    )

    parser.add_argument('--db', metavar='PATH',
                        help='Catalog database file (default: ~/.djcatalog/catalog.db)')
    parser.add_argument('--config', metavar='FILE',
                        help='Load configuration from JSON file')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable progress bars')
    parser.add_argument('--version', action='version', version=f'DJ Catalog {__version__}')

    logging_group = parser.add_argument_group('Logging Options')
    logging_group.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                               help='Console logging level (default: INFO)')
    logging_group.add_argument('--log-dir', metavar='DIR',
                               help='Directory for log files (default: ~/.djcatalog/logs)')
    logging_group.add_argument('--no-console-log', action='store_true',
                               help='Disable console logging (file logging only)')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    import_parser = subparsers.add_parser('import-xml', help='Import a plist or rekordbox XML export')
    import_parser.add_argument('path', help='Path to the XML export')

    scan_parser = subparsers.add_parser('scan', help='Scan a folder of audio files')
    scan_parser.add_argument('folder', help='Music folder to scan recursively')

    clean_parser = subparsers.add_parser('clean', help='Normalize titles and artists')
    clean_parser.add_argument('--confidence', type=threshold, metavar='C',
                              help='Minimum normalizer confidence, 0-1 or percent (default: 0.7)')
    clean_parser.add_argument('--dry-run', action='store_true',
                              help='Report what would change without writing')

    match_parser = subparsers.add_parser('match', help='Link tracks across sources')
    match_parser.add_argument('--min-score', type=threshold, metavar='S',
                              help='Auto-link score threshold, 0-1 or percent (default: 0.92)')
    match_parser.add_argument('--dry-run', action='store_true',
                              help='Score and report without writing')

    subparsers.add_parser('rebuild-index', help='Rebuild the artist/album index')
    subparsers.add_parser('sync', help='Clean, match and rebuild the index')
    subparsers.add_parser('status', help='Show catalog counts')

    return parser


def print_import(result: ImportResult):
    print(f"✅ Imported {result.parsed} {result.source} records")
    print(f"   New: {result.inserted}  Updated: {result.updated}  "
          f"Unchanged: {result.unchanged}  Failed: {result.failed}")
    for error in result.errors[:REVIEW_PREVIEW_LIMIT]:
        print(f"   ⚠️ {error}")


def print_cleanup(result: CleanupResult):
    prefix = "🔍 Dry run:" if result.dry_run else "🧹 Cleanup:"
    print(f"{prefix} {result.updated} updated, {result.unchanged} unchanged, "
          f"{result.skipped} below confidence, {result.failed} unreadable")
    top = result.top_tags()
    if top:
        print("   Top normalizations:")
        for tag, count in top:
            print(f"   {count:6d}  {tag}")


def print_match(result: MatchResult):
    prefix = "🔍 Dry run:" if result.dry_run else "🔗 Match:"
    print(f"{prefix} {result.auto_linked} auto-linked, {result.review} for review")
    if not result.dry_run:
        print(f"   New tracks: {result.new_tracks}  New links: {result.new_links}  "
              f"Conflicts skipped: {result.conflicts}")
    for candidate in result.review_candidates[:REVIEW_PREVIEW_LIMIT]:
        print(f"   ? {candidate.score:.3f}  {candidate.left.key} \"{candidate.left.display_title}\""
              f"  <->  {candidate.right.key} \"{candidate.right.display_title}\"")


def print_index(result: IndexResult):
    print(f"📚 Index: {result.artists} artists, {result.albums} albums, {result.tracks} tracks")


def print_status(status: Dict[str, Any]):
    print(f"📄 Catalog: {status['database']} (schema v{status['schema_version']})")
    for source, counts in status['sources'].items():
        print(f"   {source:12s} rows={counts['rows']:6d} linked={counts['linked']:6d} "
              f"unlinked={counts['unlinked']:6d}")
    print(f"   Canonical tracks: {status['canonical_tracks']}")
    print(f"   Artists: {status['artists']}  Albums: {status['albums']}")


def run_command(engine: CatalogEngine, args, config: Dict[str, Any]):
    """Dispatch one parsed subcommand to the engine"""
    command = args.command

    if command == 'import-xml':
        print_import(engine.import_xml(args.path))
    elif command == 'scan':
        print_import(engine.scan(args.folder))
    elif command == 'clean':
        confidence = args.confidence if args.confidence is not None else config['cleanup']['min_confidence']
        print_cleanup(engine.run_cleanup(confidence, dry_run=args.dry_run))
    elif command == 'match':
        min_score = args.min_score if args.min_score is not None else config['matching']['min_auto_score']
        print_match(engine.run_match(min_score, dry_run=args.dry_run))
    elif command == 'rebuild-index':
        print_index(engine.rebuild_index())
    elif command == 'sync':
        results = engine.sync(config['sync']['min_confidence'], config['matching']['min_auto_score'])
        print_cleanup(results['cleanup'])
        print_match(results['match'])
        print_index(results['index'])
    elif command == 'status':
        print_status(engine.status())


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config_from_args(args)
    except DJCatalogError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    logging_config = config['logging']
    setup_logging(
        log_dir=logging_config['log_dir'],
        console_level=logging_config['console_level'],
        file_level=logging_config['file_level'],
        enable_console=logging_config['enable_console'],
        enable_file=logging_config['enable_file'],
    )

    engine = None
    try:
        start_time = time.time()
        engine = CatalogEngine(config['database']['path'], show_progress=config['ui']['progress_bars'])
        run_command(engine, args, config)
        print(f"\n📈 Completed in {time.time() - start_time:.1f}s")

    except DJCatalogError as e:
        print(f"❌ Application Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        if engine is not None:
            engine.cancel()
        print("\n\n⚠️ Interrupted by user, no partial changes were written")
        sys.exit(130)
    finally:
        if engine is not None:
            engine.close()


if __name__ == '__main__':
    main()
