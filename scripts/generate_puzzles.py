#!/usr/bin/env python3
"""
Puzzle Forge - Generate Puzzles
Runs the generation pipeline for one puzzle or a batch and records accepted ones.

Usage:
    py scripts/generate_puzzles.py [--mode standard] [--count 7] [--difficulty 5]
"""

import sys
import json
import argparse
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from puzzle_forge.config import ConfigManager, DifficultyMode
from puzzle_forge.errors import BackendError, GenerationFailure, PuzzleForgeError
from puzzle_forge.history.store import JsonHistoryStore
from puzzle_forge.orchestrator import MasterOrchestrator, Progression, record_result
from puzzle_forge.utils.logging import setup_logging


def print_result(index: int, result) -> None:
    candidate = result.candidate
    report = result.quality_report
    flag = " (degraded)" if result.degraded else ""
    print(f"  [{index}] {candidate.content}  ->  {candidate.answer}{flag}")
    print(f"      category={candidate.category} difficulty={result.calibrated_difficulty} "
          f"score={report.final_score} verdict={report.verdict.value} attempts={result.attempts}")


def main():
    parser = argparse.ArgumentParser(
        description='Generate daily puzzles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  py scripts/generate_puzzles.py                          # One puzzle, standard mode
  py scripts/generate_puzzles.py --count 7 --progression sine_wave
  py scripts/generate_puzzles.py --mode challenging --difficulty 6
  py scripts/generate_puzzles.py --dry-run --output week.json
        """
    )
    parser.add_argument('--mode', choices=[m.value for m in DifficultyMode], default=None,
                        help='Difficulty mode (default: PUZZLE_FORGE_MODE or standard)')
    parser.add_argument('--base-path', type=Path, default=Path(__file__).parent.parent,
                        help='Project root holding config/ and data/')
    parser.add_argument('--count', '-n', type=int, default=1,
                        help='Number of puzzles to generate')
    parser.add_argument('--difficulty', '-d', type=int, default=None,
                        help='Target (or starting) difficulty')
    parser.add_argument('--category', '-c', type=str, default=None,
                        help='Puzzle category (default: any of the mode\'s categories)')
    parser.add_argument('--progression', choices=[p.value for p in Progression], default='linear',
                        help='Difficulty curve for batches')
    parser.add_argument('--novel', action='store_true',
                        help='Reject every candidate that is not fully unique')
    parser.add_argument('--output', '-o', type=Path, default=None,
                        help='Write accepted puzzles to this JSON file')
    parser.add_argument('--dry-run', action='store_true',
                        help='Do not record accepted puzzles in the history file')
    parser.add_argument('--log-level', default='INFO',
                        help='Logging level')
    args = parser.parse_args()

    setup_logging(args.log_level)

    manager = ConfigManager(args.base_path)
    try:
        config = manager.load(DifficultyMode(args.mode) if args.mode else None)
    except PuzzleForgeError as e:
        print(f"Error: {e}")
        sys.exit(1)

    summary = manager.get_mode_summary()
    print("=" * 60)
    print("  Puzzle Forge - Generate Puzzles")
    print("=" * 60)
    print(f"  Mode: {summary['mode']} ({summary['description']})")
    print(f"  Difficulty band: {summary['difficulty_band']}")
    print(f"  Publish threshold: {summary['publish_threshold']}")
    print()

    store = JsonHistoryStore(config.history_path)
    orchestrator = MasterOrchestrator.from_config(config, history_store=store)

    results = []
    try:
        if args.count == 1:
            results.append(orchestrator.generate(
                target_difficulty=args.difficulty,
                category=args.category,
                require_novelty=args.novel
            ))
            failures = []
        else:
            batch = orchestrator.generate_batch(
                args.count,
                start_difficulty=args.difficulty,
                progression=Progression(args.progression),
                category=args.category,
                require_novelty=args.novel
            )
            results.extend(batch.results)
            failures = batch.failures
    except GenerationFailure as e:
        print(f"Generation failed: {e}")
        for reason in e.reasons:
            print(f"  - {reason}")
        sys.exit(2)
    except BackendError as e:
        print(f"Backend error ({e.kind.value}): {e.message}")
        sys.exit(3)

    print(f"Accepted {len(results)} puzzle(s):")
    for i, result in enumerate(results, start=1):
        print_result(i, result)
        if not args.dry_run:
            record_result(store, result)

    if failures:
        print()
        print(f"{len(failures)} item(s) failed:")
        for failure in failures:
            print(f"  - item {failure['index'] + 1}: best score {failure['best_score']}")

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump([r.to_dict() for r in results], f, indent=2, ensure_ascii=False)
        print(f"\nWrote {args.output}")

    if orchestrator.session_logger is not None:
        print(f"Session log: {orchestrator.session_logger.log_file}")


if __name__ == '__main__':
    main()
