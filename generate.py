from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List, Sequence

from analyze import Analysis, analyze_leagues
from league import League, LeagueFormatError, load_league_export, load_league_json


BASE_DIR = Path(__file__).parent
INPUT_DIR = BASE_DIR / "input"

logger = logging.getLogger(__name__)


def discover_leagues(input_dir: Path) -> List[League]:
    """
    Load every league under input_dir: each subdirectory holding a votes.csv
    is a Music League export, each *.json file a scraped league document.
    """
    leagues: List[League] = []
    for path in sorted(input_dir.iterdir()):
        if path.is_dir() and (path / "votes.csv").exists():
            leagues.append(load_league_export(path))
        elif path.is_file() and path.suffix == ".json":
            leagues.append(load_league_json(path))
        else:
            logger.debug("Skipping %s", path)
    return leagues


def select_leagues(leagues: Sequence[League], wanted: Iterable[str] = ()) -> List[League]:
    """Keep leagues whose id or title is wanted; nothing wanted keeps them all."""
    wanted = set(wanted)
    if not wanted:
        return list(leagues)
    return [league for league in leagues if league.id in wanted or league.title in wanted]


def _strip_nan(value):
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict):
        return {k: _strip_nan(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_strip_nan(v) for v in value]
    return value


def analysis_to_dict(analysis: Analysis) -> dict:
    """Plain JSON-safe dict; an undefined average becomes null."""
    return _strip_nan(asdict(analysis))


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Voting statistics for Music League leagues.")
    parser.add_argument("input_dir", nargs="?", type=Path, default=INPUT_DIR)
    parser.add_argument(
        "--league",
        action="append",
        default=[],
        help="League id or title to include (repeatable; default: all).",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        leagues = select_leagues(discover_leagues(args.input_dir), args.league)
    except LeagueFormatError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    analysis = analyze_leagues(leagues)
    json.dump(analysis_to_dict(analysis), sys.stdout, indent=2)
    sys.stdout.write("\n")
    print(
        f"Wrote analysis of {len(leagues)} leagues with {len(analysis.users)} participants.",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
