"""CLI entrypoint."""
from __future__ import annotations

import argparse
import json
import logging
import os
import random
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv as _load_dotenv

from community_data import config
from community_data.cache import SqliteKeyValueCache
from community_data.city_description import GeminiCityDescriptionClient
from community_data.geo import GeoDataset
from community_data.http import HttpClient
from community_data.places_client import GooglePlacesClient
from community_data.service import CommunityDataAssembler

logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def write_json_atomic(path: str, payload: Dict[str, Any]) -> None:
    dir_path = os.path.dirname(path) or "."
    os.makedirs(dir_path, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build community place lists for a zip code")
    parser.add_argument("--zip", dest="zip_code", type=str, default=None)
    parser.add_argument("--city", type=str, default=None, help="Preferred city for zip disambiguation")
    parser.add_argument("--state", type=str, default=None, help="Preferred two-letter state code")
    parser.add_argument("--audience", type=str, default=None, help="Audience segment or alias")
    parser.add_argument(
        "--service-area",
        dest="service_areas",
        action="append",
        default=None,
        help='Service area as "City, ST" (repeatable)',
    )
    parser.add_argument(
        "--dataset",
        type=str,
        default=os.environ.get("COMMUNITY_DATASET_PATH") or str(config.DEFAULT_DATASET_PATH),
    )
    parser.add_argument(
        "--cache-db",
        type=str,
        default=os.environ.get("COMMUNITY_CACHE_PATH") or str(config.DEFAULT_CACHE_PATH),
    )
    parser.add_argument("--no-cache", action="store_true", help="Run without the SQLite cache")
    parser.add_argument("--config", type=str, default=None, help="Category overrides JSON")
    parser.add_argument("--seed", type=int, default=None, help="Seed for sampling (reproducible output)")
    parser.add_argument("--describe-city", action="store_true", help="Include a city description")
    parser.add_argument("--out", type=str, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        categories = config.load_category_overrides(args.config)
    except config.ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    if not args.zip_code:
        print("Missing --zip", file=sys.stderr)
        return 2
    api_key = (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip()
    if not api_key:
        print("Missing GOOGLE_MAPS_API_KEY in environment", file=sys.stderr)
        return 1

    cache = None
    if not args.no_cache:
        Path(args.cache_db).parent.mkdir(parents=True, exist_ok=True)
        cache = SqliteKeyValueCache(args.cache_db)
        purged = cache.purge_expired()
        if purged:
            logger.info("Purged %s expired cache entries", purged)

    places_client = GooglePlacesClient(HttpClient(api_key=api_key))
    assembler = CommunityDataAssembler(
        dataset=GeoDataset(args.dataset),
        search_provider=places_client,
        details_provider=places_client,
        cache=cache,
        description_provider=GeminiCityDescriptionClient.from_env() if args.describe_city else None,
        rng=random.Random(args.seed) if args.seed is not None else None,
        categories=categories,
    )
    try:
        data = assembler.get_community_data_for_audience(
            args.zip_code,
            args.audience,
            service_areas=args.service_areas,
            city=args.city,
            state=args.state,
        )
        if data is None:
            print(f"No location found for zip {args.zip_code}", file=sys.stderr)
            return 1
        if args.describe_city:
            description = assembler.get_city_description(data["city"], data["state"])
            data["city_description"] = (description or {}).get("description")
    finally:
        assembler.close()
        if cache is not None:
            cache.close()

    metrics = places_client.metrics
    logger.info(
        "Places requests: search=%s details=%s (in-run dedup skips: %s)",
        metrics.network_search,
        metrics.network_details,
        metrics.dedup_skips_search + metrics.dedup_skips_details,
    )
    if args.out:
        write_json_atomic(args.out, data)
        print(f"Wrote {args.out}")
    else:
        print(json.dumps(data, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
