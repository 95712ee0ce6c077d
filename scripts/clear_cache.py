#!/usr/bin/env python3
"""
Clear OSOT cache keys for one user or by pattern.

Usage:
    python scripts/clear_cache.py --user-guid 7c1d...
    python scripts/clear_cache.py --pattern "entity:osot_table_products:*"
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from osot.cache.cache_service import CacheService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Clear OSOT cache keys")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--user-guid", help="Drop every cached key for this account GUID")
    group.add_argument("--pattern", help="Drop keys matching a glob pattern")
    parser.add_argument("--redis-url", default=os.getenv("REDIS_URL"), help="Defaults to REDIS_URL")
    args = parser.parse_args(argv)

    if not args.redis_url:
        logger.error("REDIS_URL is not set")
        return 1

    from osot.database.redis_real import RedisCache

    cache = CacheService(RedisCache(url=args.redis_url))
    if args.user_guid:
        removed = cache.invalidate_user_cache(args.user_guid)
    else:
        removed = cache.invalidate_pattern(args.pattern)
    print(f"Removed {removed} keys")
    return 0


if __name__ == "__main__":
    sys.exit(main())
