"""Reset database to empty state.

Clears all data from:
- campaign_fulfillments
- invoices
- payment_intents
- pledges
- discount_brackets
- campaigns

Also clears scheduler locks and cached bracket progress from Redis.

Usage:
    cd backend && uv run python -m scripts.reset_db
"""

import asyncio

from redis.exceptions import RedisError
from sqlalchemy import text

from groupbuy.core.database import async_session_maker, engine
from groupbuy.core.redis import close_redis, get_redis

# Children first so foreign keys never block a delete
TABLES = [
    "campaign_fulfillments",
    "invoices",
    "payment_intents",
    "pledges",
    "discount_brackets",
    "campaigns",
]


async def reset_database():
    print("=" * 60)
    print("Resetting database to empty state...")
    print("=" * 60)

    async with async_session_maker() as session:
        for table in TABLES:
            result = await session.execute(text(f"DELETE FROM {table}"))
            print(f"  Deleted {result.rowcount} rows from {table}")

        await session.commit()
        print("\nDatabase cleared successfully!")


async def reset_redis():
    """Delete engine-owned keys, leaving anything else in the database alone."""
    print("\nResetting Redis...")

    try:
        redis = await get_redis()
        deleted = 0
        for pattern in ("lock:*", "bracket_progress:*"):
            async for key in redis.scan_iter(match=pattern):
                deleted += await redis.delete(key)
        print(f"  Deleted {deleted} keys")
    except RedisError as e:
        print(f"  Warning: Could not clear Redis: {e}")
        print("  (This is OK if Redis is not running locally)")
    finally:
        await close_redis()


async def main():
    await reset_database()
    await reset_redis()

    print("\n" + "=" * 60)
    print("Reset complete!")
    print("=" * 60)
    print("\nTo re-seed the database, run:")
    print("  cd backend && uv run python -m scripts.seed_data")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
