"""CLI runner: one feed tick, then a summary of what would be published"""
import logging

logger = logging.getLogger(__name__)

import asyncio
import sys
import os

# Add parent dir to path
sys.path.insert(0, os.path.dirname(__file__))

from dotenv import load_dotenv
load_dotenv()

from engine.pipeline import FeedAssembler
from logging_config import setup_logging
from settings import Settings


async def main():
    setup_logging()
    logger.info("Solana Signal Engine - single tick")
    logger.info("=" * 50)
    feed = FeedAssembler(Settings.from_env())
    snapshot = await feed.run_tick()
    if snapshot is None:
        logger.error("Tick failed: %s", feed.last_error)
        return 1

    logger.info("=" * 50)
    logger.info("Tokens published: %d (stale=%s)", len(snapshot.tokens), snapshot.stale)
    for error in snapshot.source_errors:
        logger.info("Source degraded: %s (%s)", error["source"], error["kind"])
    for token in snapshot.tokens[:10]:
        logger.info("%-12s %-13s heat=%-8.1f conf=%-3d %s",
                    token["symbol"], token["tag"], token["heat_score"], token["confidence"], token["edge"])
    logger.info("Narratives: %d", len(snapshot.narratives))
    for n in snapshot.narratives:
        logger.info("%s [%d] - %s", n["label"], n["relevance_score"], n["text"])
    trench = feed.trench.get() or {}
    logger.info("Trench: %d fresh gems, %d risky", len(trench.get("freshGems", [])), len(trench.get("risky", [])))
    return 0

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
