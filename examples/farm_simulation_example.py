#!/usr/bin/env python3
"""
Farm Simulation Example

This script demonstrates how to set up the staking system, stake into
pools, lock tokens in the escrow for a boost, steer emissions with gauge
votes and persist the ledger.
"""

import argparse
import logging
import sys

from hummus.staking import FarmSystem, Token
from hummus.staking.escrow.vote_escrow import MAX_LOCK_DURATION, WEEK

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

E18 = 10 ** 18


def simulate(system: FarmSystem, days: int):
    """
    Run two stakers through a few weeks of farming.

    Alice locks tokens and votes for the stable pool; Bob only stakes.
    """
    usdc_lp = Token("HLP-USDC")
    dai_lp = Token("HLP-DAI")
    usdc = system.add_pool(usdc_lp, 100, 0)
    dai = system.add_pool(dai_lp, 100, 0)

    for account in ("alice", "bob"):
        usdc_lp.mint(account, 1000 * E18)
        dai_lp.mint(account, 1000 * E18)
        system.deposit(usdc, account, 1000 * E18, 0)
        system.deposit(dai, account, 1000 * E18, 0)

    system.reward_token.mint("alice", 5000 * E18)
    system.lock("alice", 5000 * E18, MAX_LOCK_DURATION, 0)
    system.vote("alice", {usdc_lp: system.escrow.balance_of("alice", 0)}, 0)
    system.distribute(0)

    now = 0
    for day in range(1, days + 1):
        now = day * 86400
        if now % WEEK == 0:
            points = system.distribute(now)
            logger.info(f"Day {day}: epoch {system.voter.epoch}, vote points {points}")

    for account in ("alice", "bob"):
        for pid, name in ((usdc, "USDC"), (dai, "DAI")):
            paid = system.claim(pid, account, now)
            logger.info(f"{account} claimed {paid / E18:.2f} HUM from the {name} pool")

    status = system.status(now)
    logger.info(f"Final status: {status}")
    return status


def main():
    parser = argparse.ArgumentParser(description="Farm simulation example")
    parser.add_argument("--days", type=int, default=28, help="Days to simulate")
    parser.add_argument("--token-per-sec", type=int, default=E18, help="Base emission in wei per second")
    parser.add_argument("--database-url", type=str, default="sqlite:///:memory:", help="Ledger store URL")
    args = parser.parse_args()

    logger.info("Initializing farm system")
    system = FarmSystem.from_config(
        {"token_per_sec": args.token_per_sec, "database_url": args.database_url}
    )
    system.initialize(0)
    system.fund_farm(10 ** 9 * E18, 0)

    simulate(system, args.days)

    system.save()
    logger.info(f"Journal holds {len(system.journal())} operations")
    logger.info("Example completed successfully")


if __name__ == "__main__":
    main()
