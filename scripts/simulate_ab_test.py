"""
Simulate an A/B test end to end against a running API.

Creates a test, routes sends through select-variant, records conversions at each
variant's configured true rate, then evaluates and fetches the comparison.

Usage:
    python scripts/simulate_ab_test.py
    python scripts/simulate_ab_test.py --sends 2000 --rates 0.20 0.08
    python scripts/simulate_ab_test.py --rates 0.10 0.12 0.15 --promote
"""
import argparse
import asyncio
import logging
import random
import uuid

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"
API = f"{BASE_URL}/api/v1/ab-tests"


def _allocations(n: int) -> list[int]:
    """Split 100% across n variants, remainder to the first."""
    share = 100 // n
    return [100 - share * (n - 1)] + [share] * (n - 1)


async def create_test(client: httpx.AsyncClient, rates: list[float], name: str) -> dict:
    labels = [chr(ord("A") + i) for i in range(len(rates))]
    payload = {
        "owner_id": str(uuid.uuid4()),
        "name": name,
        "email_type": "follow_up",
        "variants": [
            {
                "label": label,
                "subject_line": f"Subject {label}",
                "body": f"Body for variant {label}",
                "traffic_allocation": pct,
            }
            for label, pct in zip(labels, _allocations(len(rates)))
        ],
    }
    resp = await client.post(API, json=payload)
    resp.raise_for_status()
    detail = resp.json()
    logger.info("Created test %s with %d variants", detail["test"]["id"], len(detail["variants"]))
    return detail


async def simulate_sends(
    client: httpx.AsyncClient,
    test_id: str,
    rates_by_label: dict,
    sends: int,
    rng: random.Random,
) -> None:
    for i in range(sends):
        resp = await client.post(f"{API}/{test_id}/select-variant")
        resp.raise_for_status()
        variant = resp.json()

        await client.post(f"{API}/variants/{variant['id']}/sent")
        if rng.random() < rates_by_label[variant["label"]]:
            await client.post(
                f"{API}/variants/{variant['id']}/events",
                json={"kind": "conversion"},
            )

        if (i + 1) % 250 == 0:
            logger.info("Sent %d/%d", i + 1, sends)


async def main():
    parser = argparse.ArgumentParser(description="Simulate an A/B test")
    parser.add_argument("--sends", type=int, default=1000)
    parser.add_argument("--rates", type=float, nargs="+", default=[0.20, 0.10])
    parser.add_argument("--name", default="Simulated subject line test")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--promote", action="store_true", help="Auto-promote instead of evaluate")
    args = parser.parse_args()

    if len(args.rates) < 2:
        parser.error("--rates needs at least 2 values")

    rng = random.Random(args.seed)

    async with httpx.AsyncClient(timeout=30) as client:
        detail = await create_test(client, args.rates, args.name)
        test_id = detail["test"]["id"]
        rates_by_label = {
            v["label"]: rate for v, rate in zip(detail["variants"], args.rates)
        }

        await simulate_sends(client, test_id, rates_by_label, args.sends, rng)

        await client.post(f"{API}/{test_id}/snapshots")

        action = "auto-promote" if args.promote else "evaluate"
        resp = await client.post(f"{API}/{test_id}/{action}")
        logger.info("%s response: %s %s", action, resp.status_code, resp.json())

        resp = await client.get(f"{API}/{test_id}/comparison")
        comparison = resp.json()
        for variant in comparison["variants"]:
            logger.info(
                "  %s: sent=%d conversions=%d rate=%d%% allocation=%d%%%s",
                variant["label"], variant["sent_count"], variant["conversion_count"],
                variant["conversion_rate"], variant["traffic_allocation"],
                " (winner)" if variant["is_winner"] else "",
            )
        for key, result in comparison["significance_matrix"].items():
            logger.info(
                "  %s: confidence=%d%% p=%.4f",
                key, result["confidence_level"], result["p_value"],
            )


if __name__ == "__main__":
    asyncio.run(main())
