"""Lightweight smoke checks for a running Presence Hub.

Usage:
    python tools/smoke.py --hub http://localhost:4000

The script performs read-only checks:
- GET /health and /config
- GET /debug/data shape (messages, knownUsers, online)
- GET /debug/persistence write-queue counters

Exits with code 0 on success, non-zero on first failure.
"""

from __future__ import annotations

import argparse
import logging
from typing import Any

import httpx


logger = logging.getLogger("smoke")


def _build_client(timeout: float = 5.0) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def _get_json(client: httpx.Client, url: str) -> dict[str, Any]:
    resp = client.get(url)
    resp.raise_for_status()
    payload = resp.json()
    assert isinstance(payload, dict)
    return payload


def check_hub(client: httpx.Client, base: str) -> None:
    health = _get_json(client, f"{base}/health")
    assert health.get("status") == "ok"
    logger.info("hub /health ok: %s", health)

    cfg = _get_json(client, f"{base}/config")
    logger.info("hub /config ok: %s", {k: cfg.get(k) for k in ("apiVersion", "storage")})

    data = _get_json(client, f"{base}/debug/data")
    for key in ("messages", "knownUsers", "online"):
        assert isinstance(data.get(key), list), f"/debug/data is missing {key}"
    logger.info(
        "hub /debug/data ok: %d messages, %d known users, %d online",
        len(data["messages"]),
        len(data["knownUsers"]),
        len(data["online"]),
    )

    stats = _get_json(client, f"{base}/debug/persistence")
    logger.info("hub /debug/persistence ok: %s", stats)
    failures = sum(stats[name]["failures"] for name in ("messages", "knownUsers"))
    if failures:
        logger.warning("hub reported %d failed snapshot writes", failures)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run smoke checks against Presence Hub")
    parser.add_argument("--hub", default="http://localhost:4000", help="Presence Hub base URL")
    parser.add_argument("--timeout", type=float, default=5.0, help="HTTP timeout seconds")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s - %(message)s")

    try:
        with _build_client(timeout=args.timeout) as client:
            check_hub(client, args.hub.rstrip("/"))
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("smoke failed: %s", exc)
        return 1
    logger.info("smoke passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
