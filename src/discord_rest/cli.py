from __future__ import annotations

import argparse
import asyncio
import json

from discord_rest.client import RestClient
from discord_rest.config import load_config
from discord_rest.logging_utils import setup_logging
from discord_rest.routes import Route


def _pairs(values: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in values:
        if "=" not in item:
            raise SystemExit(f"expected key=value, got {item!r}")
        k, v = item.split("=", 1)
        out[k.strip()] = v.strip()
    return out


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send one rate-limited Discord REST request and print the result")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("method", help="HTTP method, e.g. GET")
    parser.add_argument("route", help="route template, e.g. /channels/{channel_id}/messages")
    parser.add_argument("-p", "--param", action="append", default=[], help="route parameter key=value")
    parser.add_argument("-q", "--query", action="append", default=[], help="query parameter key=value")
    parser.add_argument("--json", dest="body", default=None, help="JSON request body")
    parser.add_argument("--reason", default=None, help="audit log reason")
    return parser.parse_args(argv)


async def amain(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(cfg.runtime.log_level)

    route = Route(args.method, args.route, **_pairs(args.param))
    body = json.loads(args.body) if args.body else None
    async with RestClient(cfg) as client:
        result = await client.request(route, json=body, params=_pairs(args.query), reason=args.reason)
    print(
        json.dumps(
            {
                "ok": result.ok,
                "status_code": result.status_code,
                "attempts": result.attempts,
                "data": result.data,
                "error": str(result.error) if result.error else None,
            },
            indent=2,
            default=str,
        )
    )
    return 0 if result.ok else 1


def main() -> None:
    raise SystemExit(asyncio.run(amain()))


if __name__ == "__main__":
    main()
