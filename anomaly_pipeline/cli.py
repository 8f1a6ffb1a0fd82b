#!/usr/bin/env python3
"""
Process one telemetry batch file, or serve the HTTP API.

  anomaly-pipeline --input batch.jsonl
  anomaly-pipeline --input batch.csv --scoring-url http://scoring:5001/score
  anomaly-pipeline --serve --port 8080

The batch file uses the same envelope as POST /batches: a JSON array of
messages, or one message per line (JSON object or 6-field CSV, with or
without the generator's header line).
Exit codes: 0 all groups ok, 2 partial failure, 1 unusable batch.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys

from .config import Config, load_config
from .errors import BatchEnvelopeError
from .logs import setup_logging
from .models import BatchOutcome
from .pipeline import Pipeline


async def run_file(cfg: Config, path: str) -> BatchOutcome:
    with open(path, "rb") as f:
        body = f.read()
    async with Pipeline(cfg) as pipe:
        return await pipe.coordinator.process_body(body)


def main() -> None:
    ap = argparse.ArgumentParser(description="Score a telemetry batch and raise de-duplicated anomaly alerts.")
    ap.add_argument("--input", help="Batch file (JSON array or newline-delimited messages)")
    ap.add_argument("--scoring-url", default=None, help="Override SCORING_URL")
    ap.add_argument("--db-path", default=None, help="Override DB_PATH (SQLite suppression store)")
    ap.add_argument("--serve", action="store_true", help="Run the HTTP API instead of processing a file")
    ap.add_argument("--host", default="0.0.0.0")
    ap.add_argument("--port", type=int, default=8080)
    args = ap.parse_args()

    cfg = load_config()
    overrides = {}
    if args.scoring_url:
        overrides["scoring_url"] = args.scoring_url
    if args.db_path is not None:
        overrides["db_path"] = args.db_path
    if overrides:
        cfg = dataclasses.replace(cfg, **overrides)

    setup_logging(cfg.log_level)

    if args.serve:
        import uvicorn

        from .app import create_app

        uvicorn.run(create_app(cfg), host=args.host, port=args.port)
        return

    if not args.input:
        ap.error("--input is required unless --serve is given")

    try:
        outcome = asyncio.run(run_file(cfg, args.input))
    except BatchEnvelopeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
    sys.exit(0 if outcome.ok else 2)


if __name__ == "__main__":
    main()
