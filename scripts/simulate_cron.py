#!/usr/bin/env python3
"""
Local stand-in for the hosted cron: hit the recurring endpoint every minute.

Usage:
  python scripts/simulate_cron.py [--base URL] [--interval SECONDS] [--once]

  Ensure the server is running first:
    PORT=5050 python run.py
"""
import argparse
import json
import os
import time
from datetime import datetime
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

BASE = "http://127.0.0.1:5050"
PATH = "/api/cron/process-recurring"


def trigger(base: str, secret: str | None) -> tuple[dict | None, int]:
    headers = {"Authorization": f"Bearer {secret}"} if secret else {}
    try:
        r = urlopen(Request(f"{base}{PATH}", headers=headers, method="GET"), timeout=60)
        return json.loads(r.read().decode() or "{}"), r.status
    except HTTPError as e:
        body = e.read().decode() if e.fp else ""
        try:
            return (json.loads(body) if body else {}), e.code
        except json.JSONDecodeError:
            return {"error": body or str(e)}, e.code
    except URLError as e:
        print(f"Connection error: {e} (is run.py running?)")
        return None, 0


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--base", default=BASE, help=f"Base URL (default: {BASE})")
    ap.add_argument("--interval", type=int, default=60)
    ap.add_argument("--once", action="store_true")
    args = ap.parse_args()
    secret = os.getenv("CRON_SECRET") or None

    print("Simulated cron running (Ctrl+C to stop)...")
    while True:
        stamp = datetime.now().strftime("%H:%M:%S")
        resp, code = trigger(args.base.rstrip("/"), secret)
        if resp is not None:
            print(f"[{stamp}] {code} {json.dumps(resp, indent=2)}")
        if args.once:
            return
        time.sleep(args.interval)


if __name__ == "__main__":
    main()
