#!/usr/bin/env python3
"""
Simulates a Xexun tracker against a running gateway and reads the result
back through the REST API.

Run the gateway first, with the demo IMEI registered:
    XEXUN_DEVICES='{"123456789012345": 1}' uv run uvicorn xexun_gateway.main:app --port 8080

Then run this script:
    uv run python examples/demo.py
    uv run python examples/demo.py --host 192.168.1.20 --base-url http://192.168.1.20:8080
"""

import argparse
import socket
import sys
import time

import httpx

# ── Defaults ───────────────────────────────────────────────

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5024

SENTENCES = [
    "001,+123456789,GPRMC,123456.789,A,1234.5678,N,09876.5432,W,10.5,90.0,"
    "150124,extra imei:123456789012345,1,0.0,F:4.1V,tail",
    # No course, void fix
    "002,+123456789,GPRMC,123501.000,V,1234.5700,N,09876.5400,W,0.0,,"
    "150124,extra imei:123456789012345,1,0.0,F:4.0V,tail",
    "this is not a sentence",
]


def main():
    parser = argparse.ArgumentParser(description="Xexun gateway demo")
    parser.add_argument(
        "--base-url", default=DEFAULT_BASE_URL,
        help=f"Gateway REST URL (default: {DEFAULT_BASE_URL})",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="Tracker listener host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Tracker listener port")
    args = parser.parse_args()

    client = httpx.Client(base_url=args.base_url.rstrip("/"), timeout=5.0)

    # ── 1. Health check ────────────────────────────────────
    print("=== Health Check ===")
    health = client.get("/health").json()
    print(f"  Status:      {health['status']}")
    print(f"  Connections: {health['active_connections']}")
    if not health["listening"]:
        print("\n  Gateway is not accepting tracker connections.")
        sys.exit(1)

    # ── 2. Send sentences as a tracker would ───────────────
    print("\n=== Sending sentences ===")
    with socket.create_connection((args.host, args.port), timeout=5.0) as sock:
        for sentence in SENTENCES:
            sock.sendall((sentence + "\r\n").encode("ascii"))
            print(f"  > {sentence[:60]}…")
        # Give the gateway a moment to decode
        time.sleep(0.5)

    # ── 3. Read back ───────────────────────────────────────
    print("\n=== Latest position ===")
    r = client.get("/positions/latest")
    if r.status_code == 404:
        print("  Nothing decoded. Is the demo IMEI in XEXUN_DEVICES?")
    else:
        p = r.json()
        print(f"  Device:   {p['device_id']}")
        print(f"  Time:     {p['time']}")
        print(f"  Valid:    {p['valid']}")
        print(f"  Position: {p['latitude']:.6f}, {p['longitude']:.6f}")
        print(f"  Speed:    {p['speed']}  Course: {p['course']}")
        print(f"  Battery:  {p['power']}V")

    print("\n=== Stats ===")
    for key, value in client.get("/stats").json().items():
        print(f"  {key:22} {value}")
    print()


if __name__ == "__main__":
    main()
