#!/usr/bin/env python
"""
Run the Order Pricing API under uvicorn.

Usage:
    python scripts/run_api.py [--host HOST] [--port PORT] [--no-reload]
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Start the pricing API")
    parser.add_argument('--host', default=os.environ.get('ORDER_PRICING_HOST', '127.0.0.1'))
    parser.add_argument('--port', type=int, default=int(os.environ.get('ORDER_PRICING_PORT', '8000')))
    parser.add_argument('--no-reload', action='store_true', help="Disable auto-reload")
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent
    compiled = project_root / 'src' / 'order_pricing' / 'rules' / 'compiled_discounts.json'
    if not compiled.exists():
        print("⚠️ No compiled discount snapshot; run scripts/build_all.py to publish rules")

    # Make src importable for the uvicorn child process
    env = os.environ.copy()
    src_path = str(project_root / "src")
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src_path, env.get("PYTHONPATH")) if p)

    cmd = [
        sys.executable, "-m", "uvicorn", "order_pricing.api.main:app",
        "--host", args.host,
        "--port", str(args.port),
    ]
    if not args.no_reload:
        cmd.append("--reload")

    print(f"Starting Order Pricing API on http://{args.host}:{args.port} ...")
    try:
        subprocess.run(cmd, cwd=str(project_root), env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
