#!/usr/bin/env python
"""
Build pipeline - compiles discount rules and runs the test-suite.

Usage:
    python scripts/build_all.py
"""
import subprocess
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from order_pricing.config.settings import get_settings
from order_pricing.rules.compile_rules import compile_rules


def main():
    print("=" * 60)
    print("ORDER PRICING BUILD PIPELINE")
    print("=" * 60)
    print()

    settings = get_settings()

    print("[1/2] Compiling discount rules...")
    success, rules, errors = compile_rules(settings.rules_csv, settings.compiled_rules, verbose=True)

    if not success:
        print("\n❌ BUILD FAILED")
        for error in errors:
            print(f"  ERROR: {error}")
        sys.exit(1)

    print()
    print("[2/2] Running tests...")

    test_result = subprocess.run(
        [sys.executable, '-m', 'pytest', 'tests', '-v', '--tb=short'],
        cwd=Path(__file__).parent.parent
    )

    if test_result.returncode != 0:
        print("\n❌ TESTS FAILED")
        sys.exit(1)

    print()
    print("=" * 60)
    print("✅ BUILD COMPLETE")
    print("=" * 60)
    print()
    print("Summary:")
    print(f"  Rules: {len(rules)}")
    print(f"  Active: {sum(1 for r in rules if r.active)}")
    print(f"  Coupons: {sum(1 for r in rules if r.is_coupon)}")


if __name__ == "__main__":
    main()
