from __future__ import annotations

import argparse
from pathlib import Path

from infragraph.config import apply, load, plan


def _progress(change: object, event: str) -> None:
    address = getattr(change, "address", "unknown")
    print(f"[apply:{event:7}] {address}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Plan/apply an infragraph config via Python API")
    parser.add_argument("--config", default="infragraph.yaml", help="Path to config file")
    parser.add_argument("--apply", action="store_true", help="Apply the generated plan")
    parser.add_argument(
        "--no-refresh",
        action="store_true",
        help="Skip refresh during plan",
    )
    parser.add_argument("--parallelism", type=int, default=None, help="Concurrent provider calls")
    args = parser.parse_args()

    config_path = Path(args.config)
    config = load(config_path)

    plan_obj = plan(config, refresh=not args.no_refresh)
    print("Plan summary:", plan_obj.summary())
    for change in plan_obj.changes:
        print(f"- {change.action.value:6} {change.address}")

    if args.apply:
        result = apply(plan_obj, config, progress=_progress, parallelism=args.parallelism)
        print("Apply summary:", result.summary())
        for item in result.outcomes:
            if item.error or item.blocked_by:
                print(f"  {item.address}: {item.error or f'blocked by {item.blocked_by}'}")


if __name__ == "__main__":
    main()
