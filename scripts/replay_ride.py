#!/usr/bin/env python3
"""
REPLAY RIDE - Regenerate a ride from its seed for audit

Rides are a pure function of (seed, profile range, ticket strength, config),
so any ride can be rebuilt and compared with what was persisted at opt-in.

Usage:
    # Rebuild from a raw seed
    python3 scripts/replay_ride.py --seed 3f2a... --min-boost 0.05 --max-boost 0.5 --strength 0.4

    # Rebuild a stored reward and diff against its persisted checkpoints
    DATABASE_URL=sqlite:///./ride_boost.db python3 scripts/replay_ride.py --reward-id <uuid>

Exit code is 1 when a stored reward does not match its regenerated ride.
"""

import os
import sys
import json
import argparse
from typing import Any, Dict, List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.ride_generator import generate_ride  # noqa: E402
from core.ride_params import derive_ride_duration_seconds, derive_ride_params  # noqa: E402
from database import RewardProfileVersion, UserReward, get_db, init_database  # noqa: E402
from env_config import Config  # noqa: E402
from services.opt_in_service import opt_in_service  # noqa: E402


def replay_from_seed(seed: str, min_boost_pct: float, max_boost_pct: float,
                     ticket_strength: float, config=Config) -> Dict[str, Any]:
    """Derive parameters and regenerate the ride exactly as opt-in does."""
    duration = derive_ride_duration_seconds(seed, config.RIDE_MIN_DURATION_SECONDS, config.RIDE_MAX_DURATION_SECONDS)
    params = derive_ride_params(seed, duration, config.RIDE_MIN_CRASH_SECONDS)
    ride = generate_ride(
        seed,
        checkpoint_count=params.checkpoint_count,
        volatility=params.volatility,
        min_boost_pct=min_boost_pct,
        max_boost_pct=max_boost_pct,
        ticket_strength=ticket_strength,
        duration_seconds=duration,
        crash_fraction=params.crash_fraction,
        min_peak_delay_seconds=config.RIDE_MIN_PEAK_DELAY_SECONDS,
    )
    return {
        "seed": seed,
        "duration_seconds": duration,
        "params": params.to_dict(),
        "ride": ride.to_dict(),
    }


def diff_checkpoints(stored: List[Dict[str, Any]], regenerated: List[Dict[str, Any]]) -> List[str]:
    problems = []
    if len(stored) != len(regenerated):
        problems.append(f"checkpoint count {len(stored)} != {len(regenerated)}")
    for s, r in zip(stored, regenerated):
        if s["time_fraction"] != r["time_fraction"] or s["boost_value"] != r["boost_value"]:
            problems.append(
                f"#{s['index']}: stored ({s['time_fraction']}, {s['boost_value']}) "
                f"!= regenerated ({r['time_fraction']}, {r['boost_value']})"
            )
    return problems


def replay_reward(db, reward_id: str, config=Config) -> Optional[Dict[str, Any]]:
    """Regenerate a stored reward's ride and compare with its persisted checkpoints."""
    reward = db.get(UserReward, reward_id)
    if reward is None:
        return None

    profile = db.get(RewardProfileVersion, reward.profile_version_id)
    ticket = reward.ticket or {}
    replay = replay_from_seed(
        reward.seed,
        profile.min_boost_pct,
        profile.max_boost_pct,
        ticket.get("ticket_strength", 0.0),
        config,
    )

    stored = [cp.to_dict() for cp in opt_in_service.get_ride_checkpoints(db, reward_id).data]
    problems = diff_checkpoints(stored, replay["ride"]["checkpoints"]) if stored else ["no stored checkpoints"]

    replay.update({
        "reward_id": reward_id,
        "status": reward.status,
        "stored_checkpoint_count": len(stored),
        "matches": not problems,
        "problems": problems,
    })
    return replay


def print_text(replay: Dict[str, Any]) -> None:
    print(f"seed:       {replay['seed']}")
    print(f"duration:   {replay['duration_seconds']}s")
    params = replay["params"]
    print(f"params:     checkpoints={params['checkpoint_count']} volatility={params['volatility']} "
          f"crash={params['crash_fraction']}")
    print(f"passes:     {', '.join(replay['ride']['applied_passes']) or '-'}")
    print()
    for cp in replay["ride"]["checkpoints"]:
        print(f"  {cp['index']:>3}  t={cp['time_fraction']:.6f}  boost={cp['boost_value']:.6f}")

    if "matches" in replay:
        print()
        print(f"stored vs regenerated: {'MATCH' if replay['matches'] else 'MISMATCH'}")
        for problem in replay["problems"]:
            print(f"  - {problem}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Regenerate a ride from its seed")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--seed", help="Raw seed to replay")
    source.add_argument("--reward-id", help="Stored reward to replay and verify")
    parser.add_argument("--min-boost", type=float, default=0.01, help="Profile min_boost_pct (seed mode)")
    parser.add_argument("--max-boost", type=float, default=1.0, help="Profile max_boost_pct (seed mode)")
    parser.add_argument("--strength", type=float, default=0.0, help="Ticket strength (seed mode)")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL (reward mode)")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of formatted text")
    args = parser.parse_args(argv)

    if args.seed:
        replay = replay_from_seed(args.seed, args.min_boost, args.max_boost, args.strength)
    else:
        session_factory = init_database(args.database_url)
        with get_db(session_factory) as db:
            replay = replay_reward(db, args.reward_id)
        if replay is None:
            print(f"Reward {args.reward_id} not found", file=sys.stderr)
            return 2

    if args.json:
        print(json.dumps(replay, indent=2))
    else:
        print_text(replay)

    return 0 if replay.get("matches", True) else 1


if __name__ == "__main__":
    sys.exit(main())
