from __future__ import annotations

import argparse
import asyncio

from lineage_sim.core.orchestrator import ChoiceGate, GameOrchestrator


async def main(days: int, scenario: str) -> None:
    orchestrator = GameOrchestrator()
    state = await orchestrator.create_game(game_id="demo", scenario=scenario)
    print(
        f"Created game '{state.game_id}' ({scenario}) in year {state.current_date.year} "
        f"with {len(state.members)} member(s)"
    )

    remaining = days
    while remaining > 0:
        result = await orchestrator.advance(state.game_id, remaining)
        state = result.state
        remaining -= result.days_advanced
        if state.game_over_reason is not None:
            break
        if ChoiceGate.EVENT in result.awaiting:
            await orchestrator.close_event(state.game_id)
        elif result.awaiting:
            print(f"Stopped in year {state.current_date.year}: awaiting {result.awaiting}")
            break

    print(
        f"Year {state.current_date.year} day {state.current_date.day}: "
        f"fund={state.family_fund:.2f}, living={len(state.living_members())}, "
        f"log entries={len(state.game_log)}, over={state.game_over_reason}"
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Advance a demo game in memory.")
    parser.add_argument("--days", type=int, default=360)
    parser.add_argument("--scenario", default="classic")
    args = parser.parse_args()
    asyncio.run(main(args.days, args.scenario))
