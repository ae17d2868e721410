#!/usr/bin/env python3
"""Simulate a conversation end-to-end with a mocked DB.

Drives one flow from the first question to completion through
``ConversationService``, printing a rich transcript of every prompt, the
mock answer given, attached advice and the turn outcome.

Answers are picked from each state's choices (randomly with ``--random``)
or from a small table of canned free-text values.  ``--stall N`` withholds
the answer for the first N turns of every question so the re-ask variants
and the stall fallback can be watched.

Usage::

    # Buyer flow, first choice everywhere
    python scripts/simulate_flow.py

    # Seller flow with random choices
    python scripts/simulate_flow.py -f sell --random

    # Branching flow, seeding an answer and stalling twice per question
    python scripts/simulate_flow.py -f browse --seed intent=home --stall 2

    # List available flows
    python scripts/simulate_flow.py --list-flows
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# test mock infrastructure.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

from test_service import MockRepository  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

from rich.console import Console  # noqa: E402
from rich.table import Table  # noqa: E402

from leadflow_engine.models.machine import ConversationState  # noqa: E402
from leadflow_engine.models.session import Extraction, TurnResponse  # noqa: E402
from leadflow_engine.service import ConversationService  # noqa: E402
from leadflow_engine.store import FlowStore  # noqa: E402

# ---------------------------------------------------------------------------
# Constants for the simulation
# ---------------------------------------------------------------------------

CLIENT_ID = "sim_client"
SESSION_ID = "sim_session"
_MAX_TURNS = 50

# Free-text answers for states without choices, keyed by mapping key
_CANNED_ANSWERS: dict[str, str] = {
    "location": "North Austin",
    "budget": "650000",
    "targetYield": "6%",
}
_FALLBACK_ANSWER = "not sure"


# ---------------------------------------------------------------------------
# Answer selection
# ---------------------------------------------------------------------------

def pick_answers(state: ConversationState, rng: random.Random | None) -> list[Extraction]:
    """One extraction per field the state collects."""
    pairs = []
    for field in state.collects:
        if state.choices:
            choice = rng.choice(state.choices) if rng else state.choices[0]
            value = choice.value
        else:
            value = _CANNED_ANSWERS.get(field.mapping_key, _FALLBACK_ANSWER)
        pairs.append(Extraction(mapping_key=field.mapping_key, value=value))
    return pairs


# ---------------------------------------------------------------------------
# Printing
# ---------------------------------------------------------------------------

def print_turn(console: Console, n: int, turn: TurnResponse, given: list[Extraction]) -> None:
    colour = {"advanced": "green", "stayed": "yellow", "completed": "cyan"}[turn.status]
    reason = f" ({turn.reason})" if turn.reason else ""
    console.print(f"[bold]Turn {n}[/] [{colour}]{turn.status}[/]{reason} -> {turn.new_state_id}")
    if given:
        answered = ", ".join(f"{p.mapping_key}={p.value}" for p in given)
        console.print(f"    [dim]A:[/] {answered}")
    else:
        console.print("    [dim]A:[/] (no answer)")
    if turn.skipped_states:
        console.print(f"    [dim]skipped:[/] {', '.join(turn.skipped_states)}")
    console.print(f"    [dim]Q:[/] {turn.prompt_to_show}")
    for item in turn.attached_advice:
        console.print(f"    [magenta]{item.kind}:[/] {item.title}")
    console.print(f"    [dim]progress {turn.progress}%[/]")


def print_summary(console: Console, answers: dict[str, str], unanswered: list[str]) -> None:
    console.print()
    console.rule("[bold]Collected answers")
    table = Table(show_lines=False)
    table.add_column("Mapping key")
    table.add_column("Value")
    for key, value in answers.items():
        table.add_row(key, value)
    for key in unanswered:
        table.add_row(key, "[red]unanswered[/]")
    console.print(table)


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

async def simulate(
    store: FlowStore,
    flow_id: str,
    *,
    seed: dict[str, str],
    stall: int,
    rng: random.Random | None,
    console: Console,
) -> None:
    service = ConversationService(store)
    service._repo = MockRepository()
    db = AsyncMock()

    info = await service.create_session(
        db, client_id=CLIENT_ID, session_id=SESSION_ID, flow_id=flow_id, seed_answers=seed,
    )
    console.rule(f"[bold]{flow_id}[/] ({store.get_config(flow_id).id})")
    first = await service.get_current_turn(db, client_id=CLIENT_ID, session_id=SESSION_ID)
    console.print(f"[dim]Start:[/] {info.current_state_id}")
    console.print(f"    [dim]Q:[/] {first.prompt_to_show}")

    config = store.get_config(flow_id)
    for n in range(1, _MAX_TURNS + 1):
        state = await service.get_state(db, client_id=CLIENT_ID, session_id=SESSION_ID)
        current = config.get_state(state.current_state_id)
        if state.attempts_for(current.id) < stall:
            given = []
        else:
            given = pick_answers(current, rng)

        turn = await service.process_turn(
            db, client_id=CLIENT_ID, session_id=SESSION_ID, extracted=given,
        )
        print_turn(console, n, turn, given)
        if turn.status == "completed":
            break
    else:
        console.print(f"[red]Stopped after {_MAX_TURNS} turns without completing[/]")

    final = await service.get_state(db, client_id=CLIENT_ID, session_id=SESSION_ID)
    print_summary(console, final.answers, final.unanswered)


def _parse_seed(items: list[str]) -> dict[str, str]:
    seed = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep:
            raise SystemExit(f"--seed expects key=value, got {item!r}")
        seed[key] = value
    return seed


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a lead-capture conversation")
    parser.add_argument("-f", "--flow", default="buy", help="Flow ID (default: buy)")
    parser.add_argument("--flow-dir", default=None, help="Flow directory (default: flows/)")
    parser.add_argument(
        "--seed", action="append", default=[], metavar="KEY=VALUE",
        help="Answer known before the conversation starts (repeatable)",
    )
    parser.add_argument(
        "--stall", type=int, default=0,
        help="Withhold the answer for the first N attempts of every question",
    )
    parser.add_argument("--random", action="store_true", help="Pick random choices")
    parser.add_argument("--rng-seed", type=int, default=None, help="Seed for --random")
    parser.add_argument("--list-flows", action="store_true", help="List flows and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show engine debug logs")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s [%(name)s] %(message)s",
    )

    console = Console()
    store = FlowStore(flow_dir=args.flow_dir)
    store.load()

    if args.list_flows:
        for flow in store.list_flows():
            console.print(f"  {flow.flow_id:<10} v{flow.version}  {flow.label or ''}")
        return

    rng = random.Random(args.rng_seed) if args.random else None
    asyncio.run(
        simulate(
            store, args.flow,
            seed=_parse_seed(args.seed), stall=args.stall, rng=rng, console=console,
        )
    )


if __name__ == "__main__":
    main()
