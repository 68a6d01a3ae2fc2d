#!/usr/bin/env python3
"""
Iterloop Runner - demo of a convergent loop.

Usage:
    python run_iterloop.py                     # target 50
    python run_iterloop.py 42.5
    python run_iterloop.py 42.5 --max 8 --verbose
    python run_iterloop.py 42.5 --stream
"""

import asyncio
import logging
import sys

from iterloop import ConfigValidationError, EventType
from iterloop.demo import build_demo_loop, build_demo_stream


def parse_args(argv):
    target = 50.0
    options = {}
    stream = False
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg == "--max":
            options["max_iterations"] = int(args.pop(0))
        elif arg == "--verbose":
            options["verbose"] = True
        elif arg == "--stream":
            stream = True
        else:
            target = float(arg)
    return target, options, stream


async def run_batch(target, options):
    loop = build_demo_loop(**options)

    def on_event(event):
        if event.type == EventType.EVALUATION_COMPLETE:
            evaluation = event.evaluation
            print(f"  [{event.iteration}] score {evaluation.score:.2f} ({evaluation.feedback})")

    loop.subscribe(on_event)
    outcome = await loop.run(target)

    print("\n" + "═" * 60)
    print("RESULT")
    print("═" * 60)
    print(f"Answer:      {outcome.result['answer']} (target {outcome.result['target']})")
    print(f"Iterations:  {outcome.iterations}")
    print(f"Final score: {outcome.final_score:.2f}")
    print(f"Reason:      {outcome.termination_reason.value}")
    print(f"Total cost:  {outcome.total_cost:.2f}")


async def run_stream(target, options):
    stream = build_demo_stream(**options)
    async for snapshot in stream.iterate(target):
        score = f"{snapshot.evaluation.score:.2f}" if snapshot.evaluation else "-"
        print(f"  [{snapshot.iteration}] guess {snapshot.state['guess']:.4f} score {score}"
              f"{' converged' if snapshot.converged else ''}{' timed out' if snapshot.timed_out else ''}")


def main():
    try:
        target, options, stream = parse_args(sys.argv[1:])
    except (ValueError, IndexError):
        print(__doc__)
        sys.exit(2)

    logging.basicConfig(level=logging.INFO if options.get("verbose") else logging.WARNING)

    print("═" * 60)
    print(f"🔄 Iterloop demo: refining toward {target}")
    print("═" * 60)

    try:
        asyncio.run(run_stream(target, options) if stream else run_batch(target, options))
    except ConfigValidationError as e:
        print(f"Invalid options: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
