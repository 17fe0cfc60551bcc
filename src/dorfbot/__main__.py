"""Entry point for the dorfbot scheduler and one-shot commands."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dorfbot", description="Village automation bot")
    parser.add_argument(
        "--profile",
        default="default",
        help="Profile name, isolates config, data and logs (e.g. s1, s2)",
    )
    parser.add_argument("--headless", action="store_true", help="Run the browser headless")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run the scheduler loop (default)")
    run.add_argument("--api-port", type=int, default=None, help="Serve the status API on this port")

    scan = sub.add_parser("scan", help="Scan resource fields of a village")
    scan.add_argument("village", nargs="?", default="main")

    sub.add_parser("villages", help="List villages of the account")

    farm = sub.add_parser("farm", help="Fill farm lists once")
    farm.add_argument("--center-x", type=int, default=None)
    farm.add_argument("--center-y", type=int, default=None)
    farm.add_argument("--start", action="store_true", help="Send all farm lists afterwards")

    build = sub.add_parser("add-build", help="Queue a construction task")
    build.add_argument("--village", default="main")
    target = build.add_mutually_exclusive_group(required=True)
    target.add_argument("--type", dest="building_type", choices=["wood", "clay", "iron", "crop"])
    target.add_argument("--slot", dest="building_slot", type=int)
    target.add_argument("--name", dest="building_name")
    build.add_argument("--name-hint", default="", help="Expected building name for --slot")
    build.add_argument("--level", type=int, required=True)
    build.add_argument("--priority", type=int, default=0)

    train = sub.add_parser("add-training", help="Queue a troop training task")
    train.add_argument("--village", default="main")
    train.add_argument("--building", default="barracks")
    train.add_argument("--slot", type=int, default=None)
    troop = train.add_mutually_exclusive_group(required=True)
    troop.add_argument("--troop", dest="troop_name")
    troop.add_argument("--troop-index", type=int)
    train.add_argument("--quantity", type=int, default=-1, help="-1 trains the maximum")
    train.add_argument("--repeat", type=int, default=0, metavar="MINUTES", help="Repeat interval")
    train.add_argument("--priority", type=int, default=0)

    tasks = sub.add_parser("tasks", help="Show queued tasks")
    tasks.add_argument("--status", default=None)

    clear = sub.add_parser("clear-tasks", help="Skip every pending task")
    clear.add_argument("--kind", choices=["build", "training", "all"], default="all")
    return parser


def _print(data: object) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


async def _store_command(app, args: argparse.Namespace) -> int:
    from dorfbot.models.tasks import BuildTask, TrainingTask

    store = await app.open_store()
    try:
        if args.command == "add-build":
            task = BuildTask(
                village_id=args.village,
                building_type=args.building_type,
                building_slot=args.building_slot,
                building_name=args.building_name or args.name_hint,
                target_level=args.level,
                priority=args.priority,
            )
            _print({"id": await store.add_build_task(task)})
        elif args.command == "add-training":
            task = TrainingTask(
                village_id=args.village,
                building_type=args.building,
                building_slot=args.slot,
                troop_name=args.troop_name,
                troop_index=args.troop_index,
                quantity=args.quantity,
                repeat_forever=args.repeat > 0,
                repeat_interval=args.repeat,
                priority=args.priority,
            )
            _print({"id": await store.add_training_task(task)})
        elif args.command == "tasks":
            _print({
                "build": [t.model_dump(mode="json") for t in await store.list_tasks("build", args.status)],
                "training": [t.model_dump(mode="json") for t in await store.list_tasks("training", args.status)],
            })
        elif args.command == "clear-tasks":
            kinds = ["build", "training"] if args.kind == "all" else [args.kind]
            _print({kind: await store.clear_pending(kind) for kind in kinds})
    finally:
        await app.db.close()
    return 0


async def _scan(app, village: str) -> int:
    if not await app.villages.switch_to_village(village):
        print(f"Village not found: {village}", file=sys.stderr)
        return 1
    await app.scanner.scan()
    _print({
        "fields": [f.model_dump(mode="json") for f in app.cache.fields or []],
        "summary": app.cache.summary(),
    })
    return 0


async def _villages(app) -> int:
    _print([v.model_dump(mode="json") for v in await app.villages.villages()])
    return 0


async def _farm(app, args: argparse.Namespace) -> int:
    result = await app.farm.run(args.center_x, args.center_y)
    _print({
        "center": result.center.model_dump(mode="json"),
        "source": result.source,
        "added": [t.model_dump(mode="json") for t in result.added],
        "lists": [vars(r) for r in result.lists],
    })
    if args.start:
        await app.farm.start_all()
    return 0


def main() -> None:
    args = _build_parser().parse_args()
    command = args.command or "run"
    api_port = getattr(args, "api_port", None)

    from dorfbot.app import Application

    app = Application(profile=args.profile, headless=args.headless, api_port=api_port)

    if command == "run":
        sys.exit(asyncio.run(app.run()))
    if command in ("add-build", "add-training", "tasks", "clear-tasks"):
        sys.exit(asyncio.run(_store_command(app, args)))
    if command == "scan":
        sys.exit(asyncio.run(app.run_once(lambda a: _scan(a, args.village))))
    if command == "villages":
        sys.exit(asyncio.run(app.run_once(_villages)))
    if command == "farm":
        sys.exit(asyncio.run(app.run_once(lambda a: _farm(a, args))))


if __name__ == "__main__":
    main()
