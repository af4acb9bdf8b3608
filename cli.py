import argparse
import asyncio
import json
import logging

from settings_schema import load_settings
from workout_service import WorkoutService

DEMO_ROTATION = [
    {
        "title": "Treino A",
        "description": "Peito e tríceps",
        "icon": "fitness_center",
        "exercises": [
            {"name": "Supino", "muscle_group": "Peito", "sets": [{"reps": 10}, {"reps": 10}, {"reps": 8}]},
            {"name": "Tríceps Corda", "muscle_group": "Braços", "sets": [{"reps": 12}, {"reps": 12}]},
        ],
    },
    {
        "title": "Treino B",
        "description": "Costas e bíceps",
        "icon": "fitness_center",
        "exercises": [
            {"name": "Remada Curvada", "muscle_group": "Costas", "sets": [{"reps": 10}, {"reps": 10}]},
            {"name": "Rosca Direta", "muscle_group": "Braços", "sets": [{"reps": 12}, {"reps": 12}]},
        ],
    },
    {
        "title": "Treino C",
        "description": "Pernas",
        "icon": "directions_run",
        "exercises": [
            {"name": "Agachamento", "muscle_group": "Pernas", "sets": [{"reps": 8}, {"reps": 8}, {"reps": 8}]},
        ],
    },
]


def _format_elapsed(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def demo_data(service: WorkoutService) -> None:
    """Populate the rotation with demo workouts if empty."""
    if await service.list_workouts():
        print("Rotation already contains workouts")
        return
    for workout in DEMO_ROTATION:
        await service.create_workout(**workout)
    print("Demo rotation inserted")


async def list_workouts(service: WorkoutService) -> None:
    for w in await service.list_workouts():
        print(f"{w['id']:>3}  {w['status']:<9}  {w['duration']:>4}  {w['title']}")


async def session_command(service: WorkoutService, args: argparse.Namespace) -> int:
    if args.workout is None:
        active = service.get_active_workouts()
        if not active:
            print("No session in progress")
            return 1
        args.workout = active[0]
    workout = await service.get_workout(args.workout)
    session = service.open_session(workout)
    if args.cmd == "start":
        ok = session.start()
    elif args.cmd == "pause":
        ok = service.pause_session()
    elif args.cmd == "resume":
        ok = service.resume_session()
    elif args.cmd == "cancel":
        ok = service.cancel_session()
    elif args.cmd == "set":
        value = args.value
        if args.field == "completed":
            value = value.lower() in ("1", "true", "yes", "y")
        elif args.field == "reps":
            value = int(value)
        else:
            value = float(value)
        ok = service.edit_set(args.exercise, args.set, args.field, value)
    elif args.cmd == "finish":
        summary = await service.finish_session()
        if summary is None:
            print("No session in progress")
            return 1
        _print_json(summary)
        return 0
    else:
        ok = True
    print(f"{workout['title']}: {session.state} {_format_elapsed(service.get_elapsed_seconds())}")
    return 0 if ok else 1


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.yaml)
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    service = WorkoutService(args.user, args.db, settings=settings)

    if args.cmd == "demo":
        await demo_data(service)
    elif args.cmd == "workouts":
        await list_workouts(service)
    elif args.cmd in ("start", "pause", "resume", "cancel", "status", "set", "finish"):
        return await session_command(service, args)
    elif args.cmd == "streak":
        print(await service.get_streak())
    elif args.cmd == "performance":
        print(f"{await service.get_monthly_performance()}%")
    elif args.cmd == "frequency":
        for bucket in await service.get_frequency(args.period):
            print(f"{bucket['label']:<4} {bucket['count']}")
    elif args.cmd == "prs":
        for pr in await service.get_personal_records():
            print(f"{pr['exercise_name']}: {pr['weight']} x {pr['reps']} ({pr['date']})")
    elif args.cmd == "leaderboard":
        for pos, entry in enumerate(await service.get_leaderboard(), start=1):
            print(f"{pos}. {entry['name']} - {entry['count']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Workout session and stats commands")
    parser.add_argument("--db", default="pulsefit.db")
    parser.add_argument("--yaml", default=None)
    parser.add_argument("--user", default="local")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("demo")
    sub.add_parser("workouts")
    for name in ("start", "pause", "resume", "cancel", "finish"):
        cmd = sub.add_parser(name)
        cmd.add_argument("--workout", type=int, required=True)
    status = sub.add_parser("status")
    status.add_argument("--workout", type=int, default=None, help="defaults to the latest active session")

    edit = sub.add_parser("set")
    edit.add_argument("--workout", type=int, required=True)
    edit.add_argument("--exercise", type=int, required=True)
    edit.add_argument("--set", type=int, required=True)
    edit.add_argument("--field", choices=["weight", "reps", "completed"], required=True)
    edit.add_argument("--value", required=True)

    sub.add_parser("streak")
    sub.add_parser("performance")
    freq = sub.add_parser("frequency")
    freq.add_argument("--period", choices=["week", "month", "year"], default="week")
    sub.add_parser("prs")
    sub.add_parser("leaderboard")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
