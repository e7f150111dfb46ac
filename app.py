"""ExamHall command line: log in, take a timed exam, manage supervisor applications."""
import argparse
import asyncio
import getpass
import logging
import sys

from examhall.address import HttpAddressResolver
from examhall.config import Settings
from examhall.db import get_supabase
from examhall.engine import NOT_ELIGIBLE_MESSAGES, AttemptEngine, AttemptEvent, AttemptSession, AttemptState, Eligibility
from examhall.errors import ExamHallError, StoreError
from examhall.gate import AccessGate, register
from examhall.identity import SupabaseIdentity
from examhall.schemas import LABELS, Role
from examhall.store import SupabaseStore
from examhall.supervisors import list_applications, set_approval

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    mins, secs = divmod(max(0, seconds), 60)
    return f"{mins:02d}:{secs:02d}"


def _services(settings: Settings):
    client = get_supabase(settings)
    store = SupabaseStore(client)
    identity = SupabaseIdentity(client)
    resolver = HttpAddressResolver(settings.ip_lookup_url, settings.ip_lookup_timeout)
    return store, identity, AccessGate(store, identity, resolver)


def _password(args) -> str:
    return args.password or getpass.getpass("Password: ")


async def cmd_login(args, settings: Settings) -> int:
    _, _, gate = _services(settings)
    principal = await gate.authenticate(args.email, _password(args))
    print(f"Welcome {principal.profile.full_name}! Logged in as {principal.role.value}.")
    return 0


async def cmd_register(args, settings: Settings) -> int:
    _, identity, _ = _services(settings)
    await register(identity, args.email, _password(args), args.name, as_supervisor=args.supervisor)
    if args.supervisor:
        print("Supervisor account created. Please wait for approval before logging in.")
    else:
        print("Participant account created. You can now log in.")
    return 0


async def cmd_exams(args, settings: Settings) -> int:
    store, _, _ = _services(settings)
    engine = AttemptEngine(store, policy=settings.eligibility_policy)
    exams = await engine.list_open_assessments()
    if not exams:
        print("No exams available.")
    for exam in exams:
        print(f"{exam.id}  {exam.title}  ({exam.duration_minutes} min, {exam.total_marks} marks)")
    return 0


def _print_event(event: AttemptEvent) -> None:
    if event.kind == "tick" and event.remaining and event.remaining % 60 == 0:
        print(f"\n[Time left {format_time(event.remaining)}]")
    elif event.kind == "error":
        print(f"\n{event.error.message}")
    elif event.kind == "completed" and event.remaining == 0:
        print("\nTime up! Your exam was submitted automatically. Press Enter.")


async def cmd_take(args, settings: Settings) -> int:
    store, _, gate = _services(settings)
    principal = await gate.authenticate(args.email, _password(args))
    if principal.role is not Role.PARTICIPANT:
        print("Only participants can take exams.")
        await gate.sign_out()
        return 1
    engine = AttemptEngine(store, policy=settings.eligibility_policy)
    session = AttemptSession(engine, args.exam_id, principal.profile.id)
    eligibility = await session.enter()
    if eligibility is not Eligibility.ELIGIBLE:
        print(NOT_ELIGIBLE_MESSAGES[eligibility])
        return 1

    exam = session.assessment
    print(f"{exam.title}: {len(session.item_bank)} questions, {exam.total_marks} marks, {exam.duration_minutes} minutes.")
    print("The timer starts now. You can only take this exam once; it submits itself when time runs out.")
    await session.begin()
    session.subscribe(_print_event)

    for n, view in enumerate(session.item_bank.views(), start=1):
        if session.state is not AttemptState.IN_PROGRESS:
            break
        print(f"\nQuestion {n} of {len(session.item_bank)} ({view.marks} marks)  [{format_time(session.remaining)}]")
        print(view.question_text)
        for label, text in view.choices.items():
            print(f"  {label}. {text}")
        answer = (await asyncio.to_thread(input, "Answer [A-D, Enter to skip]: ")).strip().upper()
        if session.state is not AttemptState.IN_PROGRESS:
            break
        if answer in LABELS:
            try:
                await session.choose(view.id, answer)
            except StoreError as e:
                print(f"{e.message} Your answer is kept and will be sent on submit.")

    if session.state is AttemptState.IN_PROGRESS:
        result = await session.submit()
    else:
        result = await session.wait_until_completed()
    print(f"\nExam completed. You scored {result.score:g}/{result.total_marks} ({result.percentage:.1f}%).")
    return 0


async def cmd_applications(args, settings: Settings) -> int:
    store, _, _ = _services(settings)
    for profile in await list_applications(store):
        status = "approved" if profile.admin_approved else "pending"
        print(f"{profile.id}  {profile.full_name} <{profile.email}>  {status}")
    return 0


async def cmd_approve(args, settings: Settings) -> int:
    store, _, _ = _services(settings)
    profile = await set_approval(store, args.profile_id, approved=not args.revoke)
    print(f"{profile.full_name}: {'approved' if profile.admin_approved else 'approval revoked'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Timed single-attempt exams backed by Supabase.")
    sub = parser.add_subparsers(dest="command", required=True)

    def with_credentials(p):
        p.add_argument("--email", required=True)
        p.add_argument("--password", default=None, help="Prompted for when omitted")
        return p

    with_credentials(sub.add_parser("login", help="Check that an account can log in")).set_defaults(func=cmd_login)
    p = with_credentials(sub.add_parser("register", help="Create a participant or supervisor account"))
    p.add_argument("--name", required=True, help="Full name")
    p.add_argument("--supervisor", action="store_true", help="Register as supervisor (needs approval)")
    p.set_defaults(func=cmd_register)
    sub.add_parser("exams", help="List public, active exams").set_defaults(func=cmd_exams)
    p = with_credentials(sub.add_parser("take", help="Take an exam in the terminal"))
    p.add_argument("exam_id")
    p.set_defaults(func=cmd_take)
    sub.add_parser("applications", help="List supervisor applications").set_defaults(func=cmd_applications)
    p = sub.add_parser("approve", help="Approve (or revoke) a supervisor")
    p.add_argument("profile_id")
    p.add_argument("--revoke", action="store_true", help="Revoke approval instead")
    p.set_defaults(func=cmd_approve)
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(args.func(args, settings))
    except ExamHallError as e:
        print(e.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
