"""CLI interface for Flashdeck.

Usage:
    python -m flashdeck decks                     List decks grouped by topic
    python -m flashdeck show 3                    Show the cards in a deck
    python -m flashdeck generate "Photosynthesis" Generate a new deck
    python -m flashdeck add 3 "question" "answer" Append a card to a deck
    python -m flashdeck delete 3                  Delete a deck
    python -m flashdeck study 3 --random --timed  Study a deck
"""

import argparse
import asyncio
import logging
import random
import time
from collections.abc import Callable

from backend.config import settings
from backend.database import async_session, init_db
from backend.decks import service, store
from backend.decks.generation import CardGenerationError, CardGenerationRequest, InvalidTopicError
from backend.llm_client import get_llm_client
from backend.study.clock import ManualScheduler
from backend.study.cloze import AnswerFace
from backend.study.models import StudyDeck
from backend.study.session import (
    Direction,
    OrderMode,
    Phase,
    SessionConfig,
    StudySession,
    StudyView,
)

UNDERLINE = "\033[4m"
RESET = "\033[0m"

STUDY_HELP = (
    "  enter=show answer / next   n=next  p=previous  g N=go to card N  "
    "f=finish  r=restart  q=quit"
)


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


# --- Study loop ---


def style_answer(face: AnswerFace, underline: bool = True) -> str:
    if not underline:
        return face.text
    return f"{face.before}{UNDERLINE}{face.answer}{RESET}{face.after}"


def render_view(view: StudyView, underline: bool = True) -> str:
    """Format the current card for the terminal."""
    header = f"  [{view.position}/{view.total}] {view.progress_percent}%"
    if view.remaining_seconds is not None:
        header += f"  {view.remaining_seconds}s left"
    lines = [header]
    if view.current_card is not None:
        lines.append(f"  Q: {view.current_card.question}")
    if view.answer is not None:
        lines.append(f"  A: {style_answer(view.answer, underline)}")
    return "\n".join(lines)


def run_study(
    deck: StudyDeck,
    config: SessionConfig,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
    now: Callable[[], float] = time.monotonic,
    underline: bool = True,
    scheduler: ManualScheduler | None = None,
    rng: random.Random | None = None,
) -> StudyView:
    """Drive a study session from terminal input until finished or quit.

    The session's countdown runs on a simulated clock that is moved forward
    by the wall-clock time spent waiting for each command, so a timed card
    whose time ran out while the learner was thinking is shown revealed.
    """
    scheduler = scheduler or ManualScheduler()
    session = StudySession(scheduler, rng)
    session.start(config, deck)

    if not session.state.playback_sequence:
        write("  This deck has no cards yet. Add some with 'flashdeck add'.")
        session.dispose()
        return session.view()

    write(f"\n  Studying: {deck.topic}")
    write(STUDY_HELP + "\n")
    last = now()

    while session.phase is Phase.IN_PROGRESS:
        view = session.view()
        write(render_view(view, underline))
        command = read("  > ").strip().lower()

        current = now()
        elapsed, last = current - last, current
        if view.timed and not view.revealed:
            scheduler.advance(elapsed)
            if session.state.revealed:
                write("  Time's up!")
                if command == "":
                    continue

        if command == "":
            view = session.view()
            if not view.revealed:
                session.reveal()
            elif view.can_finish:
                session.finish()
            else:
                session.advance(Direction.NEXT)
        elif command == "n":
            session.advance(Direction.NEXT)
        elif command == "p":
            session.advance(Direction.PREVIOUS)
        elif command.startswith("g"):
            target = command[1:].strip()
            if target.isdigit():
                session.goto_index(int(target) - 1)
            else:
                write("  Usage: g N")
        elif command == "f":
            if not session.view().can_finish:
                write("  Reveal the last card before finishing.")
            session.finish()
        elif command == "r":
            session.restart()
            write("  Restarting.")
            session.start(config, deck)
            last = now()
        elif command == "q":
            write("\n  Session ended early.")
            break
        else:
            write(STUDY_HELP)

    if session.phase is Phase.FINISHED:
        write(f"\n  Session complete! {session.state.total} cards studied.\n")
    session.dispose()
    return session.view()


# --- Commands ---


async def cmd_decks(args: argparse.Namespace) -> None:
    """List decks grouped by topic."""
    await ensure_db()
    async with async_session() as db:
        decks = await store.list_decks(db)

    if not decks:
        print("\n  No decks yet. Create one with 'flashdeck generate'.\n")
        return

    print()
    for topic, group in store.group_by_topic(decks):
        print(f"  {topic}")
        for deck in group:
            print(
                f"    #{deck.id:<4} {len(deck.cards):>3} cards  "
                f"{deck.difficulty:<10} {deck.format:<6} {deck.updated_at:%Y-%m-%d %H:%M}"
            )
    print()


async def cmd_show(args: argparse.Namespace) -> None:
    """Print the cards of a deck."""
    await ensure_db()
    async with async_session() as db:
        try:
            deck = await store.load_deck(db, args.deck_id)
        except store.DeckNotFoundError as exc:
            print(f"  {exc}")
            return

    print(f"\n  {deck.topic}  ({deck.difficulty}, {deck.bloom_level}, {deck.format})\n")
    for card in store.sorted_cards(deck):
        print(f"  {card.order:>3}. Q: {card.question}")
        print(f"       A: {card.answer}")
    print()


async def cmd_generate(args: argparse.Namespace) -> None:
    """Generate a new deck with the LLM."""
    await ensure_db()
    request = CardGenerationRequest(
        topic=args.topic,
        difficulty=args.difficulty,
        question_count=args.count,
        bloom_level=args.level,
        format=args.format,
        input_type="text",
    )
    llm = get_llm_client()
    async with async_session() as db:
        try:
            deck = await service.create_generated_deck(db, request, llm)
        except (InvalidTopicError, CardGenerationError) as exc:
            print(f"  {exc}")
            return

    print(f"  Created deck #{deck.id} '{deck.topic}' with {len(deck.cards)} cards.")
    cost = llm.get_cost_estimate()
    print(f"  LLM usage: {cost['input_tokens']} in / {cost['output_tokens']} out "
          f"(~${cost['estimated_cost_usd']:.4f})")


async def cmd_add(args: argparse.Namespace) -> None:
    """Append a card to a deck."""
    await ensure_db()
    async with async_session() as db:
        try:
            card = await store.add_card(db, args.deck_id, args.question, args.answer)
        except store.DeckNotFoundError as exc:
            print(f"  {exc}")
            return
    print(f"  Added card {card.order} to deck #{args.deck_id}.")


async def cmd_delete(args: argparse.Namespace) -> None:
    await ensure_db()
    async with async_session() as db:
        try:
            await store.delete_deck(db, args.deck_id)
        except store.DeckNotFoundError as exc:
            print(f"  {exc}")
            return
    print(f"  Deleted deck #{args.deck_id}.")


async def cmd_study(args: argparse.Namespace) -> None:
    """Run an interactive study session."""
    await ensure_db()
    async with async_session() as db:
        try:
            deck = await store.load_deck(db, args.deck_id)
        except store.DeckNotFoundError as exc:
            print(f"  {exc}")
            return
        snapshot = StudyDeck.from_model(deck)

    config = SessionConfig.clamped(
        order_mode=OrderMode.RANDOM if args.random else OrderMode.ORDERED,
        timed=args.timed,
        seconds_per_question=args.seconds,
    )
    if args.timed and config.seconds_per_question != args.seconds:
        print(f"  Using {config.seconds_per_question}s per question "
              f"(allowed {settings.min_seconds_per_question}-{settings.max_seconds_per_question}).")
    run_study(snapshot, config, underline=not args.plain)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flashdeck",
        description="Generate flashcard decks and study them",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # decks
    subparsers.add_parser("decks", help="List decks grouped by topic")

    # show
    show_parser = subparsers.add_parser("show", help="Show the cards in a deck")
    show_parser.add_argument("deck_id", type=int)

    # generate
    gen_parser = subparsers.add_parser("generate", help="Generate a deck from a topic")
    gen_parser.add_argument("topic", help="Topic description")
    gen_parser.add_argument("-n", "--count", type=int, default=10, help="Number of cards")
    gen_parser.add_argument(
        "-d", "--difficulty", default="medium", choices=store.DIFFICULTIES
    )
    gen_parser.add_argument("-l", "--level", default="understand", choices=store.BLOOM_LEVELS)
    gen_parser.add_argument("-f", "--format", default="qa", choices=store.FORMATS)

    # add
    add_parser = subparsers.add_parser("add", help="Append a card to a deck")
    add_parser.add_argument("deck_id", type=int)
    add_parser.add_argument("question")
    add_parser.add_argument("answer")

    # delete
    delete_parser = subparsers.add_parser("delete", help="Delete a deck")
    delete_parser.add_argument("deck_id", type=int)

    # study
    study_parser = subparsers.add_parser("study", help="Study a deck")
    study_parser.add_argument("deck_id", type=int)
    study_parser.add_argument("--random", action="store_true", help="Shuffle the cards")
    study_parser.add_argument("--timed", action="store_true", help="Time each question")
    study_parser.add_argument(
        "-s",
        "--seconds",
        type=int,
        default=settings.default_seconds_per_question,
        help="Seconds per question when timed",
    )
    study_parser.add_argument("--plain", action="store_true", help="Don't underline answers")

    return parser


def main() -> None:
    """Entry point for the Flashdeck CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "decks": cmd_decks,
        "show": cmd_show,
        "generate": cmd_generate,
        "add": cmd_add,
        "delete": cmd_delete,
        "study": cmd_study,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
