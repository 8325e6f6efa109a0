from __future__ import annotations

import argparse
import asyncio
import re
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealcards.cards.generation import create_cards_for_event, generate_card_values
from revealcards.core.logging import configure_logging
from revealcards.db.models.events import Event
from revealcards.db.repo.events_repo import EventsRepo
from revealcards.db.session import SessionLocal

SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,95}$")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an event and draw its cards")
    parser.add_argument("--slug", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--num-cards", type=int, required=True)
    parser.add_argument("--min-value", type=int, required=True, help="minor units")
    parser.add_argument("--max-value", type=int, required=True, help="minor units")
    parser.add_argument("--goal-amount", type=int, help="minor units; card values add up to it exactly")
    parser.add_argument("--payout-account-id", help="connected account receiving card values")
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if SLUG_RE.fullmatch(args.slug) is None:
        raise ValueError("--slug must be lowercase letters, digits and dashes")
    if not args.name.strip():
        raise ValueError("--name must not be empty")
    if args.num_cards <= 0:
        raise ValueError("--num-cards must be positive")
    if args.min_value <= 0 or args.max_value < args.min_value:
        raise ValueError("--min-value must be positive and not above --max-value")
    if args.goal_amount is not None and not (
        args.num_cards * args.min_value <= args.goal_amount <= args.num_cards * args.max_value
    ):
        raise ValueError("--goal-amount is out of reach for this card count and value range")


async def create_event(
    session_factory: async_sessionmaker[AsyncSession],
    args: argparse.Namespace,
    *,
    now_utc: datetime | None = None,
) -> tuple[int, list[int]]:
    now_utc = now_utc or datetime.now(timezone.utc)
    async with session_factory.begin() as session:
        event = await EventsRepo.create(
            session,
            event=Event(
                slug=args.slug,
                name=args.name.strip(),
                num_cards=args.num_cards,
                min_value=args.min_value,
                max_value=args.max_value,
                goal_amount=args.goal_amount,
                payout_account_id=args.payout_account_id,
                created_at=now_utc,
            ),
        )
        cards = await create_cards_for_event(
            session,
            event_id=event.id,
            count=args.num_cards,
            min_value=args.min_value,
            max_value=args.max_value,
            goal_amount=args.goal_amount,
            now_utc=now_utc,
        )
        return event.id, [card.value for card in cards]


async def _run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _validate_args(args)

    if args.dry_run:
        values = generate_card_values(
            count=args.num_cards,
            min_value=args.min_value,
            max_value=args.max_value,
            goal_amount=args.goal_amount,
        )
        print(f"dry_run cards={len(values)} total={sum(values)} values={values}")  # noqa: T201
        return 0

    event_id, values = await create_event(SessionLocal, args)
    print(f"created event_id={event_id} slug={args.slug} cards={len(values)} total={sum(values)}")  # noqa: T201
    return 0


def main() -> int:
    configure_logging("INFO", service="scripts")
    return asyncio.run(_run())


if __name__ == "__main__":
    raise SystemExit(main())
