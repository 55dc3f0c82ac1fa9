"""Study session engine.

Drives one run through a deck: playback order, reveal state, per-question
countdown and navigation. Hosts (the HTTP API, the CLI) forward user commands
to a StudySession and render the StudyView it derives; they never touch the
state directly.
"""

from __future__ import annotations

import functools
import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum

from backend.config import settings
from backend.study.clock import Scheduler, TimerHandle
from backend.study.cloze import AnswerFace, answer_face
from backend.study.models import StudyCard, StudyDeck
from backend.study.ordering import playback_sequence

logger = logging.getLogger(__name__)

TICK_SECONDS = 1


class Phase(Enum):
    """Where a session is in its lifecycle."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class OrderMode(Enum):
    ORDERED = "ordered"
    RANDOM = "random"


class Direction(Enum):
    NEXT = "next"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class SessionConfig:
    """Options chosen before a session starts, fixed until it is restarted."""

    order_mode: OrderMode = OrderMode.ORDERED
    timed: bool = False
    seconds_per_question: int = settings.default_seconds_per_question

    def __post_init__(self) -> None:
        if self.seconds_per_question < 1:
            raise ValueError(
                f"seconds_per_question must be at least 1, got {self.seconds_per_question}"
            )

    @classmethod
    def clamped(
        cls,
        order_mode: OrderMode = OrderMode.ORDERED,
        timed: bool = False,
        seconds_per_question: int = settings.default_seconds_per_question,
    ) -> SessionConfig:
        """Build a config with seconds_per_question pulled into the allowed range."""
        seconds = max(
            settings.min_seconds_per_question,
            min(seconds_per_question, settings.max_seconds_per_question),
        )
        return cls(order_mode=order_mode, timed=timed, seconds_per_question=seconds)


@dataclass
class SessionState:
    """Mutable state of a session. Only StudySession writes to it."""

    phase: Phase = Phase.NOT_STARTED
    playback_sequence: tuple[StudyCard, ...] = ()
    current_index: int = 0
    revealed: bool = False
    remaining_seconds: int | None = None  # None unless the session is timed

    @property
    def total(self) -> int:
        return len(self.playback_sequence)

    @property
    def last_index(self) -> int:
        return max(0, self.total - 1)

    @property
    def current_card(self) -> StudyCard | None:
        if self.phase is Phase.NOT_STARTED or not self.playback_sequence:
            return None
        return self.playback_sequence[self.current_index]


@dataclass(frozen=True)
class StudyView:
    """Everything a host needs to draw the session screen."""

    phase: Phase
    current_index: int
    position: int  # 1-based, 0 when there is nothing to show
    total: int
    current_card: StudyCard | None
    revealed: bool
    answer: AnswerFace | None
    progress_percent: int
    timed: bool
    remaining_seconds: int | None
    seconds_per_question: int | None
    time_fraction: float | None
    can_previous: bool
    can_next: bool
    can_reveal: bool
    can_finish: bool
    config: SessionConfig | None = field(default=None, compare=False)


def progress_percent(current_index: int, total: int) -> int:
    """Percentage of the deck reached, counting the current card as seen.

    Halves round up (12.5 -> 13).
    """
    if total == 0:
        return 0
    return math.floor(100 * (current_index + 1) / total + 0.5)


def derive_view(
    state: SessionState,
    config: SessionConfig | None,
    deck_format: str = "qa",
) -> StudyView:
    """Compute the read model for ``state``. Pure: nothing is stored."""
    in_progress = state.phase is Phase.IN_PROGRESS
    card = state.current_card
    timed = bool(config and config.timed)

    remaining = state.remaining_seconds if timed and in_progress else None
    time_fraction = None
    if remaining is not None and config is not None:
        time_fraction = remaining / config.seconds_per_question

    has_cards = state.total > 0
    at_last = state.current_index == state.last_index

    return StudyView(
        phase=state.phase,
        current_index=state.current_index,
        position=state.current_index + 1 if has_cards and card is not None else 0,
        total=state.total,
        current_card=card,
        revealed=state.revealed,
        answer=answer_face(card, deck_format) if card is not None and state.revealed else None,
        progress_percent=(
            progress_percent(state.current_index, state.total) if card is not None else 0
        ),
        timed=timed,
        remaining_seconds=remaining,
        seconds_per_question=config.seconds_per_question if timed and config else None,
        time_fraction=time_fraction,
        can_previous=in_progress and has_cards and state.current_index > 0,
        can_next=in_progress and has_cards and not at_last,
        can_reveal=in_progress and has_cards and not state.revealed,
        can_finish=in_progress and has_cards and at_last and state.revealed,
        config=config,
    )


class StudySession:
    """State machine for a single study session.

    NotStarted -> InProgress on ``start``; InProgress -> Finished on
    ``finish``; any phase -> NotStarted on ``restart``. Commands issued in the
    wrong phase are ignored, and indices out of range are clamped.

    When the config is timed, one tick per second counts the current question
    down and reveals the answer when it reaches zero. Every command that
    changes the visible card or the phase cancels the pending tick before it
    does anything else, so at most one timer handle is ever outstanding.
    """

    def __init__(self, scheduler: Scheduler, rng: random.Random | None = None) -> None:
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.state = SessionState()
        self.config: SessionConfig | None = None
        self.deck: StudyDeck | None = None
        self._timer: TimerHandle | None = None
        self._timer_generation = 0

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    # --- Commands ---

    def start(self, config: SessionConfig, deck: StudyDeck) -> StudyView:
        """Begin a session over ``deck``.

        Only valid from NotStarted; a running or finished session must be
        restarted first.
        """
        if self.state.phase is not Phase.NOT_STARTED:
            return self.view()
        self._cancel_timer()
        self.config = config
        self.deck = deck
        self.state = SessionState(
            phase=Phase.IN_PROGRESS,
            playback_sequence=playback_sequence(
                deck.cards,
                randomize=config.order_mode is OrderMode.RANDOM,
                rng=self.rng,
            ),
        )
        self._show(0)
        logger.info(
            "Started study session on deck %d: %d cards, %s, timed=%s (%ds)",
            deck.id,
            self.state.total,
            config.order_mode.value,
            config.timed,
            config.seconds_per_question,
        )
        if not self.state.playback_sequence:
            logger.warning("Deck %d has no cards; session has nothing to show", deck.id)
        return self.view()

    def reveal(self) -> StudyView:
        """Show the answer for the current card and stop its countdown."""
        if self._accepts_navigation() and not self.state.revealed:
            self._cancel_timer()
            self.state.revealed = True
        return self.view()

    def advance(self, direction: Direction) -> StudyView:
        """Move one card forward or back, clamped at either end.

        Even when clamped, the card is shown afresh: answer hidden and the
        countdown restarted.
        """
        if self._accepts_navigation():
            step = 1 if direction is Direction.NEXT else -1
            self._show(self.state.current_index + step)
        return self.view()

    def goto_index(self, index: int) -> StudyView:
        """Jump to ``index`` (clamped), with the same reset as ``advance``."""
        if self._accepts_navigation():
            self._show(index)
        return self.view()

    def finish(self) -> StudyView:
        """End the session. Only allowed on the last card once it is revealed."""
        state = self.state
        if (
            self._accepts_navigation()
            and state.current_index == state.last_index
            and state.revealed
        ):
            self._cancel_timer()
            state.phase = Phase.FINISHED
            logger.info("Finished study session on deck %d", self.deck.id if self.deck else -1)
        return self.view()

    def restart(self) -> StudyView:
        """Return to the configuration step. The last config stays available."""
        self._cancel_timer()
        self.state = SessionState()
        return self.view()

    def dispose(self) -> None:
        """Cancel any pending tick. Call when the host drops the session."""
        self._cancel_timer()

    def view(self) -> StudyView:
        deck_format = self.deck.format if self.deck else "qa"
        return derive_view(self.state, self.config, deck_format)

    # --- Internals ---

    def _accepts_navigation(self) -> bool:
        return self.state.phase is Phase.IN_PROGRESS and bool(self.state.playback_sequence)

    def _show(self, index: int) -> None:
        self._cancel_timer()
        state = self.state
        state.current_index = max(0, min(index, state.last_index))
        state.revealed = False
        if self.config is not None and self.config.timed:
            state.remaining_seconds = self.config.seconds_per_question
            if state.playback_sequence:
                self._arm_timer()
        else:
            state.remaining_seconds = None

    def _arm_timer(self) -> None:
        callback = functools.partial(self._tick, self._timer_generation)
        self._timer = self.scheduler.schedule(TICK_SECONDS, callback)

    def _cancel_timer(self) -> None:
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self, generation: int) -> None:
        if generation != self._timer_generation:
            return
        self._timer = None
        state = self.state
        if state.phase is not Phase.IN_PROGRESS or state.revealed or state.remaining_seconds is None:
            return

        state.remaining_seconds -= 1
        logger.debug("Tick: %ds left on card %d", state.remaining_seconds, state.current_index)
        if state.remaining_seconds <= 0:
            state.remaining_seconds = 0
            state.revealed = True
            logger.debug("Time up on card %d, revealing answer", state.current_index)
        else:
            self._arm_timer()
