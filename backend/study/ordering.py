"""Playback ordering for study sessions."""

import random
from collections.abc import Sequence
from typing import TypeVar

from backend.study.models import StudyCard

T = TypeVar("T")


def shuffle(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly random permutation of ``items`` as a new list.

    Fisher-Yates: walk from the last index down to 1 and swap each slot with
    a uniformly chosen index in ``[0, i]``. The input is left untouched.
    """
    rng = rng or random.Random()
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def playback_sequence(
    cards: Sequence[StudyCard],
    randomize: bool = False,
    rng: random.Random | None = None,
) -> tuple[StudyCard, ...]:
    """Cards sorted by ``order``, shuffled afterwards when ``randomize`` is set."""
    ordered = sorted(cards, key=lambda card: card.order)
    if randomize:
        return tuple(shuffle(ordered, rng))
    return tuple(ordered)
