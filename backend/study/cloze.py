"""Answer-face rendering for revealed cards."""

import re
from dataclasses import dataclass

from backend.study.models import StudyCard

# First run of three or more underscores marks the blank in a cloze question.
BLANK_PATTERN = re.compile(r"_{3,}")


@dataclass(frozen=True)
class AnswerFace:
    """The back of a card, split so hosts can style the answer itself.

    ``text`` is ``before + answer + after``; ``answer`` is the part to
    highlight (underlined in the terminal, a separate field in the API).
    """

    before: str
    answer: str
    after: str

    @property
    def text(self) -> str:
        return f"{self.before}{self.answer}{self.after}"


def answer_face(card: StudyCard, deck_format: str) -> AnswerFace:
    """Render what the learner sees once ``card`` is revealed.

    Cloze decks fill the first blank in the question with the answer. A cloze
    question without a blank shows the whole question with the answer in
    parentheses. Every other format shows the answer alone.
    """
    if deck_format != "cloze":
        return AnswerFace(before="", answer=card.answer, after="")

    match = BLANK_PATTERN.search(card.question)
    if match is None:
        return AnswerFace(before=f"{card.question} (", answer=card.answer, after=")")
    return AnswerFace(
        before=card.question[: match.start()],
        answer=card.answer,
        after=card.question[match.end() :],
    )
