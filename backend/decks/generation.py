"""Card generation: ask the LLM for a set of flashcards on a topic."""

import json
import logging
from dataclasses import dataclass, field

from backend.config import settings
from backend.llm_client import LLMClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7

SYSTEM_PROMPT = """\
You are an expert tutor and quiz generator. You will be given a topic, a difficulty level, \
a learning objective and a number of questions, and you will create that number of question \
and answer flash cards for the user to test themselves on that topic."""

USER_PROMPT = """\
Please create a set of {count} flashcards of {difficulty} difficulty on the topic stated \
between the two sets of ### below. The topic is written as {input_description}.
###
{topic}
###

Learning objective: {bloom_description}
Card format: {format_description}

Return ONLY a JSON object with this structure:
{{
  "topic": a short label for the topic,
  "difficulty": "{difficulty}",
  "flashcards": [{{"question": string, "answer": string, "order": integer starting at 1}}]
}}"""

BLOOM_DESCRIPTIONS = {
    "remember": "recall facts, terms and basic concepts",
    "understand": "explain ideas and concepts in the learner's own words",
    "apply": "use the knowledge to solve problems in new situations",
}

FORMAT_DESCRIPTIONS = {
    "qa": "a direct question with a concise answer",
    "cloze": (
        "a sentence with the key term replaced by a blank written as ___ "
        "(three underscores); the answer is the missing term only"
    ),
    "mcq": (
        "a multiple-choice question listing four options labelled A-D inside the "
        "question text; the answer is the correct option letter followed by its text"
    ),
}

INPUT_DESCRIPTIONS = {
    "text": "a free-text description",
    "markdown": "a markdown outline",
}


class InvalidTopicError(ValueError):
    pass


class CardGenerationError(RuntimeError):
    pass


@dataclass
class GeneratedCard:
    question: str
    answer: str
    order: int


@dataclass
class GeneratedDeck:
    """Cards returned by the LLM, sorted and renumbered 1..n."""

    topic: str
    difficulty: str
    cards: list[GeneratedCard] = field(default_factory=list)

    def pairs(self) -> list[tuple[str, str]]:
        return [(card.question, card.answer) for card in self.cards]


@dataclass
class CardGenerationRequest:
    """What the user asked for on the new-deck form."""

    topic: str
    difficulty: str = "medium"
    question_count: int = 10
    bloom_level: str = "understand"
    format: str = "qa"
    input_type: str = "text"


def validate_topic(topic: str, max_length: int | None = None) -> str:
    """Return the stripped topic, or raise InvalidTopicError."""
    max_length = max_length or settings.max_topic_length
    text = (topic or "").strip()
    if not text:
        raise InvalidTopicError("Please enter a description or outline")
    if len(text) > max_length:
        raise InvalidTopicError(f"Topic is too long ({len(text)} > {max_length} characters)")
    return text


def parse_llm_json_response(response: str, context: str = "LLM response") -> dict | list:
    """Extract and parse JSON from an LLM response.

    Accepts bare JSON or JSON wrapped in a markdown code fence. Returns an
    empty dict when the text cannot be parsed.
    """
    text = response.strip()

    if text.startswith("```"):
        # Drop the opening fence and its optional language tag
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.error("Failed to parse %s as JSON", context)
        logger.debug("Response was: %s", text[:500])
        return {}


def parse_generated_cards(data: dict | list) -> list[GeneratedCard]:
    """Turn the parsed payload into cards sorted by their returned order.

    Entries without a question or answer are skipped. Orders are renumbered
    1..n so gaps or duplicates from the model don't leak into the deck.
    """
    entries = data.get("flashcards", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        return []

    cards: list[GeneratedCard] = []
    for position, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-object flashcard entry: %r", entry)
            continue
        question = str(entry.get("question") or "").strip()
        answer = str(entry.get("answer") or "").strip()
        if not question or not answer:
            logger.warning("Skipping flashcard with missing question or answer: %s", entry)
            continue
        try:
            order = int(entry.get("order", position + 1))
        except (TypeError, ValueError):
            order = position + 1
        cards.append(GeneratedCard(question=question, answer=answer, order=order))

    cards.sort(key=lambda card: card.order)
    for i, card in enumerate(cards, 1):
        card.order = i
    return cards


def build_prompt(request: CardGenerationRequest) -> str:
    return USER_PROMPT.format(
        count=request.question_count,
        difficulty=request.difficulty,
        topic=request.topic,
        input_description=INPUT_DESCRIPTIONS.get(request.input_type, INPUT_DESCRIPTIONS["text"]),
        bloom_description=BLOOM_DESCRIPTIONS.get(
            request.bloom_level, BLOOM_DESCRIPTIONS["understand"]
        ),
        format_description=FORMAT_DESCRIPTIONS.get(request.format, FORMAT_DESCRIPTIONS["qa"]),
    )


def generate_cards(request: CardGenerationRequest, llm: LLMClient) -> GeneratedDeck:
    """Generate a deck's worth of cards for ``request``.

    Raises:
        InvalidTopicError: If the topic is empty or too long.
        CardGenerationError: If the model returned no usable cards.
    """
    topic = validate_topic(request.topic)
    count = max(1, min(request.question_count, settings.max_cards_per_deck))
    if count != request.question_count:
        logger.info("Clamped question count %d to %d", request.question_count, count)
        request = CardGenerationRequest(
            topic=topic,
            difficulty=request.difficulty,
            question_count=count,
            bloom_level=request.bloom_level,
            format=request.format,
            input_type=request.input_type,
        )

    logger.info(
        "Generating %d %s %s cards (%s) for topic %r",
        count,
        request.difficulty,
        request.format,
        request.bloom_level,
        topic[:60],
    )
    response = llm.create_message(
        prompt=build_prompt(request),
        system=SYSTEM_PROMPT,
        max_tokens=DEFAULT_MAX_TOKENS,
        temperature=DEFAULT_TEMPERATURE,
    )
    data = parse_llm_json_response(response, "flashcard generation")
    cards = parse_generated_cards(data)
    if not cards:
        raise CardGenerationError("The generation service returned no usable flashcards")

    label = topic
    if isinstance(data, dict) and str(data.get("topic") or "").strip():
        label = str(data["topic"]).strip()

    logger.info("Generated %d cards for %r", len(cards), label[:60])
    return GeneratedDeck(topic=label, difficulty=request.difficulty, cards=cards)
