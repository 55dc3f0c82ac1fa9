from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Deck(Base, TimestampMixin):
    __tablename__ = "decks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[str] = mapped_column(
        String(20), nullable=False, default="medium"
    )  # easy, medium, difficult, expert
    bloom_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="understand"
    )  # remember, understand, apply
    format: Mapped[str] = mapped_column(String(10), nullable=False, default="qa")  # qa, cloze, mcq
    input_type: Mapped[str] = mapped_column(String(10), nullable=False, default="text")  # text, markdown

    cards: Mapped[list["Card"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="deck",
        cascade="all, delete-orphan",
        order_by="Card.order",
    )
