"""Fixed set of speaking practice topics."""

from __future__ import annotations

import random
from typing import Optional, Sequence

from .models import SpeakingTopic

SPEAKING_TOPICS: Sequence[SpeakingTopic] = tuple(
    SpeakingTopic(id=index, title=title, emoji=emoji)
    for index, (title, emoji) in enumerate(
        [
            ("Your favorite food", "🍕"),
            ("Your morning routine", "🌅"),
            ("Your best friend", "👫"),
            ("Your hometown", "🏘️"),
            ("Your hobby", "🎨"),
            ("Your dream vacation", "✈️"),
            ("Your favorite movie or TV show", "🎬"),
            ("Your daily schedule", "📅"),
            ("Your family", "👨‍👩‍👧‍👦"),
            ("Your favorite season", "🌸"),
            ("What you did last weekend", "🎉"),
            ("Your favorite music", "🎵"),
            ("Your school life", "🎓"),
            ("Your pet or dream pet", "🐾"),
            ("Your favorite place to relax", "🏖️"),
            ("What makes you happy", "😊"),
            ("Your favorite sport", "⚽"),
            ("Your ideal weekend", "☀️"),
            ("A skill you want to learn", "📚"),
            ("Your favorite memory", "💭"),
        ],
        start=1,
    )
)

FREE_TALK = "Free Talk"


def random_topic(rng: Optional[random.Random] = None) -> SpeakingTopic:
    return (rng or random).choice(SPEAKING_TOPICS)


def get_topic(topic_id: int) -> Optional[SpeakingTopic]:
    for topic in SPEAKING_TOPICS:
        if topic.id == topic_id:
            return topic
    return None


def next_topic(current_id: int) -> SpeakingTopic:
    """Return the topic after ``current_id``, wrapping from the last to the first.

    An unknown id behaves like a position before the first topic.
    """

    index = next(
        (i for i, topic in enumerate(SPEAKING_TOPICS) if topic.id == current_id),
        -1,
    )
    return SPEAKING_TOPICS[(index + 1) % len(SPEAKING_TOPICS)]


__all__ = ["FREE_TALK", "SPEAKING_TOPICS", "get_topic", "next_topic", "random_topic"]
