from __future__ import annotations

import random

from oneminute.data.topics import FREE_TALK, SPEAKING_TOPICS, get_topic, next_topic, random_topic


def test_topics_have_unique_sequential_ids():
    ids = [topic.id for topic in SPEAKING_TOPICS]

    assert ids == list(range(1, len(SPEAKING_TOPICS) + 1))
    assert len({topic.title for topic in SPEAKING_TOPICS}) == len(SPEAKING_TOPICS)
    assert FREE_TALK not in {topic.title for topic in SPEAKING_TOPICS}


def test_next_topic_wraps_around():
    last = SPEAKING_TOPICS[-1]

    assert next_topic(1).id == 2
    assert next_topic(last.id) == SPEAKING_TOPICS[0]


def test_next_topic_visits_every_topic_once():
    seen = []
    current = SPEAKING_TOPICS[0]
    for _ in SPEAKING_TOPICS:
        seen.append(current.id)
        current = next_topic(current.id)

    assert sorted(seen) == [topic.id for topic in SPEAKING_TOPICS]
    assert current == SPEAKING_TOPICS[0]


def test_next_topic_for_unknown_id_starts_over():
    assert next_topic(999) == SPEAKING_TOPICS[0]


def test_get_topic_and_random_topic():
    assert get_topic(3) == SPEAKING_TOPICS[2]
    assert get_topic(0) is None
    assert random_topic(random.Random(7)) in SPEAKING_TOPICS
