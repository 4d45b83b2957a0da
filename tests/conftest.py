import random

import pytest

from vocab_tutor.models import Word


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tutor.db")
    return db_path


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def words_pool():
    """A small pool mixing verbs, nouns and adjectives, all with examples."""
    return [
        Word("w1", "run", "to move quickly on foot", "I run every morning."),
        Word("w2", "borrow", "to take something and promise to return it", "Can I borrow your pen?"),
        Word("w3", "kitchen", "a room where food is cooked", "We eat breakfast in the kitchen."),
        Word("w4", "brave", "able to face danger without fear", "The brave firefighter saved the cat."),
        Word("w5", "journey", "a trip from one place to another", "The journey took three hours."),
        Word("w6", "whisper", "to speak very quietly", "She whispered the secret to me."),
        Word("w7", "teacher", "someone who helps people learn", "Our teacher explains things clearly."),
        Word("w8", "ancient", "very old, from long ago", "They visited an ancient temple."),
    ]
