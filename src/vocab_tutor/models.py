"""Data classes for the vocabulary tutor domain model."""
from dataclasses import asdict, dataclass, field
from typing import Optional

WORD_STATUSES = ("new", "learning", "review", "mastered")
STORY_TYPES = ("story_context_mcq", "story_mcq")
BANDS = ("A1", "A2", "B1", "B2", "C1")


@dataclass(frozen=True)
class Word:
    id: str
    text: str
    definition: str
    example_sentence: Optional[str] = None
    difficulty: Optional[int] = None


@dataclass(frozen=True)
class CatalogEntry:
    """A catalog word along with where it sits in the level/set hierarchy."""
    word: Word
    level_id: str
    set_id: str
    set_index: int
    topic: str
    phonetic: str = ""
    synonyms: tuple = ()


@dataclass
class UserWordState:
    user_id: str
    word_id: str
    status: str = "new"
    stage: int = 0
    strength: float = 0.2
    last_seen_at: Optional[str] = None
    next_review_at: Optional[str] = None
    total_correct: int = 0
    total_incorrect: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserWordState":
        return cls(**data)


@dataclass
class Mission:
    id: str
    user_id: str
    date: str  # YYYY-MM-DD
    status: str = "not_started"
    num_questions: int = 5
    xp_reward: int = 60
    weak_words_count: int = 0
    new_words_count: int = 0
    created_at: str = ""
    completed_at: Optional[str] = None
    correct_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Mission":
        return cls(**data)


@dataclass
class MissionQuestion:
    id: str
    mission_id: str
    index: int
    type: str
    primary_word_id: Optional[str]
    prompt: str
    options: list
    correct_index: int
    extra_word_ids: list = field(default_factory=list)
    answered: bool = False

    @property
    def word_ids(self) -> list:
        ids = [self.primary_word_id] if self.primary_word_id else []
        return ids + [w for w in self.extra_word_ids if w]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MissionQuestion":
        data = dict(data)
        data["answered"] = bool(data.get("answered"))
        return cls(**data)


@dataclass
class MissionBundle:
    mission: Mission
    questions: list

    def to_dict(self) -> dict:
        return {
            "mission": self.mission.to_dict(),
            "questions": [q.to_dict() for q in self.questions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MissionBundle":
        return cls(
            mission=Mission.from_dict(data["mission"]),
            questions=[MissionQuestion.from_dict(q) for q in data.get("questions") or []],
        )


@dataclass
class UserStats:
    user_id: str
    xp: int = 0
    streak: int = 0
    last_mission_date: Optional[str] = None
    missions_completed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserStats":
        return cls(**data)


@dataclass
class Option:
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class PlacementItem:
    id: str
    word: str
    band: str
    topic: str
    kind: str
    prompt: str
    options: tuple
    correct_index: int
    meta: Optional[dict] = None

    @property
    def correct_text(self) -> str:
        return self.options[self.correct_index]


@dataclass
class PlacementAnswer:
    item_id: str
    correct: bool
    chosen: Optional[str] = None
    answered_at: Optional[str] = None


@dataclass
class PlacementSession:
    id: str
    asked: list = field(default_factory=list)
    answers: list = field(default_factory=list)
    ability: int = 0
    consecutive_correct: int = 0
    consecutive_wrong: int = 0
    confidence: float = 0.0
    band_performance: dict = field(
        default_factory=lambda: {b: {"correct": 0, "total": 0} for b in BANDS}
    )
