"""Exceptions raised by the tutor engine."""


class VocabTutorError(Exception):
    """Base class for all tutor errors."""


class CatalogError(VocabTutorError, ValueError):
    """A catalog entry is missing required fields."""


class MissionError(VocabTutorError):
    pass


class MissionNotFoundError(MissionError, KeyError):
    pass


class QuestionNotFoundError(MissionError, KeyError):
    pass
