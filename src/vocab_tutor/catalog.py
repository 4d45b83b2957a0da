"""Static word catalog loaded from the bundled levels/sets JSON."""
import json
from functools import lru_cache
from pathlib import Path

from vocab_tutor.errors import CatalogError
from vocab_tutor.models import CatalogEntry, Word

CONTENT_DIR = Path(__file__).parent / "content"
CATALOG_FILE = CONTENT_DIR / "catalog.json"


def make_word_id(level_id: str, set_id, word: str) -> str:
    """Stable id for a word, derived from where it sits in the catalog."""
    return f"{level_id}:{set_id}:{word}"


def parse_catalog(data: dict) -> list[CatalogEntry]:
    """Flatten a levels -> sets -> words document into catalog entries.

    Entries without a word or definition are a data bug and raise CatalogError.
    """
    entries = []
    for level in data.get("levels", []):
        level_id = level["id"]
        for set_index, word_set in enumerate(level.get("sets") or []):
            set_id = word_set["id"]
            topic = word_set.get("title") or level.get("name", level_id)
            for raw in word_set.get("words") or []:
                text = (raw.get("word") or "").strip()
                definition = (raw.get("definition") or "").strip()
                if not text or not definition:
                    raise CatalogError(
                        f"Malformed catalog entry in {level_id}/{set_id}: {raw!r}"
                    )
                word = Word(
                    id=make_word_id(level_id, set_id, text),
                    text=text,
                    definition=definition,
                    example_sentence=(raw.get("example") or "").strip() or None,
                    difficulty=1,
                )
                entries.append(CatalogEntry(
                    word=word,
                    level_id=level_id,
                    set_id=str(set_id),
                    set_index=set_index,
                    topic=topic,
                    phonetic=raw.get("phonetic") or "",
                    synonyms=tuple(s for s in raw.get("synonyms") or [] if s),
                ))
    return entries


def load_catalog(path: str | Path = CATALOG_FILE) -> list[CatalogEntry]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_catalog(data)


@lru_cache(maxsize=1)
def default_catalog() -> tuple:
    """The bundled catalog, read once per process."""
    return tuple(load_catalog())


def all_words(entries=None) -> list[Word]:
    if entries is None:
        entries = default_catalog()
    return [e.word for e in entries]
