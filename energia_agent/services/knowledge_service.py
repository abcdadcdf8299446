import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml

from energia_agent.logging_config import get_logger

logger = get_logger("knowledge_service")

_DOSSIER_PATH = Path(__file__).resolve().parents[1] / "knowledge" / "dossier.yaml"


@dataclass(frozen=True)
class DossierTopic:
    key: str
    answer: str
    synonyms: tuple[str, ...] = ()


@dataclass(frozen=True)
class DossierHit:
    key: str
    answer: str
    matched: str


def _normalize_text(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def _contains_term(normalized_text: str, term: str) -> bool:
    pattern = r"\b" + re.escape(_normalize_text(term)) + r"\b"
    return re.search(pattern, normalized_text) is not None


@lru_cache(maxsize=4)
def _load_yaml(path: Path) -> dict:
    if not path.exists():
        logger.warning(f"Dossier file not found: {path}")
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return data if isinstance(data, dict) else {}


def load_dossier(path: Path = _DOSSIER_PATH) -> tuple[DossierTopic, ...]:
    topics = []
    for item in _load_yaml(path).get("topics") or []:
        if not isinstance(item, dict) or not item.get("key") or not item.get("answer"):
            continue
        topics.append(
            DossierTopic(
                key=str(item["key"]),
                answer=str(item["answer"]).strip(),
                synonyms=tuple(str(s) for s in item.get("synonyms") or []),
            )
        )
    return tuple(topics)


def search_dossier(text: Optional[str], path: Path = _DOSSIER_PATH) -> Optional[DossierHit]:
    """Official answer for the first topic mentioned in the message.

    Topic keys are checked before synonyms, so "quanto custa o painel" hits the
    price topic rather than the solar panel one.
    """
    if not text or not text.strip():
        return None
    normalized = _normalize_text(text)
    topics = load_dossier(path)

    for topic in topics:
        if _contains_term(normalized, topic.key):
            return DossierHit(key=topic.key, answer=topic.answer, matched=topic.key)

    for topic in topics:
        for synonym in topic.synonyms:
            if _contains_term(normalized, synonym):
                return DossierHit(key=topic.key, answer=topic.answer, matched=synonym)

    return None
