"""
Similarity scoring functions.

Everything here is pure and total: empty inputs score 0 instead of raising,
so the detection loop never has to guard individual signals.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from similarity_service.core.config import CombinedWeights, SimilarityConfig, TextWeights

logger = logging.getLogger(__name__)

MAX_TOKENS = 500
EDIT_DISTANCE_MAX_CHARS = 1000
TEXT_COMPARE_MAX_CHARS = 3000
MAX_SEGMENTS = 5

_WHITESPACE = re.compile(r"\s+")


@dataclass
class ScoreBreakdown:
    hash_similarity: float
    text_similarity: float
    embedding_similarity: float
    jaccard_score: float = 0.0
    edit_score: float = 0.0


@dataclass
class SimilarSegment:
    source_text: str
    target_text: str
    similarity: float
    source_position: Tuple[int, int]
    target_position: Tuple[int, int]


@dataclass
class DetailedSimilarity:
    final_score: float
    breakdown: ScoreBreakdown
    dominant_type: str
    explanation: str
    similar_segments: List[SimilarSegment] = field(default_factory=list)


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text.lower()).strip()


def hash_overlap(source_hashes: Iterable[Optional[str]], target_hashes: Iterable[Optional[str]]) -> float:
    """Share of matching file hashes relative to the larger hash set."""
    source = {h for h in source_hashes if h}
    target = {h for h in target_hashes if h}
    if not source or not target:
        return 0.0
    if source == target:
        return 1.0
    return len(source & target) / max(len(source), len(target))


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    if a is None or b is None:
        return 0.0
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    if vec_a.size == 0 or vec_b.size == 0:
        return 0.0
    if vec_a.shape != vec_b.shape:
        logger.warning(
            f"Embedding dimension mismatch ({vec_a.size} vs {vec_b.size}); treating similarity as 0"
        )
        return 0.0
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    score = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def jaccard(text_a: str, text_b: str) -> float:
    """Token-set overlap of the first 500 whitespace tokens of each text."""
    tokens_a = set(normalize_text(text_a).split()[:MAX_TOKENS]) if text_a else set()
    tokens_b = set(normalize_text(text_b).split()[:MAX_TOKENS]) if text_b else set()
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def edit_similarity(text_a: str, text_b: str, fallback: float) -> float:
    """Normalized edit similarity for short texts, ``fallback`` for long ones."""
    if len(text_a) < EDIT_DISTANCE_MAX_CHARS and len(text_b) < EDIT_DISTANCE_MAX_CHARS:
        max_length = max(len(text_a), len(text_b))
        if max_length == 0:
            return 0.0
        return 1.0 - levenshtein_distance(text_a, text_b) / max_length
    return fallback


def text_similarity(text_a: str, text_b: str, weights: Optional[TextWeights] = None) -> float:
    weights = weights or TextWeights()
    if not text_a or not text_b:
        return 0.0
    if text_a == text_b:
        return 1.0

    normalized_a = normalize_text(text_a[:TEXT_COMPARE_MAX_CHARS])
    normalized_b = normalize_text(text_b[:TEXT_COMPARE_MAX_CHARS])
    if normalized_a and normalized_a == normalized_b:
        return 1.0

    jaccard_score = jaccard(normalized_a, normalized_b)
    edit_score = edit_similarity(normalized_a, normalized_b, jaccard_score)
    return jaccard_score * weights.jaccard + edit_score * weights.edit


def chunked_text_similarity(
    text_a: str,
    text_b: str,
    chunker: Callable[[str], List[str]],
    threshold: int,
    weights: Optional[TextWeights] = None,
) -> float:
    """
    Text similarity that also catches partial duplication.

    When either text is longer than ``threshold`` both are split with
    ``chunker`` and the best chunk-pair score is returned, so an excerpt
    of a long document still scores high against it.
    """
    if not text_a or not text_b:
        return 0.0
    if len(text_a) <= threshold and len(text_b) <= threshold:
        return text_similarity(text_a, text_b, weights)

    chunks_a = chunker(text_a) or [text_a]
    chunks_b = chunker(text_b) or [text_b]
    best = 0.0
    for chunk_a in chunks_a:
        for chunk_b in chunks_b:
            best = max(best, text_similarity(chunk_a, chunk_b, weights))
            if best >= 1.0:
                return 1.0
    return best


def combined_score(
    hash_sim: float,
    text_sim: float,
    embedding_sim: float,
    weights: Optional[CombinedWeights] = None,
) -> float:
    """Weighted blend floored at the strongest single signal."""
    weights = weights or CombinedWeights()
    weighted = hash_sim * weights.hash + text_sim * weights.text + embedding_sim * weights.embedding
    return max(weighted, hash_sim, text_sim, embedding_sim)


def _split_into_segments(text: str, segment_size: int) -> List[Tuple[str, int, int]]:
    step = max(1, segment_size // 2)
    segments = []
    for start in range(0, len(text), step):
        end = min(start + segment_size, len(text))
        segments.append((text[start:end], start, end))
    return segments


def find_similar_segments(
    source_text: str,
    target_text: str,
    min_similarity: float = 0.7,
    segment_size: int = 200,
) -> List[SimilarSegment]:
    """Top matching windows (50% overlap) between two texts, for display only."""
    matches = []
    target_segments = _split_into_segments(target_text or "", segment_size)
    for source, s_start, s_end in _split_into_segments(source_text or "", segment_size):
        for target, t_start, t_end in target_segments:
            score = jaccard(source, target)
            if score >= min_similarity:
                matches.append(
                    SimilarSegment(
                        source_text=source,
                        target_text=target,
                        similarity=score,
                        source_position=(s_start, s_end),
                        target_position=(t_start, t_end),
                    )
                )
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches[:MAX_SEGMENTS]


def dominant_type(hash_sim: float, text_sim: float, embedding_sim: float) -> str:
    if hash_sim >= text_sim and hash_sim >= embedding_sim:
        return "hash"
    if embedding_sim >= text_sim:
        return "embedding"
    return "text"


def explain(breakdown: ScoreBreakdown, dominant: str, final_score: float) -> str:
    percentage = round(final_score * 100)
    if dominant == "hash":
        return (
            f"Documents are {percentage}% similar, primarily due to identical file content "
            f"(hash match: {round(breakdown.hash_similarity * 100)}%)."
        )
    if dominant == "embedding":
        return (
            f"Documents are {percentage}% similar, primarily due to semantic similarity "
            f"(embedding match: {round(breakdown.embedding_similarity * 100)}%)."
        )
    return (
        f"Documents are {percentage}% similar, primarily due to similar text content "
        f"(Jaccard: {round(breakdown.jaccard_score * 100)}%, "
        f"edit distance: {round(breakdown.edit_score * 100)}%)."
    )


def detailed_similarity(
    source_text: str,
    target_text: str,
    hash_sim: float,
    embedding_sim: float,
    config: Optional[SimilarityConfig] = None,
) -> DetailedSimilarity:
    """Full score breakdown with explanation and matching segments."""
    config = config or SimilarityConfig()
    source = (source_text or "")[:TEXT_COMPARE_MAX_CHARS]
    target = (target_text or "")[:TEXT_COMPARE_MAX_CHARS]
    normalized_source = normalize_text(source)
    normalized_target = normalize_text(target)

    jaccard_score = jaccard(normalized_source, normalized_target)
    edit_score = edit_similarity(normalized_source, normalized_target, jaccard_score)
    text_sim = jaccard_score * config.text_weights.jaccard + edit_score * config.text_weights.edit

    final = combined_score(hash_sim, text_sim, embedding_sim, config.weights)
    breakdown = ScoreBreakdown(
        hash_similarity=hash_sim,
        text_similarity=text_sim,
        embedding_similarity=embedding_sim,
        jaccard_score=jaccard_score,
        edit_score=edit_score,
    )
    dominant = dominant_type(hash_sim, text_sim, embedding_sim)
    return DetailedSimilarity(
        final_score=final,
        breakdown=breakdown,
        dominant_type=dominant,
        explanation=explain(breakdown, dominant, final),
        similar_segments=find_similar_segments(source, target),
    )
