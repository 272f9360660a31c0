"""
Duplicate / similarity detection for a newly uploaded document.

A run first looks for other documents sharing a file hash with the source.
Any such match ends the run without reading text or embeddings. Otherwise
a bounded pool of candidates is compared batch by batch on hash overlap,
lexical similarity and embedding cosine similarity, and the best matches
replace the source's previous similarity records.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from similarity_service.core.config import SimilarityConfig, SimilarityConfigProvider, settings
from similarity_service.core.exceptions import NotFoundError
from similarity_service.core.metrics import MetricsCollector
from similarity_service.models import SimilarityType
from similarity_service.schemas.similarity import DetectionResult, SimilarDocument, UploaderSummary
from similarity_service.services.document_processor import DocumentProcessor
from similarity_service.services.repository import SimilarityRepository
from similarity_service.services.similarity_algorithm import (
    chunked_text_similarity,
    combined_score,
    cosine_similarity,
    hash_overlap,
)
from similarity_service.services.text_extraction import TextExtractionService

logger = logging.getLogger(__name__)


@dataclass
class CandidateMatch:
    document: Any
    score: float
    similarity_type: str


def _file_hashes(document) -> Set[str]:
    return {f.file_hash for f in (document.files or []) if f.file_hash}


class SimilarityDetectionService:

    def __init__(
        self,
        repository: SimilarityRepository,
        text_extractor: TextExtractionService,
        document_processor: DocumentProcessor,
        config_provider: Optional[SimilarityConfigProvider] = None,
        candidate_pool_limit: int = None,
        batch_size: int = None,
        max_results: int = None,
    ):
        self.repository = repository
        self.text_extractor = text_extractor
        self.document_processor = document_processor
        self.config_provider = config_provider or SimilarityConfigProvider()
        self.candidate_pool_limit = candidate_pool_limit or settings.CANDIDATE_POOL_LIMIT
        self.batch_size = batch_size or settings.SIMILARITY_BATCH_SIZE
        self.max_results = max_results or settings.MAX_SIMILAR_DOCUMENTS

    async def detect_similar_documents(self, session: AsyncSession, document_id: UUID) -> DetectionResult:
        """
        Detect documents similar to ``document_id`` and persist the matches.

        Args:
            session: Database session
            document_id: Source document

        Returns:
            DetectionResult with the ranked top matches

        Raises:
            NotFoundError: If the source document does not exist
        """
        logger.info(f"Detecting similar documents for {document_id}")
        config = self.config_provider.get()
        collector = MetricsCollector(document_id)

        collector.start_phase("load_source")
        source = await self.repository.get_document(session, document_id)
        collector.end_phase("load_source")
        if source is None:
            raise NotFoundError(f"Document {document_id} not found")

        source_hashes = _file_hashes(source)

        collector.start_phase("exact_hash_lookup")
        exact_documents = await self.repository.find_documents_by_file_hashes(
            session, source_hashes, exclude_id=source.id
        )
        collector.end_phase("exact_hash_lookup")

        exact_matches = [
            CandidateMatch(document=doc, score=1.0, similarity_type=SimilarityType.HASH)
            for doc in exact_documents
        ]
        collector.metrics.exact_match_count = len(exact_matches)

        batch_matches: List[CandidateMatch] = []
        if exact_matches:
            logger.info(
                f"Found {len(exact_matches)} exact file hash matches for {document_id}, "
                f"skipping content comparison"
            )
        else:
            collector.start_phase("compare")
            batch_matches = await self._compare_candidates(session, source, source_hashes, config, collector)
            collector.end_phase("compare")

        matches = self._merge(exact_matches, batch_matches)
        matches.sort(key=lambda m: m.score, reverse=True)
        top_matches = matches[:self.max_results]

        collector.start_phase("persist")
        await self.repository.replace_similarity_records(
            session,
            source.id,
            [
                {
                    "target_document_id": m.document.id,
                    "similarity_score": m.score,
                    "similarity_type": m.similarity_type,
                }
                for m in top_matches
            ],
        )
        collector.end_phase("persist")

        result = DetectionResult(
            has_similar_documents=bool(top_matches),
            similar_documents=[self._to_similar_document(m) for m in top_matches],
            highest_similarity_score=top_matches[0].score if top_matches else 0.0,
            total_similar_documents=len(top_matches),
        )
        collector.finish(len(top_matches)).emit()
        logger.info(f"Found {result.total_similar_documents} similar documents for {document_id}")
        return result

    async def _compare_candidates(
        self,
        session: AsyncSession,
        source,
        source_hashes: Set[str],
        config: SimilarityConfig,
        collector: MetricsCollector,
    ) -> List[CandidateMatch]:
        source_text = await self.text_extractor.extract_text_from_files(source.files or [])
        source_text = source_text[:settings.COMPARE_TEXT_MAX_CHARS]
        source_embedding = await self.repository.get_embedding_vector(session, source.id)

        candidate_ids = await self.repository.get_candidate_ids(
            session, exclude_id=source.id, limit=self.candidate_pool_limit
        )
        collector.metrics.candidate_count = len(candidate_ids)
        logger.info(f"Comparing {source.id} with {len(candidate_ids)} candidate documents")

        matches: List[CandidateMatch] = []
        for start in range(0, len(candidate_ids), self.batch_size):
            batch_ids = candidate_ids[start:start + self.batch_size]
            collector.metrics.batch_count += 1
            targets = await self.repository.get_documents(session, batch_ids)
            target_embeddings = await self._load_target_embeddings(
                session, source_embedding, [t.id for t in targets], collector
            )

            for target in targets:
                if target.id == source.id:
                    continue
                collector.metrics.compared_count += 1
                match = await self._compare_with_target(
                    source_hashes,
                    source_text,
                    source_embedding,
                    target,
                    target_embeddings.get(target.id),
                    config,
                )
                if match is not None:
                    matches.append(match)
        return matches

    async def _load_target_embeddings(
        self,
        session: AsyncSession,
        source_embedding,
        target_ids: List[UUID],
        collector: MetricsCollector,
    ) -> Dict[UUID, Any]:
        if source_embedding is None or len(source_embedding) == 0:
            return {}
        try:
            return await self.repository.get_embedding_vectors(session, target_ids)
        except Exception as e:
            # Embedding signal degrades to 0 for this batch; hash and text still apply
            collector.metrics.degraded_signal_count += len(target_ids)
            logger.warning(f"Failed to load candidate embeddings for batch: {e}")
            return {}

    async def _compare_with_target(
        self,
        source_hashes: Set[str],
        source_text: str,
        source_embedding,
        target,
        target_embedding,
        config: SimilarityConfig,
    ) -> Optional[CandidateMatch]:
        thresholds = config.thresholds

        hash_sim = hash_overlap(source_hashes, _file_hashes(target))
        if hash_sim >= thresholds.hash_match:
            return CandidateMatch(document=target, score=hash_sim, similarity_type=SimilarityType.HASH)

        text_sim = 0.0
        if source_text:
            target_text = await self.text_extractor.extract_text_from_files(target.files or [], limit_text=True)
            target_text = target_text[:settings.COMPARE_TEXT_MAX_CHARS]
            text_sim = chunked_text_similarity(
                source_text,
                target_text,
                chunker=self.document_processor.chunk_text,
                threshold=settings.CHUNKING_THRESHOLD,
                weights=config.text_weights,
            )

        embedding_sim = 0.0
        if source_embedding is not None and target_embedding is not None:
            embedding_sim = cosine_similarity(source_embedding, target_embedding)

        combined = combined_score(hash_sim, text_sim, embedding_sim, config.weights)
        accepted = (
            combined >= thresholds.similarity_detection
            or hash_sim > thresholds.hash_include
            or embedding_sim >= thresholds.embedding_match
        )
        if not accepted:
            return None

        if hash_sim == 1.0:
            similarity_type = SimilarityType.HASH
        elif embedding_sim > text_sim:
            similarity_type = SimilarityType.CONTENT
        else:
            similarity_type = SimilarityType.TEXT

        score = min(1.0, max(combined, embedding_sim))
        logger.debug(
            f"Accepted {target.id}: hash={hash_sim:.3f} text={text_sim:.3f} "
            f"embedding={embedding_sim:.3f} score={score:.3f}"
        )
        return CandidateMatch(document=target, score=score, similarity_type=similarity_type)

    @staticmethod
    def _merge(exact_matches: List[CandidateMatch], batch_matches: List[CandidateMatch]) -> List[CandidateMatch]:
        """Exact hash matches win over any scored match for the same document."""
        merged = {m.document.id: m for m in batch_matches}
        merged.update({m.document.id: m for m in exact_matches})
        return list(merged.values())

    @staticmethod
    def _to_similar_document(match: CandidateMatch) -> SimilarDocument:
        document = match.document
        uploader = getattr(document, "uploader", None)
        return SimilarDocument(
            document_id=document.id,
            title=document.title,
            similarity_score=match.score,
            similarity_type=match.similarity_type,
            uploader=UploaderSummary.model_validate(uploader) if uploader is not None else None,
            created_at=getattr(document, "created_at", None),
        )
