"""Unit tests for moderator review of similarity records."""
import uuid
from types import SimpleNamespace

import pytest

from conftest import make_document, make_file
from similarity_service.core.exceptions import ConflictError, NotFoundError
from similarity_service.services.moderation import SimilarityModerationService


@pytest.fixture
def service(fake_repository, fake_extractor):
    return SimilarityModerationService(fake_repository, fake_extractor)


async def _seed(repository, session, scores):
    source = make_document("Source", files=[make_file("S")])
    targets = [
        make_document(
            f"Target {i}",
            uploader=SimpleNamespace(id=uuid.uuid4(), username=f"user{i}", first_name=None, last_name=None),
            category=SimpleNamespace(id=uuid.uuid4(), name="Reports"),
        )
        for i in range(len(scores))
    ]
    repository.add(source, *targets)
    await repository.replace_similarity_records(
        session,
        source.id,
        [
            {"target_document_id": t.id, "similarity_score": s, "similarity_type": "text"}
            for t, s in zip(targets, scores)
        ],
    )
    return source, targets


@pytest.mark.unit
class TestPendingSimilarity:

    @pytest.mark.asyncio
    async def test_lists_unprocessed_by_score(self, service, fake_repository, mock_postgres_session):
        source, targets = await _seed(fake_repository, mock_postgres_session, [0.86, 0.97, 0.9])

        pending = await service.list_pending_similarity(mock_postgres_session, source.id)

        assert [p.similarity_score for p in pending] == [0.97, 0.9, 0.86]
        assert pending[0].target_document.id == targets[1].id
        assert pending[0].target_document.uploader.username == "user1"
        assert pending[0].target_document.category.name == "Reports"

    @pytest.mark.asyncio
    async def test_processed_records_are_hidden(self, service, fake_repository, mock_postgres_session):
        source, _ = await _seed(fake_repository, mock_postgres_session, [0.9, 0.95])
        decided = fake_repository.records_for(source.id)[0]

        await service.record_decision(mock_postgres_session, decided.id, uuid.uuid4(), True)
        pending = await service.list_pending_similarity(mock_postgres_session, source.id)

        assert [p.id for p in pending] == [r.id for r in fake_repository.records_for(source.id)[1:]]


@pytest.mark.unit
class TestRecordDecision:

    @pytest.mark.asyncio
    async def test_decision_is_recorded(self, service, fake_repository, mock_postgres_session):
        source, _ = await _seed(fake_repository, mock_postgres_session, [0.9])
        record = fake_repository.records_for(source.id)[0]
        reviewer = uuid.uuid4()

        updated = await service.record_decision(
            mock_postgres_session, record.id, reviewer, is_duplicate=True, notes="same report"
        )

        assert updated.is_processed is True
        assert updated.is_duplicate is True
        assert updated.admin_notes == "same report"
        assert updated.processed_by_id == reviewer
        assert updated.processed_at is not None

    @pytest.mark.asyncio
    async def test_decision_cannot_be_changed(self, service, fake_repository, mock_postgres_session):
        source, _ = await _seed(fake_repository, mock_postgres_session, [0.9])
        record = fake_repository.records_for(source.id)[0]
        await service.record_decision(mock_postgres_session, record.id, uuid.uuid4(), is_duplicate=False)

        with pytest.raises(ConflictError):
            await service.record_decision(mock_postgres_session, record.id, uuid.uuid4(), is_duplicate=True)
        assert record.is_duplicate is False

    @pytest.mark.asyncio
    async def test_unknown_record(self, service, mock_postgres_session):
        with pytest.raises(NotFoundError):
            await service.record_decision(mock_postgres_session, uuid.uuid4(), uuid.uuid4(), True)

    def test_no_revert_operation(self, service):
        assert not any("unprocess" in name or "revert" in name for name in dir(service))


@pytest.mark.unit
class TestExplainSimilarity:

    @pytest.mark.asyncio
    async def test_explains_text_match(self, service, fake_repository, fake_extractor, mock_postgres_session):
        source = make_document("Source", files=[make_file("S")])
        target = make_document("Target", files=[make_file("T")])
        fake_repository.add(source, target)
        fake_extractor.set_text(source, "annual budget summary for the marketing team")
        fake_extractor.set_text(target, "annual budget summary for the marketing team")
        await fake_repository.replace_similarity_records(
            mock_postgres_session, source.id,
            [{"target_document_id": target.id, "similarity_score": 1.0, "similarity_type": "text"}],
        )
        record = fake_repository.records_for(source.id)[0]

        detail = await service.explain_similarity(mock_postgres_session, record.id)

        assert detail.dominant_type == "text"
        assert detail.final_score == pytest.approx(1.0)
        assert detail.breakdown.hash_similarity == 0.0
        assert "similar text content" in detail.explanation
        assert detail.similar_segments

    @pytest.mark.asyncio
    async def test_unknown_record(self, service, mock_postgres_session):
        with pytest.raises(NotFoundError):
            await service.explain_similarity(mock_postgres_session, uuid.uuid4())
