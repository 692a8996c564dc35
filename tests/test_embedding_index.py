import pytest
from unittest.mock import MagicMock

from lifeinbox.core import config
from lifeinbox.core.schema import MatchType
from lifeinbox.vector.embeddings import DeterministicHashEmbedding, EmbeddingUnavailable
from lifeinbox.vector.index import EmbeddingIndex

from helpers import make_record


class FlakyEmbedding(DeterministicHashEmbedding):
    """Fails on any text mentioning "bad"."""

    def embed_text(self, text):
        if "bad" in text:
            raise RuntimeError("boom")
        return super().embed_text(text)


class MiniLMStandIn(DeterministicHashEmbedding):
    """Same dimension as the hash provider, different model."""

    @property
    def model_id(self):
        return "sentence_transformers:all-MiniLM-L6-v2"


class TestSimilarity:

    def test_identical_vectors_score_one(self, index):
        vector = index.embed("dentist appointment on friday")
        assert EmbeddingIndex.similarity(vector, vector) == pytest.approx(1.0)

    def test_garbage_of_same_length_scores_below_one(self, index):
        vector = index.embed("dentist appointment on friday")
        garbage = index.embed("qzx vvkp ttrw mmmm oo")
        assert EmbeddingIndex.similarity(vector, garbage) < 1.0

    def test_zero_vector_scores_zero(self):
        assert EmbeddingIndex.similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0

    def test_opposite_vectors(self):
        assert EmbeddingIndex.similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_dimension_mismatch_raises(self):
        with pytest.raises(ValueError, match="same dimensions"):
            EmbeddingIndex.similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestEmbed:

    def test_constant_dimension(self, index):
        assert len(index.embed("a")) == len(index.embed("a much longer piece of text")) == 256

    def test_same_text_same_direction(self, index):
        text = "electricity bill due December 1st"
        assert EmbeddingIndex.similarity(index.embed(text), index.embed(text)) == pytest.approx(1.0)

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text_unavailable(self, index, text):
        with pytest.raises(EmbeddingUnavailable):
            index.embed(text)

    def test_no_provider_unavailable(self, store):
        with pytest.raises(EmbeddingUnavailable, match="No embedding model"):
            EmbeddingIndex(store, None).embed("hello")

    def test_provider_error_wrapped(self, store):
        provider = MagicMock()
        provider.get_dimension.return_value = 4
        provider.embed_text.side_effect = RuntimeError("backend down")

        with pytest.raises(EmbeddingUnavailable, match="backend down"):
            EmbeddingIndex(store, provider).embed("hello")

    def test_wrong_dimension_from_provider(self, store):
        provider = MagicMock()
        provider.get_dimension.return_value = 4
        provider.embed_text.return_value = [0.1, 0.2]

        with pytest.raises(EmbeddingUnavailable, match="dimension"):
            EmbeddingIndex(store, provider).embed("hello")


class TestSearch:

    def test_finds_indexed_record(self, store, index):
        bill = store.add_record("u1", "electricity bill due December 1st", category="Finance")
        store.add_record("u1", "walk the dog after lunch", category="Personal")
        index.backfill()

        candidates = index.search("u1", "electricity bill", min_similarity=0.3)

        assert candidates[0].record.id == bill.id
        assert candidates[0].strategy == MatchType.SEMANTIC
        assert 0.0 <= candidates[0].score <= 1.0

    def test_other_users_records_excluded(self, store, index):
        store.add_record("u2", "electricity bill due December 1st")
        index.backfill()

        assert index.search("u1", "electricity bill", min_similarity=0.0) == []

    def test_unindexed_records_excluded(self, store, index):
        store.add_record("u1", "electricity bill due December 1st")
        assert index.search("u1", "electricity bill", min_similarity=0.0) == []

    def test_other_model_version_never_compared(self, store, provider):
        store.add_record("u1", "electricity bill due December 1st")
        EmbeddingIndex(store, provider, model_version="old-model").backfill()

        current = EmbeddingIndex(store, provider, model_version="new-model")
        assert current.search("u1", "electricity bill", min_similarity=0.0) == []

    def test_below_threshold_dropped(self, store, index):
        store.add_record("u1", "walk the dog after lunch")
        index.backfill()

        assert index.search("u1", "quarterly tax return", min_similarity=0.9) == []

    def test_unavailable_propagates(self, store):
        with pytest.raises(EmbeddingUnavailable):
            EmbeddingIndex(store, None).search("u1", "anything")


class TestReindex:

    def test_reindex_batch_embeds_missing(self, store, index):
        for i in range(3):
            store.add_record("u1", f"note number {i}")

        report = index.reindex_batch(batch_size=2)

        assert report.scanned == 2
        assert report.embedded == 2
        assert index.coverage()["records_with_vectors"] == 2

    def test_reindex_is_idempotent(self, store, index):
        store.add_record("u1", "note")
        index.reindex_batch()

        report = index.reindex_batch()
        assert report.scanned == 0

    def test_stale_model_version_counts_as_missing(self, store, provider):
        store.add_record("u1", "note")
        EmbeddingIndex(store, provider, model_version="v1").backfill()

        report = EmbeddingIndex(store, provider, model_version="v2").reindex_batch()
        assert report.embedded == 1

    def test_failures_are_reported_and_skipped_by_backfill(self, store):
        store.add_record("u1", "good note")
        store.add_record("u1", "bad note")

        index = EmbeddingIndex(store, FlakyEmbedding(dimension=16), model_version="v1")

        report = index.backfill(batch_size=1)

        assert report.embedded == 1
        assert report.failed == 1
        assert len(report.failed_ids) == 1
        assert store.get_record(report.failed_ids[0]).raw_text == "bad note"

    def test_no_provider_reindexes_nothing(self, store):
        store.add_record("u1", "note")
        report = EmbeddingIndex(store, None).reindex_batch()
        assert report.to_dict() == {"scanned": 0, "embedded": 0, "failed": 0, "failed_ids": []}

    def test_summary_preferred_for_vector_text(self, index):
        assert index.text_for(make_record("a", raw_text="raw", summary="summary")) == "summary"
        assert index.text_for(make_record("b", raw_text="raw")) == "raw"

    def test_coverage_reports_model_version(self, store, index):
        store.add_record("u1", "note")
        index.backfill()

        coverage = index.coverage()
        assert coverage["model_version"] == "hash-test"
        assert coverage["vector_coverage"] == pytest.approx(100.0)


class TestModelVersion:

    @pytest.fixture(autouse=True)
    def no_pinned_version(self, monkeypatch):
        monkeypatch.setattr(config, "EMBEDDING_MODEL_VERSION", None)

    def test_default_version_comes_from_provider(self, store):
        assert EmbeddingIndex(store, DeterministicHashEmbedding(384)).model_version == "hash:384"
        assert EmbeddingIndex(store, MiniLMStandIn(384)).model_version == "sentence_transformers:all-MiniLM-L6-v2"

    def test_pinned_version_wins(self, store, monkeypatch):
        monkeypatch.setattr(config, "EMBEDDING_MODEL_VERSION", "prod-2025-03")
        assert EmbeddingIndex(store, DeterministicHashEmbedding(384)).model_version == "prod-2025-03"

    def test_switching_provider_reembeds_same_dimension_vectors(self, store):
        store.add_record("u1", "electricity bill due December 1st")
        EmbeddingIndex(store, DeterministicHashEmbedding(384)).backfill()

        switched = EmbeddingIndex(store, MiniLMStandIn(384))
        assert switched.search("u1", "electricity bill", min_similarity=0.0) == []

        report = switched.reindex_batch(10)
        assert report.scanned == 1
        assert report.embedded == 1
        assert switched.coverage()["records_with_vectors"] == 1
