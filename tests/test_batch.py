import pytest
from unittest.mock import MagicMock, patch
from memrag.embeddings.batch import BatchEmbedder, DEFAULT_BATCH_SIZE, DEFAULT_DELAY
from memrag.embeddings.chunker import Chunk
from memrag.embeddings.client import EmbeddingClient
from memrag.errors import EmbeddingProviderError


def fake_embed(texts, model):
    return [[float(len(t)), 1.0] for t in texts]


@pytest.fixture(name="client")
def client_fixture():
    client = MagicMock(spec=EmbeddingClient)
    client.embed_batch.side_effect = fake_embed
    return client


def test_batches_in_order_and_sleeps_between(client):
    chunks = [Chunk(text="x" * (i + 1), index=i, start=0, end=i + 1) for i in range(5)]
    embedder = BatchEmbedder(client, batch_size=2, delay=0.5)

    with patch("memrag.embeddings.batch.time.sleep") as mock_sleep:
        vectors = embedder.embed_all(chunks, "voyage-3.5")

    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert client.embed_batch.call_count == 3
    assert [c.args[0] for c in client.embed_batch.call_args_list] == [["x", "xx"], ["xxx", "xxxx"], ["xxxxx"]]
    # no pause after the final batch
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(0.5)


def test_plain_strings_accepted(client):
    with patch("memrag.embeddings.batch.time.sleep"):
        vectors = BatchEmbedder(client, batch_size=10).embed_all(["a", "bb"], "m")
    assert vectors == [[1.0, 1.0], [2.0, 1.0]]


def test_failing_batch_aborts_everything(client):
    client.embed_batch.side_effect = [
        [[1.0], [1.0]],
        EmbeddingProviderError("boom", status_code=500),
    ]
    embedder = BatchEmbedder(client, batch_size=2, delay=0.1)

    with patch("memrag.embeddings.batch.time.sleep") as mock_sleep:
        with pytest.raises(EmbeddingProviderError) as exc:
            embedder.embed_all(["a", "b", "c", "d", "e"], "m")

    assert "batch starting at 2" in str(exc.value)
    assert exc.value.status_code == 500
    assert client.embed_batch.call_count == 2
    assert mock_sleep.call_count == 1


def test_empty_input_makes_no_calls(client):
    assert BatchEmbedder(client).embed_all([], "m") == []
    client.embed_batch.assert_not_called()


def test_non_positive_settings_fall_back():
    embedder = BatchEmbedder(MagicMock(spec=EmbeddingClient), batch_size=0, delay=-1)
    assert embedder.batch_size == DEFAULT_BATCH_SIZE
    assert embedder.delay == DEFAULT_DELAY

    defaults = BatchEmbedder(MagicMock(spec=EmbeddingClient))
    assert (defaults.batch_size, defaults.delay) == (50, 0.2)
