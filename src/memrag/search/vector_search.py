import numpy as np
from typing import Dict, Iterable, List
from memrag.models.vector import Embedding
from memrag.logging import logger

def cosine_similarity(v1: np.ndarray, v2: np.ndarray) -> float:
    return float(np.dot(v1, v2) / (np.linalg.norm(v1) * np.linalg.norm(v2)))

def batch_cosine_similarity(query_vec: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Compute cosine similarity between query_vec and all rows in matrix.
    query_vec: (d,)
    matrix: (n, d)
    Returns: (n,) scores, i.e. 1 - cosine distance
    """
    norm_q = np.linalg.norm(query_vec)
    norm_m = np.linalg.norm(matrix, axis=1)

    # Avoid div by zero
    norm_product = norm_q * norm_m
    norm_product[norm_product == 0] = 1e-9

    dot_products = np.dot(matrix, query_vec)
    return dot_products / norm_product

def best_chunk_scores(query_embedding: List[float], embeddings: Iterable[Embedding]) -> Dict[int, float]:
    """
    Score every memory by its best-matching chunk.

    Embeddings whose dimension differs from the query (e.g. left over from
    another model) are skipped.
    """
    query_vec = np.array(query_embedding, dtype=np.float32)

    matrix_list = []
    owners = []
    skipped = 0
    for emb in embeddings:
        vec = emb.get_vector()
        if vec.shape[0] == query_vec.shape[0]:
            matrix_list.append(vec)
            owners.append(emb.memory_id)
        else:
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} embeddings with mismatched dimension (query dims={query_vec.shape[0]})")
    if not matrix_list:
        return {}

    scores = batch_cosine_similarity(query_vec, np.array(matrix_list))

    best: Dict[int, float] = {}
    for memory_id, score in zip(owners, scores):
        score = float(score)
        if memory_id not in best or score > best[memory_id]:
            best[memory_id] = score
    return best
