"""Embedding blob codec for the memory_embeddings table.

Vectors are stored as packed little-endian float32. Nothing here computes
embeddings or compares them; callers supply the vectors.
"""

import struct
from typing import List, Sequence


def pack_embedding(vector: Sequence[float]) -> bytes:
    """Serialize a vector to bytes."""
    if not vector:
        raise ValueError("Cannot store an empty embedding")
    return struct.pack(f"<{len(vector)}f", *vector)


def unpack_embedding(data: bytes) -> List[float]:
    """Deserialize a vector stored by pack_embedding."""
    if len(data) % 4:
        raise ValueError(f"Embedding blob length {len(data)} is not a multiple of 4")
    count = len(data) // 4  # 4 bytes per float
    return list(struct.unpack(f"<{count}f", data))
