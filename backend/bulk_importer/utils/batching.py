"""Helper functions for chunking iterables."""
from collections.abc import Iterable, Iterator, Sequence
from itertools import islice
from typing import TypeVar

T = TypeVar("T")


def chunked(iterable: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield successive chunks to optimize DB writes and Celery progress."""
    if size < 1:
        raise ValueError("Chunk size must be a positive integer")
    iterator = iter(iterable)
    while batch := list(islice(iterator, size)):
        yield batch


def chunk_offsets(rows: Sequence[T], size: int) -> Iterator[tuple[int, list[T]]]:
    """Yield ``(start_index, chunk)`` pairs so callers can report global row numbers."""
    for chunk_index, batch in enumerate(chunked(rows, size)):
        yield chunk_index * size, batch
