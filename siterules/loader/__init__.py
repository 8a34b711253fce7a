"""
On-demand loading of catalog partitions.
"""

from siterules.loader.chunk_loader import ChunkLoader, ChunkState, MergeCallback

__all__ = [
    "ChunkLoader",
    "ChunkState",
    "MergeCallback",
]
