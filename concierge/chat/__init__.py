from .chunks import Chunk, DoneChunk, TextChunk, ToolChunk
from .pipeline import ChatProvider, ChatStreamingPipeline, PreparedChat

__all__ = [
    "ChatProvider",
    "ChatStreamingPipeline",
    "Chunk",
    "DoneChunk",
    "PreparedChat",
    "TextChunk",
    "ToolChunk",
]
