"""Content transformation applied between fetching and writing a page."""

from mwsync.transforms.base import FunctionTransformer, RegexReplaceTransformer, Transformer
from mwsync.transforms.pipeline import TransformPipeline

__all__ = [
    "FunctionTransformer",
    "RegexReplaceTransformer",
    "Transformer",
    "TransformPipeline",
]
