"""Ordered chain of transformers with per-unit failure isolation."""

from typing import Iterable

import structlog

from mwsync.models.revision import TransformContext
from mwsync.transforms.base import FunctionTransformer, RewriteFunction, Transformer

log = structlog.stdlib.get_logger()


class TransformPipeline:
    """Runs registered transformers in registration order.

    Each transformer sees the output of the one before it. A transformer that
    raises, or returns something other than a string, is skipped: the text it
    was given is passed on unchanged to the next step.
    """

    def __init__(self, transformers: Iterable[Transformer] = ()):
        self._transformers: list[Transformer] = []
        for transformer in transformers:
            self.register(transformer)

    def register(self, transformer: Transformer | RewriteFunction) -> "TransformPipeline":
        """Append a transformer. Plain callables are wrapped in FunctionTransformer."""
        if not isinstance(transformer, Transformer):
            if not callable(transformer):
                raise TypeError(f"Not a transformer: {transformer!r}")
            transformer = FunctionTransformer(transformer)

        self._transformers.append(transformer)
        log.info(
            "transformer_registered",
            transformer=transformer.name,
            position=len(self._transformers) - 1,
        )
        return self

    @property
    def transformers(self) -> tuple[Transformer, ...]:
        return tuple(self._transformers)

    def __len__(self) -> int:
        return len(self._transformers)

    def apply(self, text: str, context: TransformContext) -> str:
        """Run the text through every transformer and return the result."""
        for position, transformer in enumerate(self._transformers):
            try:
                result = transformer.process(text, context)
            except Exception as e:
                log.warning(
                    "transformer_failed",
                    transformer=transformer.name,
                    position=position,
                    title=context.title,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if not isinstance(result, str):
                log.warning(
                    "transformer_returned_non_text",
                    transformer=transformer.name,
                    position=position,
                    title=context.title,
                    result_type=type(result).__name__,
                )
                continue

            text = result

        return text
