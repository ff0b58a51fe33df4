"""Transformer units applied to page text on its way to the target wiki."""

import re
from abc import ABC, abstractmethod
from typing import Callable, Iterable

import structlog

from mwsync.models.config import RegexRewriteConfig
from mwsync.models.revision import TransformContext
from mwsync.wiki.base import WikiClient

log = structlog.stdlib.get_logger()

RewriteFunction = Callable[[str, str, WikiClient, WikiClient], str]


class Transformer(ABC):
    """A single step in a transform pipeline.

    Implementations receive the text produced by the previous step and
    return the (possibly) modified text. Raising is allowed; the pipeline
    then carries the incoming text forward unchanged.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def process(self, text: str, context: TransformContext) -> str:
        """Return the transformed text.

        Args:
            text: Text produced by the previous step
            context: Page title plus the source and target clients
        """
        pass


class FunctionTransformer(Transformer):
    """Adapts a plain ``(text, title, source, target) -> text`` callable."""

    def __init__(self, func: RewriteFunction, name: str | None = None):
        self._func = func
        self._name = name or getattr(func, "__name__", "function")

    @property
    def name(self) -> str:
        return self._name

    def process(self, text: str, context: TransformContext) -> str:
        return self._func(text, context.title, context.source, context.target)


class RegexReplaceTransformer(Transformer):
    """Applies an ordered list of regex substitutions."""

    def __init__(self, rewrites: Iterable[tuple[str, str]]):
        self._rewrites = [(re.compile(pattern), replacement) for pattern, replacement in rewrites]

    @classmethod
    def from_config(cls, rewrites: Iterable[RegexRewriteConfig]) -> "RegexReplaceTransformer":
        return cls((rewrite.pattern, rewrite.replacement) for rewrite in rewrites)

    def process(self, text: str, context: TransformContext) -> str:
        for pattern, replacement in self._rewrites:
            text, count = pattern.subn(replacement, text)
            if count:
                log.debug(
                    "regex_rewrite_applied",
                    title=context.title,
                    pattern=pattern.pattern,
                    replacements=count,
                )
        return text
