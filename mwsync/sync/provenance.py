"""Provenance tags written into the target wiki's edit summaries.

Every synced edit carries a summary of the form::

    {[SYNC | user = alice | revid = 42 | summary = fix typo]}

Field order and delimiters are fixed so the original author and revision
can be recovered from the target's history with ``parse_provenance``.
"""

import re

from pydantic import BaseModel

SYNC_SUMMARY_FMT = "{{[SYNC | user = {author} | revid = {revid} | summary = {summary}]}}"

_PROVENANCE_RE = re.compile(
    r"\{\[SYNC \| user = (?P<author>.*?) \| revid = (?P<revid>[^|]*?) \| summary = (?P<summary>.*)\]\}",
    re.DOTALL,
)


class ProvenanceRecord(BaseModel):
    """Authorship recovered from a provenance tag."""

    author: str
    revid: str
    summary: str


def format_provenance(author: str, revid: int | str, summary: str) -> str:
    """Build the edit summary recording where a synced revision came from."""
    return SYNC_SUMMARY_FMT.format(author=author, revid=revid, summary=summary)


def parse_provenance(text: str) -> ProvenanceRecord | None:
    """Recover author, revision id and summary from an edit summary, if tagged."""
    match = _PROVENANCE_RE.search(text)
    if match is None:
        return None
    return ProvenanceRecord(**match.groupdict())
