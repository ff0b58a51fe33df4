"""Wiki collaborators: the abstract client contract and the MediaWiki implementation"""

from mwsync.wiki.base import WikiClient
from mwsync.wiki.mediawiki_client import MediaWikiClient

__all__ = ["MediaWikiClient", "WikiClient"]
