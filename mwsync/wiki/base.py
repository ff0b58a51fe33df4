"""Abstract interface for the wiki collaborators used by a sync."""

from abc import ABC, abstractmethod
from datetime import datetime

from mwsync.models.revision import ChangeRecord, RevisionMeta


class WikiClient(ABC):
    """Contract that source and target wiki clients must follow.

    A source needs ``list_changes``, ``get_page_text`` and ``get_top_revision``;
    a target needs ``write_page``. Both need ``login``.
    """

    @abstractmethod
    def login(self, username: str, password: str) -> None:
        """Authenticate against the wiki.

        Raises:
            AuthError: If the credentials are rejected
        """
        pass

    @abstractmethod
    def list_changes(
        self,
        since: datetime,
        include_automated: bool = True,
        until: datetime | None = None,
    ) -> list[ChangeRecord]:
        """List revisions made between ``since`` and ``until`` (now if None).

        Raises:
            WikiAPIError: If the change feed cannot be read
        """
        pass

    @abstractmethod
    def get_page_text(self, title: str) -> str:
        """Return the current wikitext of a page.

        Raises:
            WikiAPIError: If the page is missing or the request fails
        """
        pass

    @abstractmethod
    def get_top_revision(self, title: str) -> RevisionMeta:
        """Return metadata for the current revision of a page.

        Raises:
            WikiAPIError: If the page is missing or the request fails
        """
        pass

    @abstractmethod
    def write_page(self, title: str, text: str, summary: str, minor: bool = False) -> None:
        """Create or overwrite a page.

        Raises:
            WikiAPIError: If the edit is rejected
            AuthError: If the session is no longer authenticated
        """
        pass
