"""MediaWiki Action API client built on requests."""

from datetime import datetime, timezone
from typing import Any, Iterator

import requests
import structlog
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from mwsync import __version__
from mwsync.errors import AuthError, WikiAPIError
from mwsync.models.config import WikiConfig
from mwsync.models.revision import ChangeRecord, RevisionMeta
from mwsync.utils.retry import exponential_backoff_retry
from mwsync.wiki.base import WikiClient

log = structlog.stdlib.get_logger()

API_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# API error codes that mean the session is not (or no longer) authenticated.
AUTH_ERROR_CODES = frozenset(
    {"notloggedin", "assertuserfailed", "assertbotfailed", "permissiondenied", "readapidenied"}
)

_TRANSPORT_ERRORS = (HTTPError, Timeout, ConnectionError)


def format_api_timestamp(value: datetime) -> str:
    """Render a datetime in the UTC form the API expects."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(API_TIMESTAMP_FORMAT)


def parse_api_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class MediaWikiClient(WikiClient):
    """Wrapper around the MediaWiki Action API (``api.php``)."""

    def __init__(
        self,
        api_url: str,
        feed: str = "watchlist",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """
        Initialize MediaWiki client.

        Args:
            api_url: Full URL of the wiki's api.php
            feed: Change feed for ``list_changes``: "watchlist" or "recentchanges"
            timeout: Timeout in seconds applied to every HTTP request
            session: Optional pre-built requests session
        """
        if feed not in ("watchlist", "recentchanges"):
            raise ValueError(f"Unsupported change feed: {feed}")

        self._api_url = api_url
        self._feed = feed
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", f"mwsync/{__version__}")
        log.info("mediawiki_client_initialized", api_url=api_url, feed=feed)

    @classmethod
    def from_config(cls, config: WikiConfig, timeout: float = 30.0) -> "MediaWikiClient":
        return cls(api_url=config.api_url, feed=config.feed, timeout=timeout)

    @property
    def api_url(self) -> str:
        return self._api_url

    def login(self, username: str, password: str) -> None:
        """
        Log in with a bot password or account credentials.

        Raises:
            AuthError: If the wiki rejects the credentials or cannot be reached
        """
        log.info("logging_in", api_url=self._api_url, username=username)

        try:
            token_data = self._get({"action": "query", "meta": "tokens", "type": "login"})
            login_token = token_data["query"]["tokens"]["logintoken"]

            data = self._post(
                {
                    "action": "login",
                    "lgname": username,
                    "lgpassword": password,
                    "lgtoken": login_token,
                }
            )
        except (WikiAPIError, RequestException, KeyError) as e:
            log.error("login_failed", api_url=self._api_url, username=username, error=str(e))
            raise AuthError(f"Login to {self._api_url} failed: {e}") from e

        result = data.get("login", {})
        if result.get("result") != "Success":
            reason = result.get("reason") or result.get("result") or "unknown"
            log.error("login_rejected", api_url=self._api_url, username=username, reason=reason)
            raise AuthError(f"Login to {self._api_url} rejected: {reason}")

        log.info("logged_in", api_url=self._api_url, username=result.get("lgusername", username))

    def list_changes(
        self,
        since: datetime,
        include_automated: bool = True,
        until: datetime | None = None,
    ) -> list[ChangeRecord]:
        """
        List revisions from the configured feed, oldest first.

        Args:
            since: Earliest revision timestamp to include
            include_automated: If False, bot edits are filtered server-side
            until: Latest revision timestamp to include (now if None)

        Returns:
            Change records in the order the API returned them

        Raises:
            WikiAPIError: If any page of results cannot be fetched
        """
        log.info(
            "listing_changes",
            feed=self._feed,
            since=since,
            until=until,
            include_automated=include_automated,
        )

        prefix = "wl" if self._feed == "watchlist" else "rc"
        params: dict[str, Any] = {
            "action": "query",
            "list": self._feed,
            f"{prefix}start": format_api_timestamp(since),
            f"{prefix}dir": "newer",
            f"{prefix}prop": "ids|title|user|comment|timestamp|flags",
            f"{prefix}limit": "max",
        }
        if until is not None:
            params[f"{prefix}end"] = format_api_timestamp(until)
        if not include_automated:
            params[f"{prefix}show"] = "!bot"
        # Log and categorization entries are not page edits.
        params[f"{prefix}type"] = "edit|new"

        records: list[ChangeRecord] = []
        for entry in self._query_continued(params, self._feed):
            title = entry.get("title")
            timestamp = entry.get("timestamp")
            if not title or not timestamp:
                continue
            records.append(
                ChangeRecord(
                    title=title,
                    revid=entry.get("revid", 0),
                    author=entry.get("user", ""),
                    summary=entry.get("comment", ""),
                    timestamp=parse_api_timestamp(timestamp),
                    automated=bool(entry.get("bot", False)),
                )
            )

        log.info("changes_listed", feed=self._feed, record_count=len(records))
        return records

    def get_page_text(self, title: str) -> str:
        """
        Get the current wikitext of a page.

        Raises:
            WikiAPIError: If the page does not exist or the request fails
        """
        log.debug("fetching_page_text", title=title)

        revision = self._top_revision_entry(title, "content")
        try:
            return revision["slots"]["main"]["content"]
        except KeyError as e:
            raise WikiAPIError(f"No content returned for page {title!r}") from e

    def get_top_revision(self, title: str) -> RevisionMeta:
        """
        Get metadata of the current revision of a page.

        Raises:
            WikiAPIError: If the page does not exist or the request fails
        """
        log.debug("fetching_top_revision", title=title)

        revision = self._top_revision_entry(title, "ids|user|comment|timestamp")
        timestamp = revision.get("timestamp")
        return RevisionMeta(
            revid=revision.get("revid", 0),
            author=revision.get("user", ""),
            summary=revision.get("comment", ""),
            timestamp=parse_api_timestamp(timestamp) if timestamp else None,
        )

    def write_page(self, title: str, text: str, summary: str, minor: bool = False) -> None:
        """
        Create or overwrite a page. Edits are not retried.

        Raises:
            AuthError: If the session is not logged in
            WikiAPIError: If the edit is rejected
        """
        log.debug("writing_page", title=title, minor=minor, text_length=len(text))

        token_data = self._get({"action": "query", "meta": "tokens", "type": "csrf"})
        try:
            csrf_token = token_data["query"]["tokens"]["csrftoken"]
        except KeyError as e:
            raise WikiAPIError("No CSRF token returned") from e

        params: dict[str, Any] = {
            "action": "edit",
            "title": title,
            "text": text,
            "summary": summary,
            "token": csrf_token,
            "assert": "user",
        }
        params["minor" if minor else "notminor"] = "1"

        data = self._post(params)
        edit = data.get("edit", {})
        if edit.get("result") != "Success":
            raise WikiAPIError(
                f"Edit of {title!r} was not accepted: {edit.get('result', 'no result')}"
            )

        log.info(
            "page_written",
            title=title,
            new_revid=edit.get("newrevid"),
            nochange=bool(edit.get("nochange", False)),
        )

    def _top_revision_entry(self, title: str, rvprop: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "action": "query",
            "prop": "revisions",
            "titles": title,
            "rvprop": rvprop,
            "rvslots": "main",
            "rvlimit": 1,
        }
        data = self._get(params)

        pages = data.get("query", {}).get("pages", [])
        if not pages:
            raise WikiAPIError(f"No page returned for {title!r}")
        page = pages[0]
        if page.get("missing") or page.get("invalid"):
            raise WikiAPIError(f"Page {title!r} does not exist", code="missingtitle")

        revisions = page.get("revisions") or []
        if not revisions:
            raise WikiAPIError(f"Page {title!r} has no revisions")
        return revisions[0]

    def _query_continued(self, params: dict[str, Any], list_name: str) -> Iterator[dict[str, Any]]:
        """Yield list entries across API continuation pages."""
        request_params = dict(params)
        while True:
            data = self._get(request_params)
            yield from data.get("query", {}).get(list_name, [])

            continuation = data.get("continue")
            if not continuation:
                break
            request_params = {**params, **continuation}

    @exponential_backoff_retry(
        max_retries=3,
        base_delay=1.0,
        max_delay=60.0,
        exceptions=_TRANSPORT_ERRORS,
    )
    def _get(self, params: dict[str, Any]) -> dict[str, Any]:
        response = self._session.get(
            self._api_url, params=self._with_format(params), timeout=self._timeout
        )
        return self._decode(response)

    def _post(self, params: dict[str, Any]) -> dict[str, Any]:
        response = self._session.post(
            self._api_url, data=self._with_format(params), timeout=self._timeout
        )
        return self._decode(response)

    @staticmethod
    def _with_format(params: dict[str, Any]) -> dict[str, Any]:
        return {**params, "format": "json", "formatversion": "2"}

    def _decode(self, response: requests.Response) -> dict[str, Any]:
        """Check HTTP status and API error payload, returning the JSON body."""
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise WikiAPIError(f"Malformed response from {self._api_url}: {e}") from e

        error = data.get("error")
        if error:
            code = error.get("code", "unknown")
            info = error.get("info", "")
            if code in AUTH_ERROR_CODES:
                raise AuthError(f"{code}: {info}")
            raise WikiAPIError(f"{code}: {info}", code=code)
        return data
