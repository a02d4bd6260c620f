from __future__ import annotations

import logging
import ssl
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Sequence

from ldap3 import (
    ALL_ATTRIBUTES,
    ANONYMOUS,
    NONE,
    NTLM,
    ROUND_ROBIN,
    SIMPLE,
    SUBTREE,
    Connection,
    Server,
    ServerPool,
    Tls,
)
from ldap3.core.exceptions import LDAPCommunicationError, LDAPException, LDAPOperationResult

from ..settings import GroupProviderSettings
from .models import DirectoryEntry, SearchResult, SearchStatus

logger = logging.getLogger(__name__)

# LDAP result codes (RFC 4511 plus the LDAPv2 partialResults code AD still sends).
RC_SUCCESS = 0
RC_TIME_LIMIT_EXCEEDED = 3
RC_SIZE_LIMIT_EXCEEDED = 4
RC_PARTIAL_RESULTS = 9
RC_REFERRAL = 10
RC_ADMIN_LIMIT_EXCEEDED = 11
RC_NO_SUCH_OBJECT = 32
RC_BUSY = 51
RC_UNAVAILABLE = 52

_TRANSIENT_CODES = {RC_TIME_LIMIT_EXCEEDED, RC_BUSY, RC_UNAVAILABLE}
_SIZE_CODES = {RC_SIZE_LIMIT_EXCEEDED, RC_ADMIN_LIMIT_EXCEEDED}
_PARTIAL_CODES = {RC_PARTIAL_RESULTS, RC_REFERRAL}

_AUTH_MODES = {"simple": SIMPLE, "anonymous": ANONYMOUS, "ntlm": NTLM}


class DirectoryBindError(LDAPException):
    """Bind with the configured service credentials was refused."""

    def __init__(self, result: int | None, description: str = "") -> None:
        super().__init__(f"bind failed: {description or result}")
        self.result = result
        self.description = description


def classify_result_code(code: Optional[int]) -> SearchStatus:
    if code in (None, RC_SUCCESS, RC_NO_SUCH_OBJECT):
        return SearchStatus.OK
    if code in _TRANSIENT_CODES:
        return SearchStatus.TRANSIENT
    if code in _SIZE_CODES:
        return SearchStatus.SIZE_LIMITED
    if code in _PARTIAL_CODES:
        return SearchStatus.PARTIAL
    return SearchStatus.FATAL


def classify_exception(e: BaseException) -> SearchStatus:
    if isinstance(e, LDAPCommunicationError):
        return SearchStatus.TRANSIENT
    if isinstance(e, (LDAPOperationResult, DirectoryBindError)):
        return classify_result_code(getattr(e, "result", None))
    return SearchStatus.FATAL


def _normalize_value(v: Any) -> str:
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).decode("utf-8", errors="replace")
    if isinstance(v, datetime):
        return v.isoformat()
    return str(v)


def entry_from_response(item: dict) -> DirectoryEntry:
    """Build a DirectoryEntry from one ldap3 response item (searchResEntry)."""
    attrs: dict[str, list[str]] = {}
    for name, value in (item.get("attributes") or {}).items():
        vals = value if isinstance(value, (list, tuple)) else [value]
        norm = [_normalize_value(x) for x in vals if x is not None and x != ""]
        if norm:
            attrs[name] = norm
    return DirectoryEntry(dn=str(item.get("dn") or ""), attributes=attrs)


class DirectoryConnector:
    """Opens directory sessions and runs classified searches.

    A connection is acquired per logical operation and always unbound on the
    way out; handles are never cached on the instance.
    """

    def __init__(
        self,
        cfg: GroupProviderSettings,
        connection_factory: Callable[[], Connection] | None = None,
    ) -> None:
        self.cfg = cfg
        self._connection_factory = connection_factory
        self.server = self._build_server() if connection_factory is None else None

    def _build_tls(self) -> Tls:
        tls_kwargs: dict[str, Any] = {
            "validate": ssl.CERT_REQUIRED if self.cfg.tls_validate else ssl.CERT_NONE,
        }
        # Custom CA only matters when verification is on.
        if self.cfg.tls_validate and self.cfg.ca_certs_file:
            tls_kwargs["ca_certs_file"] = self.cfg.ca_certs_file
        return Tls(**tls_kwargs)

    def _build_server(self) -> Server | ServerPool:
        tls = self._build_tls()
        servers = [
            Server(
                u,
                use_ssl=u.lower().startswith("ldaps://"),
                get_info=NONE,
                tls=tls,
                connect_timeout=self.cfg.connect_timeout_s,
            )
            for u in self.cfg.urls
        ]
        if len(servers) > 1 and self.cfg.use_connection_pool:
            return ServerPool(servers, pool_strategy=ROUND_ROBIN, active=True, exhaust=False)
        return servers[0]

    def _conn(self) -> Connection:
        if self._connection_factory is not None:
            conn = self._connection_factory()
        else:
            auth = _AUTH_MODES.get(self.cfg.authentication, SIMPLE)
            user: str | None = None
            password: str | None = None
            if auth is not ANONYMOUS:
                user = self.cfg.bind_dn or None
                password = self.cfg.bind_password or None
            conn = Connection(
                self.server,
                user=user,
                password=password,
                authentication=auth,
                auto_bind=False,
                auto_referrals=self.cfg.referral == "follow",
                read_only=True,
            )
        return conn

    def open(self) -> Connection:
        """Open and bind a new connection; raises LDAPException on failure."""
        logger.debug("Connecting to LDAP repository on %s...", self.cfg.url)
        conn = self._conn()
        try:
            conn.open()
            if self.cfg.start_tls:
                conn.start_tls()
            bound = conn.bind()
        except LDAPException:
            self.release(conn)
            raise
        if not bound:
            res = dict(conn.result or {})
            self.release(conn)
            raise DirectoryBindError(res.get("result"), str(res.get("description") or ""))
        return conn

    @staticmethod
    def release(conn: Connection | None) -> None:
        if conn is None:
            logger.debug("Connection passed is None, ignoring it...")
            return
        try:
            conn.unbind()
        except Exception as e:
            logger.warning("Failed to close LDAP connection: %s", e)

    @contextmanager
    def session(self) -> Iterator[Connection]:
        conn: Connection | None = None
        try:
            conn = self.open()
            yield conn
        finally:
            if conn is not None:
                self.release(conn)

    def failure(self, e: BaseException, operation: str = "search") -> SearchResult:
        status = classify_exception(e)
        if status is SearchStatus.TRANSIENT:
            logger.debug("Reconnection required during %s", operation, exc_info=e)
        else:
            logger.warning("LDAP %s failed: %s", operation, e)
        return SearchResult(status=status, message=str(e))

    def search(
        self,
        conn: Connection,
        search_filter: str,
        attributes: Optional[Sequence[str]] = None,
        size_limit: Optional[int] = None,
    ) -> SearchResult:
        """Run one subtree search below the configured base DN."""
        limit = self.cfg.search_count_limit if size_limit is None else size_limit
        logger.debug("Using filter string [%s]...", search_filter)
        try:
            conn.search(
                search_base=self.cfg.base_dn,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=list(attributes) if attributes else ALL_ATTRIBUTES,
                size_limit=limit,
            )
        except LDAPException as e:
            return self.failure(e)

        res = dict(conn.result or {})
        status = classify_result_code(res.get("result"))
        entries = [
            entry_from_response(item)
            for item in (conn.response or [])
            if item.get("type") == "searchResEntry"
        ]
        message = str(res.get("description") or res.get("message") or "")

        if status is SearchStatus.SIZE_LIMITED:
            logger.warning(
                "Search generated more than configured maximum search limit, limiting to %s first results...",
                limit,
            )
        elif status is SearchStatus.PARTIAL:
            logger.warning("Partial search result for [%s]: %s", search_filter, message)
        elif status is SearchStatus.TRANSIENT:
            logger.debug("Reconnection required: %s", message)
            entries = []
        elif status is SearchStatus.FATAL:
            logger.warning("Unable to retrieve LDAP groups. Cause: %s", message)
            entries = []
        return SearchResult(status=status, entries=entries, message=message)

    def search_once(
        self,
        search_filter: str,
        attributes: Optional[Sequence[str]] = None,
        size_limit: Optional[int] = None,
    ) -> SearchResult:
        """Open a session, run a single search and release the connection."""
        try:
            with self.session() as conn:
                return self.search(conn, search_filter, attributes, size_limit)
        except LDAPException as e:
            return self.failure(e, "connect")
