"""HTTP client for the identity server.

Endpoints:
    POST /users/{id}  body {}                -> register card (any 2xx is fine)
    POST /users/{id}  body ScorePayload      -> submit skills
    GET  /users/{id}                         -> CardAttributes

Non-2xx statuses are returned as plain ints so the caller can classify them;
only transport failures raise.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, ClassVar, Final
from urllib.parse import quote

from pydantic import ValidationError

from spotdiff.errors import TransportError
from spotdiff.models import CardAttributes

if TYPE_CHECKING:
    from logging import Logger

    from spotdiff.config import ServerConfig
    from spotdiff.models import ScorePayload


SUCCESS_CODES: Final = frozenset({HTTPStatus.OK, HTTPStatus.CREATED, HTTPStatus.ACCEPTED, HTTPStatus.NO_CONTENT})


def is_success(status: int) -> bool:
    return status in SUCCESS_CODES


class ServerClient:
    """Blocking JSON client built on `urllib.request`. Run it off the game loop thread."""

    HEADERS: ClassVar = {"Content-Type": "application/json", "Accept": "application/json"}

    base_url: str
    timeout_s: float

    _log: Logger

    def __init__(self, base_url: str, *, timeout_s: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._log = logging.getLogger("ServerClient")

    @classmethod
    def from_config(cls, conf: ServerConfig) -> ServerClient:
        return cls(conf.base_url, timeout_s=conf.timeout_s)

    # ==================== Public API ====================

    def register(self, card_id: str) -> int:
        """Make sure the card exists server-side. Idempotent at the remote end."""
        status, _ = self._request("POST", self._user_url(card_id), {})
        return status

    def submit_score(self, payload: ScorePayload) -> int:
        status, body = self._request("POST", self._user_url(payload.nfcId), payload.model_dump())
        if not is_success(status) and body:
            self._log.debug("Error body for %s: %s", payload.nfcId, body[:500])
        return status

    def fetch_attributes(self, card_id: str) -> CardAttributes | None:
        """Latest skill totals for a card, or None if the server has nothing usable."""
        status, body = self._request("GET", self._user_url(card_id))
        if not is_success(status) or not body:
            return None

        try:
            return CardAttributes.model_validate_json(body)
        except ValidationError as e:
            self._log.warning("Unexpected attributes payload for %s: %s", card_id, e)
            return None

    # ==================== Utility Methods ====================

    def _user_url(self, card_id: str) -> str:
        return f"{self.base_url}/users/{quote(card_id, safe='')}"

    def _request(self, method: str, url: str, body: dict[str, Any] | None = None) -> tuple[int, str]:
        """Perform one request.

        Returns:
            (status code, decoded response body)

        Raises:
            TransportError: Connection refused, timeout, DNS failure, ...
        """
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(url, data=data, headers=self.HEADERS, method=method)  # noqa: S310
        self._log.debug("[bright_white on grey30][%s][/] %s %s", method, url, body if body is not None else "")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:  # noqa: S310
                status = resp.status
                text = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            status = e.code
            text = e.read().decode("utf-8", errors="replace") if e.fp is not None else ""
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            msg = f"{method} {url} failed: {e}"
            raise TransportError(msg) from e

        self._log.debug("%s %s -> %d", method, url, status)
        return status, text
