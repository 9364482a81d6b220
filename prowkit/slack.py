"""Reading and posting Slack messages through the Slack web API."""

from __future__ import annotations

import html
import json
import math
import os
import urllib.error
import urllib.request
from datetime import datetime
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlencode

__all__ = [
    "CONVERSATION_HISTORY_URL",
    "POST_MESSAGE_URL",
    "SlackError",
    "ReadClient",
    "WriteClient",
]

CONVERSATION_HISTORY_URL = "https://slack.com/api/conversations.history"
POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"

Opener = Callable[[urllib.request.Request], Any]


class SlackError(RuntimeError):
    """Raised when Slack answers with an error or an unexpected response."""


def _read_token(token_path: str | os.PathLike[str]) -> str:
    return Path(token_path).read_text().strip()


def _send(opener: Opener, request: urllib.request.Request) -> bytes:
    """Send a request and return the body of a 200 response."""
    try:
        with opener(request) as response:
            status = getattr(response, "status", 200)
            if status != 200:
                raise SlackError(f"http response code is not StatusOK: '{status}'")
            return response.read()
    except urllib.error.HTTPError as exc:
        raise SlackError(f"http response code is not StatusOK: '{exc.code}'") from exc


def _get(opener: Opener, url: str) -> bytes:
    return _send(opener, urllib.request.Request(url, method="GET"))


def _post(opener: Opener, url: str, form: dict[str, str]) -> bytes:
    body = urlencode(sorted(form.items())).encode("ascii")
    request = urllib.request.Request(
        url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    return _send(opener, request)


def _decode_ok(content: bytes) -> dict:
    """Parse a Slack JSON reply, raising SlackError unless it says ok."""
    text = content.decode("utf-8", "replace")
    try:
        data = json.loads(content)
    except ValueError:
        raise SlackError(f"response not ok '{text}'") from None
    if not isinstance(data, dict) or data.get("ok") is not True:
        raise SlackError(f"response not ok '{text}'")
    return data


class ReadClient:
    """Reads the messages a given user sent to Slack channels."""

    def __init__(
        self,
        user_name: str,
        token_path: str | os.PathLike[str],
        opener: Opener | None = None,
    ) -> None:
        self.user_name = user_name
        self._token = _read_token(token_path)
        self._opener = opener or urllib.request.urlopen

    def message_history(self, channel: str, start_time: datetime) -> list[str]:
        """Return the texts the user posted in channel since start_time."""
        query = urlencode(
            sorted(
                {
                    "token": self._token,
                    "channel": channel,
                    "oldest": str(math.floor(start_time.timestamp())),
                }.items()
            )
        )
        content = _get(self._opener, f"{CONVERSATION_HISTORY_URL}?{query}")
        data = _decode_ok(content)
        messages = data.get("messages") or []
        return [
            html.unescape(str(message.get("text") or ""))
            for message in messages
            if isinstance(message, dict) and message.get("username", "") == self.user_name
        ]


class WriteClient:
    """Posts messages to Slack channels as a given user name."""

    def __init__(
        self,
        user_name: str,
        token_path: str | os.PathLike[str],
        opener: Opener | None = None,
    ) -> None:
        self.user_name = user_name
        self._token = _read_token(token_path)
        self._opener = opener or urllib.request.urlopen

    def post(self, text: str, channel: str) -> None:
        """Post text to channel."""
        form = {
            "username": self.user_name,
            "token": self._token,
            "channel": channel,
            "text": text,
        }
        content = _post(self._opener, POST_MESSAGE_URL, form)
        _decode_ok(content)