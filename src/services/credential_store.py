"""Per-session and shared YouTube credential (cookie file) handling.

Credentials are Netscape cookie files consumed by yt-dlp. A session's own
upload takes precedence over the shared deployment cookies, then browser
cookies, then an unauthenticated attempt.
"""

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from utils.errors import InputError

logger = logging.getLogger(__name__)

NETSCAPE_HEADER = "# Netscape HTTP Cookie File"
HTTPONLY_PREFIX = "#HttpOnly_"
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,128}$")
SESSION_COOKIE_FILENAME = "cookies.txt"
SHARED_COOKIE_FILENAME = "shared_cookies.txt"


@dataclass(frozen=True)
class CredentialSource:
    """One way of authenticating a download.

    kind is one of "session", "shared", "browser" or "none".
    """

    kind: str
    cookie_file: Optional[str] = None
    browser: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.kind != "none"

    def apply(self, ydl_opts: dict) -> dict:
        """Return a copy of yt-dlp options carrying this credential."""
        opts = dict(ydl_opts)
        opts.pop("cookiefile", None)
        opts.pop("cookiesfrombrowser", None)
        if self.cookie_file:
            opts["cookiefile"] = self.cookie_file
        elif self.browser:
            opts["cookiesfrombrowser"] = (self.browser,)
        return opts

    def describe(self) -> str:
        if self.cookie_file:
            return f"{self.kind} cookies ({Path(self.cookie_file).name})"
        if self.browser:
            return f"browser cookies ({self.browser})"
        return "no credentials"


UNAUTHENTICATED = CredentialSource(kind="none")


def _normalize_line(line: str) -> Optional[str]:
    prefix = ""
    if line.startswith(HTTPONLY_PREFIX):
        prefix = HTTPONLY_PREFIX
        line = line[len(HTTPONLY_PREFIX):]

    parts = line.split("\t")
    if len(parts) < 7:
        return None

    domain, include_subdomains, path, secure, expiry, name = parts[:6]
    value = "\t".join(parts[6:])
    if not domain or not name:
        return None

    fields = [
        domain if domain.startswith(".") else f".{domain}",
        "TRUE" if include_subdomains.strip().upper() == "TRUE" else "FALSE",
        path or "/",
        "TRUE" if secure.strip().upper() == "TRUE" else "FALSE",
        expiry.strip() or "0",
        name,
        value,
    ]
    return prefix + "\t".join(fields)


def normalize_cookie_text(text: str) -> str:
    """Normalize pasted or uploaded cookie text to a valid Netscape file.

    Raises:
        InputError: If no valid cookie line remains
    """
    lines = [NETSCAPE_HEADER, "# This is a generated file!  Do not edit.", ""]
    cookie_count = 0

    for raw_line in (text or "").splitlines():
        line = raw_line.strip("\r\n").strip(" ")
        if not line:
            continue
        if line.startswith("#") and not line.startswith(HTTPONLY_PREFIX):
            continue
        normalized = _normalize_line(line)
        if normalized is None:
            continue
        lines.append(normalized)
        cookie_count += 1

    if cookie_count == 0:
        raise InputError(
            "No valid cookies found. Expected a Netscape format cookie file "
            "(7 tab-separated fields per line)."
        )

    logger.debug(f"Normalized cookie file with {cookie_count} cookies")
    return "\n".join(lines) + "\n"


class CredentialStore:
    """Filesystem-backed credential store keyed by session id."""

    def __init__(
        self,
        cookies_dir: str,
        shared_cookie_file: Optional[str] = None,
        shared_cookie_text: Optional[str] = None,
        browser: Optional[str] = None,
    ):
        self.cookies_dir = Path(cookies_dir)
        self.shared_cookie_file = shared_cookie_file
        self.shared_cookie_text = shared_cookie_text
        self.browser = browser
        self._materialized_shared: Optional[Path] = None

    @classmethod
    def from_config(cls, config: dict) -> "CredentialStore":
        return cls(
            cookies_dir=config.get("cookies_dir", "temp/cookies"),
            shared_cookie_file=config.get("ytdlp_cookies_file"),
            shared_cookie_text=config.get("youtube_cookies"),
            browser=config.get("ytdlp_cookies_from_browser"),
        )

    @staticmethod
    def validate_session_id(session_id: str) -> str:
        if not session_id or not SESSION_ID_PATTERN.match(session_id):
            raise InputError("Invalid session id")
        return session_id

    def session_credentials_path(self, session_id: str) -> Path:
        self.validate_session_id(session_id)
        return self.cookies_dir / session_id / SESSION_COOKIE_FILENAME

    def save_session_credentials(self, session_id: str, text: str) -> Path:
        """Normalize and persist cookies for a session, replacing any previous file."""
        content = normalize_cookie_text(text)
        path = self.session_credentials_path(session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info(f"Saved credentials for session {session_id[:8]}...")
        return path

    def has_session_credentials(self, session_id: str) -> bool:
        try:
            return self.session_credentials_path(session_id).is_file()
        except InputError:
            return False

    def delete_session_credentials(self, session_id: str) -> bool:
        path = self.session_credentials_path(session_id)
        if not path.parent.exists():
            return False
        shutil.rmtree(path.parent, ignore_errors=True)
        logger.info(f"Deleted credentials for session {session_id[:8]}...")
        return True

    def shared_credentials_path(self) -> Optional[Path]:
        """Shared cookie file from config, or the env cookie blob written to disk."""
        if self.shared_cookie_file and Path(self.shared_cookie_file).is_file():
            return Path(self.shared_cookie_file)

        if not self.shared_cookie_text:
            return None
        if self._materialized_shared and self._materialized_shared.is_file():
            return self._materialized_shared

        try:
            content = normalize_cookie_text(self.shared_cookie_text)
        except InputError:
            logger.warning("YOUTUBE_COOKIES is set but contains no valid cookies")
            return None

        path = self.cookies_dir / SHARED_COOKIE_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self._materialized_shared = path
        logger.info(f"Materialized shared cookies at {path}")
        return path

    def resolve_credentials(self, session_id: Optional[str] = None) -> list[CredentialSource]:
        """Credential sources to try, in fixed precedence order.

        session file -> shared file -> browser cookies -> unauthenticated.
        The list always ends with the unauthenticated source.
        """
        sources: list[CredentialSource] = []

        if session_id and self.has_session_credentials(session_id):
            sources.append(
                CredentialSource(
                    kind="session",
                    cookie_file=str(self.session_credentials_path(session_id)),
                )
            )

        shared = self.shared_credentials_path()
        if shared is not None:
            sources.append(CredentialSource(kind="shared", cookie_file=str(shared)))

        if self.browser:
            sources.append(CredentialSource(kind="browser", browser=self.browser))

        sources.append(UNAUTHENTICATED)
        return sources
