"""Per-session YouTube credential routes (cookie upload, paste, status, removal)."""

import logging
import uuid

from api.dependencies import SESSION_COOKIE_MAX_AGE, SESSION_COOKIE_NAME, get_credential_store
from api.schemas import CookieTextRequest, CredentialStatusResponse, MessageResponse
from fastapi import APIRouter, Cookie, Depends, File, HTTPException, Response, UploadFile
from services.credential_store import SESSION_ID_PATTERN, CredentialStore
from utils.errors import InputError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Credentials"])

MAX_COOKIE_FILE_BYTES = 1024 * 1024


def _session_id(session_cookie: str | None) -> str:
    """Reuse the caller's session id or mint a new one."""
    if session_cookie and SESSION_ID_PATTERN.match(session_cookie):
        return session_cookie
    return uuid.uuid4().hex


def _store(store: CredentialStore, session_id: str, text: str, response: Response) -> dict:
    try:
        store.save_session_credentials(session_id, text)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=SESSION_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return {"session_id": session_id, "has_credentials": True}


@router.post(
    "/api/credentials/upload",
    response_model=CredentialStatusResponse,
    summary="Upload a cookies.txt file",
    description="Stores a Netscape-format cookie file for this session. Downloads made "
    "with the session id use these cookies before any shared credentials.",
    responses={400: {"description": "File is empty or contains no cookies"}},
)
async def upload_credentials(
    response: Response,
    file: UploadFile = File(...),
    store: CredentialStore = Depends(get_credential_store),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
    """Upload cookies as a file."""
    raw = await file.read(MAX_COOKIE_FILE_BYTES + 1)
    if len(raw) > MAX_COOKIE_FILE_BYTES:
        raise HTTPException(status_code=400, detail="Cookie file is too large")
    text = raw.decode("utf-8", errors="replace")
    return _store(store, _session_id(session_cookie), text, response)


@router.post(
    "/api/credentials/paste",
    response_model=CredentialStatusResponse,
    summary="Paste cookies as text",
    description="Same as upload, with the cookie file contents sent in the request body.",
    responses={400: {"description": "Text contains no cookies"}},
)
async def paste_credentials(
    request: CookieTextRequest,
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
    """Upload cookies as pasted text."""
    return _store(store, _session_id(session_cookie), request.cookies, response)


@router.get(
    "/api/credentials",
    response_model=CredentialStatusResponse,
    summary="Credential status",
    description="Whether the current session has uploaded cookies.",
    responses={404: {"description": "No session cookie"}},
)
async def credential_status(
    store: CredentialStore = Depends(get_credential_store),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
    if not session_cookie:
        raise HTTPException(status_code=404, detail="No session")
    return {
        "session_id": session_cookie,
        "has_credentials": store.has_session_credentials(session_cookie),
    }


@router.delete(
    "/api/credentials",
    response_model=MessageResponse,
    summary="Remove session credentials",
    responses={404: {"description": "No credentials stored for this session"}},
)
async def delete_credentials(
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, str]:
    if not session_cookie or not store.has_session_credentials(session_cookie):
        raise HTTPException(status_code=404, detail="No credentials stored for this session")
    store.delete_session_credentials(session_cookie)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"message": "Credentials removed"}
