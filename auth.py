import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol

import firebase_admin
from fastapi import Depends, Header
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from supabase import Client, create_client

from config import get_settings
from errors import AuthError, ServerError
from logger import get_logger

logger = get_logger("auth")

FIREBASE_APP_NAME = "carhub"


@dataclass(frozen=True)
class Identity:
    email: str
    subject_id: str


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Identity:
        """Return the identity behind ``token`` or raise AuthError."""


@lru_cache()
def get_firebase_app() -> firebase_admin.App:
    """Initialize the Firebase Admin app from FIREBASE_SERVICE_ACCOUNT (JSON text or a file path)."""
    account = get_settings().firebase_service_account
    if not account:
        raise RuntimeError("FIREBASE_SERVICE_ACCOUNT is not set")
    source = json.loads(account) if account.lstrip().startswith("{") else account
    return firebase_admin.initialize_app(credentials.Certificate(source), name=FIREBASE_APP_NAME)


@lru_cache()
def get_supabase() -> Client:
    settings = get_settings()
    if settings.supabase_url is None or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    url = str(settings.supabase_url)

    if "your-project.supabase.co" in url:
        raise RuntimeError(
            "SUPABASE_URL in .env is still the placeholder (your-project). "
            "Fill in your real project URL and service key."
        )
    return create_client(url, settings.supabase_key)


class FirebaseIdentityVerifier:
    """Validates Firebase ID tokens, the credential Car Hub clients sign in with."""

    def _app(self) -> firebase_admin.App:
        try:
            return get_firebase_app()
        except Exception as exc:
            logger.exception("Firebase init error")
            raise ServerError("Identity provider unavailable") from exc

    def verify(self, token: str) -> Identity:
        app = self._app()
        try:
            decoded = firebase_auth.verify_id_token(token, app=app)
        except Exception as exc:
            logger.info("Token error: %s", exc)
            raise AuthError("Invalid token") from exc
        if not decoded.get("email"):
            raise AuthError("Invalid token")
        return Identity(email=decoded["email"], subject_id=decoded["uid"])


class SupabaseIdentityVerifier:
    """Validates Supabase access tokens. The client is created on first use."""

    def _client(self) -> Client:
        try:
            return get_supabase()
        except Exception as exc:
            logger.exception("Supabase client initialization failed")
            raise ServerError("Identity provider unavailable") from exc

    def verify(self, token: str) -> Identity:
        client = self._client()
        try:
            user = client.auth.get_user(token).user
        except Exception as exc:
            logger.info("Token rejected by identity provider: %s", exc)
            raise AuthError("Invalid token") from exc
        if user is None or not user.email:
            raise AuthError("Invalid token")
        return Identity(email=user.email, subject_id=str(user.id))


VERIFIERS = {
    "firebase": FirebaseIdentityVerifier,
    "supabase": SupabaseIdentityVerifier,
}


@lru_cache()
def get_verifier() -> IdentityVerifier:
    provider = get_settings().identity_provider.lower()
    try:
        return VERIFIERS[provider]()
    except KeyError:
        raise RuntimeError(f"Unknown IDENTITY_PROVIDER: {provider}") from None


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    verifier: IdentityVerifier = Depends(get_verifier),
) -> Identity:
    """
    Validate the bearer token and return the caller's identity.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("No token")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("No token")
    return verifier.verify(token)
