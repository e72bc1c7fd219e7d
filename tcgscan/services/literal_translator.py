"""
Literal translation through Google Cloud Translation v3.

Authenticates with a service-account JSON key: a short-lived RS256 JWT
assertion is exchanged for a bearer token, which is reused until one
minute before it expires. The service is disabled (not an error) when no
usable credentials are configured.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import jwt

from tcgscan.config import settings

logger = logging.getLogger(__name__)

TRANSLATE_URL = (
    "https://translation.googleapis.com/v3/projects/{project}/locations/global:translateText"
)
TRANSLATION_SCOPE = "https://www.googleapis.com/auth/cloud-translation"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

REQUEST_TIMEOUT_SECONDS = 10.0
ASSERTION_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60


class TranslationError(Exception):
    """The translation request failed."""


@dataclass(frozen=True, slots=True)
class ServiceAccountCredentials:
    project_id: str
    client_email: str
    private_key: str
    token_uri: str = DEFAULT_TOKEN_URI


def load_credentials(path: str) -> ServiceAccountCredentials | None:
    """
    Read a service-account key file.

    Returns None (and logs why) if the file is missing, unreadable, or lacks
    the fields needed to sign an assertion.
    """
    if not path:
        logger.info("Literal translation disabled: GOOGLE_APPLICATION_CREDENTIALS not set")
        return None

    key_path = Path(path).expanduser()
    try:
        data: dict[str, Any] = json.loads(key_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Literal translation disabled: cannot read %s: %s", key_path, e)
        return None

    project_id = data.get("project_id", "")
    client_email = data.get("client_email", "")
    private_key = data.get("private_key", "")
    if not project_id or not client_email or "PRIVATE KEY" not in private_key:
        logger.warning("Literal translation disabled: credentials file missing required fields")
        return None

    return ServiceAccountCredentials(
        project_id=project_id,
        client_email=client_email,
        private_key=private_key,
        token_uri=data.get("token_uri") or DEFAULT_TOKEN_URI,
    )


class LiteralTranslator:
    """Google Cloud Translation client with cached service-account tokens."""

    def __init__(
        self,
        credentials: ServiceAccountCredentials | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.credentials = credentials
        self._http_client = http_client
        self._access_token = ""
        self._token_expiry = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls) -> "LiteralTranslator":
        return cls(load_credentials(settings.google_application_credentials))

    @property
    def is_enabled(self) -> bool:
        return self.credentials is not None

    def _create_assertion(self, credentials: ServiceAccountCredentials) -> str:
        """Signed JWT asserting the service account identity."""
        now = int(time.time())
        claims = {
            "iss": credentials.client_email,
            "sub": credentials.client_email,
            "aud": credentials.token_uri,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
            "scope": TRANSLATION_SCOPE,
        }
        return jwt.encode(claims, credentials.private_key, algorithm="RS256")

    async def _ensure_access_token(
        self, client: httpx.AsyncClient, credentials: ServiceAccountCredentials
    ) -> str:
        async with self._token_lock:
            refresh_at = self._token_expiry - TOKEN_REFRESH_MARGIN_SECONDS
            if self._access_token and time.time() < refresh_at:
                return self._access_token

            try:
                assertion = self._create_assertion(credentials)
            except (jwt.PyJWTError, ValueError) as e:
                raise TranslationError(f"Failed to sign token assertion: {e}") from e

            try:
                response = await client.post(
                    credentials.token_uri,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
            except httpx.HTTPError as e:
                raise TranslationError(f"Token request failed: {e}") from e

            if response.status_code != 200:
                raise TranslationError(
                    f"Token request failed with status {response.status_code}: {response.text}"
                )

            try:
                payload = response.json()
                access_token = payload["access_token"]
                expires_in = int(payload.get("expires_in", 3600))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise TranslationError(f"Malformed token response: {e!r}") from e
            if not isinstance(access_token, str) or not access_token:
                raise TranslationError("Malformed token response: empty access_token")

            self._access_token = access_token
            self._token_expiry = time.time() + expires_in
            logger.debug("TRANSLATION_TOKEN_REFRESHED")
            return self._access_token

    async def translate(self, text: str, source_lang: str = "ja", target_lang: str = "en") -> str:
        """
        Translate text literally.

        Raises:
            TranslationError: If the service is disabled or the request fails
        """
        credentials = self.credentials
        if credentials is None:
            raise TranslationError("Literal translation service not configured")
        if not text:
            return ""

        client = self._http_client or httpx.AsyncClient()
        try:
            token = await self._ensure_access_token(client, credentials)
            body: dict[str, Any] = {
                "targetLanguageCode": target_lang,
                "contents": [text],
                "mimeType": "text/plain",
            }
            if source_lang:
                body["sourceLanguageCode"] = source_lang

            try:
                response = await client.post(
                    TRANSLATE_URL.format(project=credentials.project_id),
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
            except httpx.TimeoutException as e:
                raise TranslationError(f"Translation request timeout: {e}") from e
            except httpx.HTTPError as e:
                raise TranslationError(f"Translation request failed: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if response.status_code != 200:
            raise TranslationError(
                f"API returned status {response.status_code}: {response.text[:200]}"
            )

        try:
            translations = response.json().get("translations") or []
            translated = translations[0].get("translatedText", "") if translations else ""
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TranslationError(f"Malformed translation response: {e!r}") from e
        if not translations:
            raise TranslationError("No translations returned")
        if not isinstance(translated, str):
            raise TranslationError("Malformed translation response: translatedText is not text")

        logger.info("LITERAL_TRANSLATION", extra={"chars": len(text)})
        return translated
