from __future__ import annotations

import os
from dataclasses import dataclass

import requests


class AuthenticationError(RuntimeError):
    pass


@dataclass(frozen=True)
class VerifiedIdentity:
    uid: str
    email: str | None
    display_name: str | None = None


class IdentityClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self.base_url = (
            base_url
            or os.getenv("IDENTITY_BASE_URL")
            or "https://identitytoolkit.googleapis.com/v1"
        ).rstrip("/")
        self.api_key = api_key or os.getenv("IDENTITY_API_KEY")
        if timeout is None:
            timeout = int(os.getenv("IDENTITY_TIMEOUT", "10"))
        self.timeout = timeout

    def verify_token(self, id_token: str) -> VerifiedIdentity:
        if not id_token:
            raise AuthenticationError("No token provided")
        if not self.api_key:
            raise AuthenticationError("Identity provider is not configured")

        url = f"{self.base_url}/accounts:lookup"
        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                json={"idToken": id_token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AuthenticationError("Identity provider unavailable") from exc

        if response.status_code >= 400:
            raise AuthenticationError(_error_message(response))

        data = response.json()
        users = data.get("users")
        if not isinstance(users, list) or not users:
            raise AuthenticationError("Invalid token")
        account = users[0]
        uid = account.get("localId")
        if not isinstance(uid, str) or not uid:
            raise AuthenticationError("Invalid token")
        return VerifiedIdentity(
            uid=uid,
            email=account.get("email"),
            display_name=account.get("displayName"),
        )


def _error_message(response: requests.Response) -> str:
    try:
        message = response.json().get("error", {}).get("message", "")
    except ValueError:
        message = ""
    if "EXPIRED" in message.upper():
        return "Token has expired. Please sign in again."
    if message:
        return "Invalid token. Please sign in again."
    return "Authentication failed"
