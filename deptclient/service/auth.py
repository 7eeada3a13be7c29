from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import ValidationError

from deptclient.api.schemas import (
    CHANGE_PASSWORD_MUTATION,
    LOGIN_MUTATION,
    LOGOUT_MUTATION,
    ME_QUERY,
    REGISTER_MUTATION,
    RESET_PASSWORD_MUTATION,
    AuthPayload,
    GraphQLRequest,
    UserPayload,
)
from deptclient.logging import get_logger
from deptclient.service.client import RequestClient
from deptclient.service.errors import ClientError, TransportError
from deptclient.storage.models import Identity
from deptclient.storage.session_store import SessionStore


class AuthService:
    """Login, registration and logout against the backend's auth mutations.

    These flows write the session store directly; only the request client's
    refresh path touches it otherwise.
    """

    def __init__(self, client: RequestClient, store: SessionStore) -> None:
        self.client = client
        self.store = store
        self.logger = get_logger(__name__)

    async def login(self, email: str, password: str) -> Identity:
        data = await self.client.execute(
            GraphQLRequest(
                query=LOGIN_MUTATION,
                variables={"email": email, "password": password},
                operation_name="Login",
            )
        )
        identity = self._store_auth_payload(data, "login")
        self.logger.info("login_succeeded", user_id=identity.id)
        return identity

    async def register(
        self,
        email: str,
        password: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Identity:
        variables: Dict[str, Any] = {"email": email, "password": password}
        for key, value in (
            ("firstName", first_name),
            ("lastName", last_name),
            ("note", note),
        ):
            if value is not None:
                variables[key] = value
        data = await self.client.execute(
            GraphQLRequest(
                query=REGISTER_MUTATION, variables=variables, operation_name="Register"
            )
        )
        identity = self._store_auth_payload(data, "register")
        self.logger.info("register_succeeded", user_id=identity.id)
        return identity

    async def logout(self) -> None:
        """Invalidate the refresh token server-side, then clear the session.

        The local session is cleared even when the backend call fails.
        """
        refresh_token = self.store.refresh_token
        try:
            if refresh_token:
                await self.client.execute(
                    GraphQLRequest(
                        query=LOGOUT_MUTATION,
                        variables={"refreshToken": refresh_token},
                        operation_name="Logout",
                    )
                )
        except ClientError as exc:
            self.logger.warning(
                "logout_remote_failed", error_code=exc.error_code, error=exc.message
            )
        finally:
            self.store.clear_session()

    async def me(self) -> Optional[Identity]:
        data = await self.client.execute(
            GraphQLRequest(query=ME_QUERY, operation_name="Me")
        )
        user = data.get("me")
        if not user:
            return None
        try:
            return UserPayload.model_validate(user).to_identity()
        except ValidationError as exc:
            raise TransportError("Malformed user in response") from exc

    async def change_password(self, old_password: str, new_password: str) -> bool:
        data = await self.client.execute(
            GraphQLRequest(
                query=CHANGE_PASSWORD_MUTATION,
                variables={"oldPassword": old_password, "newPassword": new_password},
                operation_name="ChangePassword",
            )
        )
        return bool(data.get("changePassword"))

    async def reset_password(self, email: str) -> bool:
        data = await self.client.execute(
            GraphQLRequest(
                query=RESET_PASSWORD_MUTATION,
                variables={"email": email},
                operation_name="ResetPassword",
            )
        )
        return bool(data.get("resetPassword"))

    def _store_auth_payload(self, data: Dict[str, Any], field: str) -> Identity:
        try:
            session = AuthPayload.model_validate(data.get(field) or {}).to_session()
        except (ValidationError, ValueError) as exc:
            self.logger.error("auth_payload_invalid", operation=field, error=str(exc))
            raise TransportError(f"Malformed {field} response") from exc
        self.store.set_session(
            session.access_token, session.refresh_token, session.identity
        )
        return session.identity
