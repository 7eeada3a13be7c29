from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deptclient.storage.models import Identity, Session


class GraphQLRequest(BaseModel):
    """One GraphQL operation: document, variables and optional operation name."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    query: str
    variables: Optional[Dict[str, Any]] = None
    operation_name: Optional[str] = Field(default=None, alias="operationName")

    @field_validator("query")
    @classmethod
    def _require_query(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("query must not be empty")
        return value

    @classmethod
    def coerce(
        cls, payload: Union["GraphQLRequest", Mapping[str, Any], str]
    ) -> "GraphQLRequest":
        """Accept a request model, a {query, variables} mapping, or a bare query."""
        if isinstance(payload, GraphQLRequest):
            return payload
        if isinstance(payload, str):
            return cls(query=payload)
        if isinstance(payload, Mapping):
            return cls.model_validate(dict(payload))
        raise TypeError(f"unsupported request payload: {type(payload).__name__}")

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class UserPayload(BaseModel):
    """The backend's ``User`` type, password never included."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    email: str
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    note: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    def to_identity(self) -> Identity:
        return Identity(
            id=self.id,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            note=self.note,
        )


class AuthPayload(BaseModel):
    """Response of the login, register and refreshToken mutations."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token: str = Field(min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)
    user: UserPayload

    def to_session(self) -> Session:
        return Session(
            access_token=self.token,
            refresh_token=self.refresh_token,
            identity=self.user.to_identity(),
        )


USER_FIELDS = "id email firstName lastName note"
AUTH_PAYLOAD_FIELDS = f"token refreshToken user {{ {USER_FIELDS} }}"

LOGIN_MUTATION = f"""
mutation Login($email: String!, $password: String!) {{
  login(email: $email, password: $password) {{ {AUTH_PAYLOAD_FIELDS} }}
}}
"""

REGISTER_MUTATION = f"""
mutation Register(
  $email: String!
  $password: String!
  $firstName: String
  $lastName: String
  $note: String
) {{
  register(
    email: $email
    password: $password
    firstName: $firstName
    lastName: $lastName
    note: $note
  ) {{ {AUTH_PAYLOAD_FIELDS} }}
}}
"""

REFRESH_TOKEN_MUTATION = f"""
mutation RefreshToken($refreshToken: String!) {{
  refreshToken(refreshToken: $refreshToken) {{ {AUTH_PAYLOAD_FIELDS} }}
}}
"""

LOGOUT_MUTATION = """
mutation Logout($refreshToken: String!) {
  logout(refreshToken: $refreshToken)
}
"""

ME_QUERY = f"""
query Me {{
  me {{ {USER_FIELDS} }}
}}
"""

CHANGE_PASSWORD_MUTATION = """
mutation ChangePassword($oldPassword: String!, $newPassword: String!) {
  changePassword(oldPassword: $oldPassword, newPassword: $newPassword)
}
"""

RESET_PASSWORD_MUTATION = """
mutation ResetPassword($email: String!) {
  resetPassword(email: $email)
}
"""

HEALTH_QUERY = """
query Health {
  health
}
"""
