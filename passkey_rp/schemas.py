"""Pydantic shapes for untrusted ceremony input.

Each shape is exposed as a total validator: it accepts any value and returns
a :class:`Verdict` instead of raising, so the extractor decides how a
rejection surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Callable, Literal, Optional, Type

from fido2.utils import websafe_decode
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

AUTHENTICATOR_ATTACHMENTS = ("platform", "cross-platform")


def _decodable(value: str) -> str:
    websafe_decode(value)
    return value


Base64URL = Annotated[
    StrictStr,
    Field(min_length=1, pattern=r"^[A-Za-z0-9_-]+={0,2}$"),
    AfterValidator(_decodable),
]


@dataclass(frozen=True)
class Verdict:
    valid: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "Verdict":
        return cls(True)

    @classmethod
    def invalid(cls, reason: str) -> "Verdict":
        return cls(False, reason)


Validator = Callable[[Any], Verdict]


class _Shape(BaseModel):
    model_config = ConfigDict(extra="allow")


class CredentialDescriptor(_Shape):
    type: Literal["public-key"]
    id: Base64URL


class AttestationPayload(_Shape):
    clientDataJSON: Base64URL
    attestationObject: Base64URL


class RegistrationResponse(_Shape):
    id: Base64URL
    response: AttestationPayload


class AssertionPayload(_Shape):
    clientDataJSON: Base64URL
    authenticatorData: Base64URL
    signature: Base64URL
    userHandle: Optional[StrictStr] = None


class AuthenticationResponse(_Shape):
    id: Base64URL
    response: AssertionPayload


class StoredAuthenticator(_Shape):
    id: Base64URL
    counter: Annotated[StrictInt, Field(ge=0)]
    publicKey: Base64URL


def conforms_to(shape: Type[BaseModel]) -> Validator:
    """Build a total validator from a pydantic shape."""

    def validate(value: Any) -> Verdict:
        try:
            shape.model_validate(value)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or shape.__name__
            return Verdict.invalid(f"{location}: {first['msg']}")
        return Verdict.ok()

    validate.__name__ = f"conforms_to_{shape.__name__}"
    return validate


def one_of(*allowed: str) -> Validator:
    def validate(value: Any) -> Verdict:
        if value in allowed:
            return Verdict.ok()
        return Verdict.invalid(f"expected one of {', '.join(allowed)}")

    return validate


is_credential_descriptor = conforms_to(CredentialDescriptor)
is_registration_response = conforms_to(RegistrationResponse)
is_authentication_response = conforms_to(AuthenticationResponse)
is_stored_authenticator = conforms_to(StoredAuthenticator)
is_authenticator_attachment = one_of(*AUTHENTICATOR_ATTACHMENTS)
