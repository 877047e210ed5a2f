"""WebAuthn protocol engine consumed by the ceremony services.

:class:`ProtocolEngine` is the narrow interface the services depend on.
:class:`Fido2Engine` implements it on top of ``fido2.server.Fido2Server``,
building a server bound to the caller's RP ID and origin for every call.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from cryptography.exceptions import InvalidSignature
from fido2 import cbor
from fido2.cose import CoseKey
from fido2.server import Fido2Server
from fido2.utils import websafe_decode, websafe_encode
from fido2.webauthn import (
    Aaguid,
    AttestedCredentialData,
    AttestationConveyancePreference,
    AuthenticationResponse,
    AuthenticatorAttachment,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialType,
    PublicKeyCredentialUserEntity,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from .challenges import ChallengeLedger

LOGGER = logging.getLogger(__name__)

# Raised by fido2 while decoding or checking client-supplied ceremony data.
REJECTIONS = (ValueError, KeyError, struct.error, InvalidSignature)


@dataclass(frozen=True)
class RegistrationInfo:
    counter: int
    credential_id: bytes
    credential_public_key: bytes


@dataclass(frozen=True)
class RegistrationVerdict:
    verified: bool
    registration_info: Optional[RegistrationInfo] = None


class ProtocolEngine(Protocol):
    def generate_registration_options(
        self,
        rp_name: str,
        rp_id: str,
        user_id: str,
        user_name: str,
        exclude_credentials: Sequence[Mapping[str, Any]],
        authenticator_selection: Mapping[str, str],
        attestation_type: str,
    ) -> Dict[str, Any]:
        ...

    def verify_registration_response(
        self,
        response: Mapping[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
    ) -> RegistrationVerdict:
        ...

    def generate_authentication_options(self, rp_id: str, user_verification: str) -> Dict[str, Any]:
        ...

    def verify_authentication_response(
        self,
        authenticator: Mapping[str, Any],
        response: Mapping[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
    ) -> Dict[str, Any]:
        ...


def json_safe(value: Any) -> Any:
    """Convert fido2 option objects into plain JSON-compatible values."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return websafe_encode(bytes(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): json_safe(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    return value


def _as_client_credential(response: Mapping[str, Any]) -> Dict[str, Any]:
    credential = dict(response)
    credential.setdefault("rawId", credential["id"])
    credential.setdefault("type", PublicKeyCredentialType.PUBLIC_KEY.value)
    credential.setdefault("clientExtensionResults", {})
    return credential


class Fido2Engine:
    """Protocol engine backed by python-fido2."""

    def __init__(
        self,
        ledger: Optional[ChallengeLedger] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self.ledger = ledger if ledger is not None else ChallengeLedger()
        self.timeout_ms = timeout_ms

    def _server(
        self,
        rp_id: str,
        rp_name: Optional[str] = None,
        origin: Optional[str] = None,
        attestation: str = "none",
    ) -> Fido2Server:
        rp = PublicKeyCredentialRpEntity(name=rp_name or rp_id, id=rp_id)
        preference = AttestationConveyancePreference(attestation)
        if origin is None:
            server = Fido2Server(rp, attestation=preference)
        else:
            server = Fido2Server(
                rp,
                attestation=preference,
                verify_origin=lambda candidate: candidate == origin,
            )
        server.timeout = self.timeout_ms
        return server

    def _options(self, options: Any) -> Dict[str, Any]:
        payload = json_safe(dict(options))
        if self.timeout_ms is not None:
            payload.get("publicKey", {}).setdefault("timeout", self.timeout_ms)
        return payload

    @staticmethod
    def _state(challenge: str, user_verification: str = "preferred") -> Dict[str, str]:
        return {"challenge": challenge, "user_verification": user_verification}

    # ------------------------------------------------------------------
    def generate_registration_options(
        self,
        rp_name: str,
        rp_id: str,
        user_id: str,
        user_name: str,
        exclude_credentials: Sequence[Mapping[str, Any]],
        authenticator_selection: Mapping[str, str],
        attestation_type: str,
    ) -> Dict[str, Any]:
        server = self._server(rp_id, rp_name, attestation=attestation_type)
        descriptors: List[PublicKeyCredentialDescriptor] = [
            PublicKeyCredentialDescriptor(
                type=PublicKeyCredentialType.PUBLIC_KEY,
                id=websafe_decode(descriptor["id"]),
            )
            for descriptor in exclude_credentials
        ]
        options, _ = server.register_begin(
            PublicKeyCredentialUserEntity(
                id=user_id.encode("utf-8"),
                name=user_name,
                display_name=user_name,
            ),
            descriptors or None,
            resident_key_requirement=ResidentKeyRequirement(authenticator_selection["residentKey"]),
            user_verification=UserVerificationRequirement(authenticator_selection["userVerification"]),
            authenticator_attachment=AuthenticatorAttachment(
                authenticator_selection["authenticatorAttachment"]
            ),
        )
        return self._options(options)

    def verify_registration_response(
        self,
        response: Mapping[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
    ) -> RegistrationVerdict:
        if not self.ledger.spend(expected_challenge):
            LOGGER.info("Registration rejected: challenge already used")
            return RegistrationVerdict(verified=False)
        server = self._server(expected_rp_id, origin=expected_origin)
        try:
            auth_data = server.register_complete(
                self._state(expected_challenge), _as_client_credential(response)
            )
        except REJECTIONS as exc:
            LOGGER.info("Registration rejected: %s", exc)
            return RegistrationVerdict(verified=False)
        credential_data = auth_data.credential_data
        return RegistrationVerdict(
            verified=True,
            registration_info=RegistrationInfo(
                counter=auth_data.counter,
                credential_id=bytes(credential_data.credential_id),
                credential_public_key=cbor.encode(dict(credential_data.public_key)),
            ),
        )

    def generate_authentication_options(self, rp_id: str, user_verification: str) -> Dict[str, Any]:
        options, _ = self._server(rp_id).authenticate_begin(
            user_verification=UserVerificationRequirement(user_verification)
        )
        return self._options(options)

    def verify_authentication_response(
        self,
        authenticator: Mapping[str, Any],
        response: Mapping[str, Any],
        expected_challenge: str,
        expected_origin: str,
        expected_rp_id: str,
    ) -> Dict[str, Any]:
        if not self.ledger.spend(expected_challenge):
            LOGGER.info("Authentication rejected: challenge already used")
            return {"verified": False}
        server = self._server(expected_rp_id, origin=expected_origin)
        try:
            stored = AttestedCredentialData.create(
                Aaguid.NONE,
                websafe_decode(authenticator["id"]),
                CoseKey.parse(cbor.decode(websafe_decode(authenticator["publicKey"]))),
            )
            credential = _as_client_credential(response)
            assertion = AuthenticationResponse.from_dict(credential)
            server.authenticate_complete(self._state(expected_challenge), [stored], credential)
        except REJECTIONS as exc:
            LOGGER.info("Authentication rejected: %s", exc)
            return {"verified": False}

        auth_data = assertion.response.authenticator_data
        new_counter = auth_data.counter
        stored_counter = authenticator["counter"]
        if (new_counter > 0 or stored_counter > 0) and new_counter <= stored_counter:
            LOGGER.info(
                "Authentication rejected: counter %d does not advance past %d",
                new_counter,
                stored_counter,
            )
            return {"verified": False}

        return {
            "verified": True,
            "authenticationInfo": {
                "credentialID": authenticator["id"],
                "newCounter": new_counter,
                "userVerified": auth_data.is_user_verified(),
            },
        }
