from __future__ import annotations

import base64
import hashlib
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cbor2
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from passkey_rp.app import create_app
from passkey_rp.challenges import ChallengeLedger
from passkey_rp.config import ServiceSettings
from passkey_rp.engine import Fido2Engine, RegistrationInfo, RegistrationVerdict

FLAG_UP = 0x01
FLAG_UV = 0x04
FLAG_AT = 0x40
AAGUID = bytes(16)

RP_ID = "example.com"
ORIGIN = "https://example.com"


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def encode_json_payload(payload: Dict[str, Any]) -> str:
    return b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


def build_credential_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    numbers = public_key.public_numbers()
    cose_key = {
        1: 2,  # EC2
        3: -7,  # ES256
        -1: 1,  # P-256
        -2: numbers.x.to_bytes(32, "big"),
        -3: numbers.y.to_bytes(32, "big"),
    }
    return cbor2.dumps(cose_key)


def build_authenticator_data(
    rp_id: str,
    sign_count: int,
    credential_id: Optional[bytes] = None,
    credential_public_key: Optional[bytes] = None,
    user_verified: bool = True,
) -> bytes:
    rp_hash = hashlib.sha256(rp_id.encode("idna")).digest()
    flags = FLAG_UP
    if user_verified:
        flags |= FLAG_UV
    include_attestation = credential_id is not None and credential_public_key is not None
    if include_attestation:
        flags |= FLAG_AT

    data = bytearray()
    data.extend(rp_hash)
    data.append(flags)
    data.extend(sign_count.to_bytes(4, "big"))

    if include_attestation:
        data.extend(AAGUID)
        data.extend(len(credential_id).to_bytes(2, "big"))
        data.extend(credential_id)
        data.extend(credential_public_key)

    return bytes(data)


def build_attestation_object(auth_data: bytes) -> bytes:
    return cbor2.dumps({"fmt": "none", "authData": auth_data, "attStmt": {}})


@dataclass
class SoftCredential:
    credential_id: bytes
    private_key: ec.EllipticCurvePrivateKey
    rp_id: str
    sign_count: int = 0


@dataclass
class SoftwareAuthenticator:
    """ES256 authenticator producing browser-shaped credentials."""

    credentials: Dict[bytes, SoftCredential] = field(default_factory=dict)

    def make_credential(self, options: Dict[str, Any], origin: str = ORIGIN) -> Dict[str, Any]:
        rp_id = options["rp"]["id"]
        private_key = ec.generate_private_key(ec.SECP256R1())
        credential = SoftCredential(os.urandom(32), private_key, rp_id)
        self.credentials[credential.credential_id] = credential

        client_data = {
            "type": "webauthn.create",
            "challenge": options["challenge"],
            "origin": origin,
            "crossOrigin": False,
        }
        auth_data = build_authenticator_data(
            rp_id=rp_id,
            sign_count=credential.sign_count,
            credential_id=credential.credential_id,
            credential_public_key=build_credential_public_key(private_key.public_key()),
        )
        credential_id = b64url_encode(credential.credential_id)
        return {
            "id": credential_id,
            "rawId": credential_id,
            "type": "public-key",
            "response": {
                "clientDataJSON": encode_json_payload(client_data),
                "attestationObject": b64url_encode(build_attestation_object(auth_data)),
            },
            "clientExtensionResults": {},
        }

    def get_assertion(
        self,
        options: Dict[str, Any],
        credential_id: str,
        origin: str = ORIGIN,
    ) -> Dict[str, Any]:
        credential = self.credentials[b64url_decode(credential_id)]
        client_data = json.dumps(
            {"type": "webauthn.get", "challenge": options["challenge"], "origin": origin},
            separators=(",", ":"),
        ).encode("utf-8")
        credential.sign_count += 1
        auth_data = build_authenticator_data(rp_id=options["rpId"], sign_count=credential.sign_count)
        signature = credential.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(),
            ec.ECDSA(hashes.SHA256()),
        )
        return {
            "id": credential_id,
            "rawId": credential_id,
            "type": "public-key",
            "response": {
                "clientDataJSON": b64url_encode(client_data),
                "authenticatorData": b64url_encode(auth_data),
                "signature": b64url_encode(signature),
            },
            "clientExtensionResults": {},
        }


class FakeEngine:
    """Records every call; returns canned results."""

    def __init__(self, verified: bool = True) -> None:
        self.verified = verified
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def generate_registration_options(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("generate_registration_options", kwargs))
        return {"publicKey": {"challenge": "Y2hhbGxlbmdl", "rp": {"id": kwargs["rp_id"]}}}

    def verify_registration_response(self, **kwargs: Any) -> RegistrationVerdict:
        self.calls.append(("verify_registration_response", kwargs))
        if not self.verified:
            return RegistrationVerdict(verified=False)
        return RegistrationVerdict(
            verified=True,
            registration_info=RegistrationInfo(
                counter=0,
                credential_id=b"\x01\x02\x03",
                credential_public_key=b"\xa1\x01\x02",
            ),
        )

    def generate_authentication_options(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("generate_authentication_options", kwargs))
        return {"publicKey": {"challenge": "Y2hhbGxlbmdl", "rpId": kwargs["rp_id"]}}

    def verify_authentication_response(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("verify_authentication_response", kwargs))
        if not self.verified:
            return {"verified": False}
        return {
            "verified": True,
            "authenticationInfo": {"credentialID": "AQID", "newCounter": 1, "userVerified": True},
        }


@pytest.fixture
def settings() -> ServiceSettings:
    return ServiceSettings(log_level="DEBUG", ceremony_timeout_ms=30_000, challenge_ttl_seconds=60)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_client(settings, fake_engine):
    return create_app(settings, engine=fake_engine).test_client()


@pytest.fixture
def engine(settings) -> Fido2Engine:
    return Fido2Engine(
        ledger=ChallengeLedger(ttl=settings.challenge_ttl_seconds),
        timeout_ms=settings.ceremony_timeout_ms,
    )


@pytest.fixture
def client(settings, engine):
    return create_app(settings, engine=engine).test_client()


@pytest.fixture
def soft_authenticator() -> SoftwareAuthenticator:
    return SoftwareAuthenticator()
