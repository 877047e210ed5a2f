"""Ceremony operations: option building and response verification.

Every operation pulls all of its inputs out of :class:`RequestParameters`
before the protocol engine is called, so invalid input never costs a
challenge or a verification attempt.
"""

from __future__ import annotations

from typing import Any, Dict

from fido2.utils import websafe_encode

from .engine import ProtocolEngine
from .errors import RequestError
from .params import RequestParameters, decode_json
from .schemas import (
    AUTHENTICATOR_ATTACHMENTS,
    is_authentication_response,
    is_credential_descriptor,
    is_registration_response,
    is_stored_authenticator,
)

RESIDENT_KEY = "required"
USER_VERIFICATION = "preferred"
ATTESTATION_TYPE = "none"
DEFAULT_ATTACHMENT = "platform"


def build_registration_options(params: RequestParameters, engine: ProtocolEngine) -> Dict[str, Any]:
    rp_name = params.require_string("rpName")
    rp_id = params.require_string("rpID")
    user_id = params.require_string("userID")
    user_name = params.require_string("userName")
    exclude_credentials = params.optional_array(
        "excludeCredentials[]", decode_json, is_credential_descriptor
    )
    attachment = params.optional_enum(
        "authenticatorAttachment", DEFAULT_ATTACHMENT, AUTHENTICATOR_ATTACHMENTS
    )
    return engine.generate_registration_options(
        rp_name=rp_name,
        rp_id=rp_id,
        user_id=user_id,
        user_name=user_name,
        exclude_credentials=exclude_credentials,
        authenticator_selection={
            "authenticatorAttachment": attachment,
            "residentKey": RESIDENT_KEY,
            "userVerification": USER_VERIFICATION,
        },
        attestation_type=ATTESTATION_TYPE,
    )


def verify_registration(params: RequestParameters, engine: ProtocolEngine) -> Dict[str, Any]:
    response = params.require_body_field("response", decode_json, is_registration_response)
    challenge = params.require_string("challenge")
    origin = params.require_string("origin")
    rp_id = params.require_string("rpID")

    verdict = engine.verify_registration_response(
        response=response,
        expected_challenge=challenge,
        expected_origin=origin,
        expected_rp_id=rp_id,
    )
    if not verdict.verified or verdict.registration_info is None:
        raise RequestError.verification_failed()

    info = verdict.registration_info
    return {
        "counter": info.counter,
        "credentialID": websafe_encode(info.credential_id),
        "publicKey": websafe_encode(info.credential_public_key),
    }


def build_authentication_options(params: RequestParameters, engine: ProtocolEngine) -> Dict[str, Any]:
    rp_id = params.require_string("rpID")
    return engine.generate_authentication_options(rp_id=rp_id, user_verification=USER_VERIFICATION)


def verify_authentication(params: RequestParameters, engine: ProtocolEngine) -> Dict[str, Any]:
    authenticator = params.require_body_field("authenticator", decode_json, is_stored_authenticator)
    response = params.require_body_field("response", decode_json, is_authentication_response)
    challenge = params.require_string("challenge")
    origin = params.require_string("origin")
    rp_id = params.require_string("rpID")

    result = engine.verify_authentication_response(
        authenticator=authenticator,
        response=response,
        expected_challenge=challenge,
        expected_origin=origin,
        expected_rp_id=rp_id,
    )
    if not result.get("verified"):
        raise RequestError.verification_failed()
    return result
