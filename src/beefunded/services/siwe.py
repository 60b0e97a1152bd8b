"""Sign-In-With-Ethereum (EIP-4361) message parsing and verification."""

from __future__ import annotations

import logging

from siwe import NonceMismatch, SiweMessage, VerificationError

logger = logging.getLogger(__name__)


class SiweError(Exception):
    """Base class for SIWE verification failures."""


class MalformedMessageError(SiweError):
    """The message does not follow the EIP-4361 grammar."""


class InvalidSignatureError(SiweError):
    """The signature does not prove control of the message address."""


class NonceMismatchError(SiweError):
    """The message nonce differs from the nonce issued by the server."""


def parse_siwe_message(message: str) -> SiweMessage:
    """Parse ``message`` with the EIP-4361 ABNF grammar.

    Raises:
        MalformedMessageError: If the text is not a well-formed SIWE message,
            including addresses that are not EIP-55 checksummed.
    """
    try:
        return SiweMessage.from_message(message=message)
    except ValueError as err:
        raise MalformedMessageError(str(err)) from err


def verify_siwe(
    message: str,
    signature: str,
    expected_nonce: str,
    *,
    domain: str | None = None,
) -> str:
    """Verify a signed SIWE message and return the checksummed signer address.

    Fails closed: any problem during parsing or recovery is reported as
    :class:`InvalidSignatureError` unless the nonce itself is wrong.

    Raises:
        NonceMismatchError: The message nonce is not ``expected_nonce``.
        InvalidSignatureError: Anything else that prevents trusting the message.
    """
    try:
        parsed = parse_siwe_message(message)
    except MalformedMessageError as err:
        raise InvalidSignatureError(str(err)) from err

    if parsed.nonce != expected_nonce:
        raise NonceMismatchError("Message nonce does not match the issued nonce")

    try:
        parsed.verify(signature, domain=domain, nonce=expected_nonce)
    except NonceMismatch as err:
        raise NonceMismatchError("Message nonce does not match the issued nonce") from err
    except VerificationError as err:
        raise InvalidSignatureError(type(err).__name__) from err
    except Exception as err:
        logger.info("SIWE signature recovery failed: %s", err)
        raise InvalidSignatureError("Signature could not be recovered") from err

    return parsed.address
