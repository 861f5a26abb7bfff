"""Encryption and decryption adapters.

Files are encrypted with Fernet (AES-128-CBC + HMAC-SHA256). The key is
derived from a passphrase with PBKDF2-HMAC-SHA256 and a random per-file
salt, which is stored in front of the token:

    <16-byte salt><fernet token>
"""

from __future__ import annotations

import asyncio
import base64
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from vaultline.adapters.base import (
    AdapterContext,
    AdapterResult,
    read_env,
    require_single_input,
    strip_suffix,
)
from vaultline.exceptions import ExecutionError, ExecutionErrorKind
from vaultline.pipeline.constants import ENCRYPTION_EXTENSION
from vaultline.pipeline.definition import DecryptionStep, EncryptionStep

SALT_SIZE = 16
KDF_ITERATIONS = 390_000
ALGORITHM = "fernet-pbkdf2-sha256"


def derive_fernet(passphrase: str, salt: bytes) -> Fernet:
    """Derive a Fernet instance from a passphrase and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    key = base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))
    return Fernet(key)


def encrypt_bytes(passphrase: str, plaintext: bytes) -> bytes:
    """Encrypt content, returning ``salt + token``."""
    salt = os.urandom(SALT_SIZE)
    return salt + derive_fernet(passphrase, salt).encrypt(plaintext)


def decrypt_bytes(passphrase: str, payload: bytes) -> bytes:
    """Decrypt content produced by ``encrypt_bytes``.

    Raises:
        InvalidToken: If the passphrase is wrong or the payload is corrupt.
    """
    if len(payload) <= SALT_SIZE:
        raise InvalidToken
    salt, token = payload[:SALT_SIZE], payload[SALT_SIZE:]
    return derive_fernet(passphrase, salt).decrypt(token)


class EncryptionAdapter:
    """Transformer: ``<name>`` becomes ``<name>.enc``. Files only."""

    async def run(
        self,
        step: EncryptionStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        entry = require_single_input(step, inputs)
        if not entry.is_file():
            raise ExecutionError(
                ExecutionErrorKind.ENCRYPTION_FAILED,
                f"Only files can be encrypted: {entry.name}",
                details={"input": entry.name},
            )
        passphrase = read_env(ctx, step.key_reference)
        destination = output_dir / f"{entry.name}{ENCRYPTION_EXTENSION}"

        def _encrypt() -> int:
            payload = encrypt_bytes(passphrase, entry.read_bytes())
            destination.write_bytes(payload)
            return len(payload)

        try:
            size = await asyncio.to_thread(_encrypt)
        except OSError as e:
            raise ExecutionError(
                ExecutionErrorKind.ENCRYPTION_FAILED,
                f"Encryption failed: {e}",
                details={"input": entry.name},
            ) from e

        ctx.log.info("Encrypted", output=destination.name, size_bytes=size)
        return AdapterResult(runtime={"algorithm": ALGORITHM, "size_bytes": size})


class DecryptionAdapter:
    """Transformer: reverses ``EncryptionAdapter`` with the same key."""

    async def run(
        self,
        step: DecryptionStep,
        inputs: list[Path],
        output_dir: Path,
        ctx: AdapterContext,
    ) -> AdapterResult:
        entry = require_single_input(step, inputs)
        if not entry.is_file():
            raise ExecutionError(
                ExecutionErrorKind.DECRYPTION_FAILED,
                f"Only files can be decrypted: {entry.name}",
                details={"input": entry.name},
            )
        passphrase = read_env(ctx, step.key_reference)
        destination = output_dir / strip_suffix(entry.name, ENCRYPTION_EXTENSION)

        def _decrypt() -> int:
            plaintext = decrypt_bytes(passphrase, entry.read_bytes())
            destination.write_bytes(plaintext)
            return len(plaintext)

        try:
            size = await asyncio.to_thread(_decrypt)
        except InvalidToken as e:
            raise ExecutionError(
                ExecutionErrorKind.DECRYPTION_FAILED,
                "Decryption failed: wrong key or corrupt input",
                details={"input": entry.name},
            ) from e
        except OSError as e:
            raise ExecutionError(
                ExecutionErrorKind.DECRYPTION_FAILED,
                f"Decryption failed: {e}",
                details={"input": entry.name},
            ) from e

        ctx.log.info("Decrypted", output=destination.name, size_bytes=size)
        return AdapterResult(runtime={"algorithm": ALGORITHM, "size_bytes": size})
