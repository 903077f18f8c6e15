"""
Credential Hasher.

Deterministic one-way transform of a plaintext password into the digest
stored on a ``UserRecord``: SHA-256 over ``plaintext + salt`` rendered as
lowercase hex.

Security Note
-------------
The salt is a single deployment-wide constant, there is no per-user salt
and no iteration count.  Two users with the same password therefore share
a digest, and the digest is cheap to brute-force.  The scheme is kept
because every stored record in existing deployments was hashed this way;
see DESIGN.md, open question (b).
"""

from __future__ import annotations

import hashlib
import hmac


class CredentialHasher:
    """Salted SHA-256 password hasher.

    Parameters
    ----------
    salt:
        Deployment-wide salt appended to every plaintext before hashing.
    """

    def __init__(self, salt: str) -> None:
        if "sha256" not in hashlib.algorithms_available:
            raise RuntimeError("SHA-256 is not available in this Python build.")
        self._salt: str = salt

    def hash(self, plaintext: str) -> str:
        data = (plaintext + self._salt).encode("utf-8")
        return hashlib.sha256(data).hexdigest()

    def verify(self, plaintext: str, digest: str) -> bool:
        """Constant-time comparison of ``hash(plaintext)`` with *digest*."""
        return hmac.compare_digest(self.hash(plaintext), digest)
