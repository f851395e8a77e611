"""
NEUROGUARD - Crypto Provider Implementation
Hachage scrypt des secrets locaux et empreintes SHA-384.
"""

import base64
import hashlib
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .interfaces import ICryptoProvider


class CryptoProviderError(Exception):
    """Erreur cryptographique."""

    pass


class CryptoProvider(ICryptoProvider):
    """
    Implémentation des opérations cryptographiques.

    Les secrets ne sont jamais conservés en clair: seul le hash encodé
    "scrypt$n$r$p$sel$hash" (base64) est stocké.

    Example:
        crypto = CryptoProvider()
        encoded = crypto.hash_secret("coord123")
        crypto.verify_secret("coord123", encoded)  # True
    """

    SCHEME: str = "scrypt"
    SALT_BYTES: int = 16
    KEY_LENGTH: int = 32

    def __init__(self, n: int = 2**14, r: int = 8, p: int = 1):
        """
        Args:
            n: Coût CPU/mémoire scrypt (puissance de 2)
            r: Taille de bloc
            p: Parallélisation
        """
        if n < 2 or n & (n - 1):
            raise CryptoProviderError(f"n doit être une puissance de 2 > 1, reçu {n}")
        self.n = n
        self.r = r
        self.p = p

    def hash_secret(self, secret: str) -> str:
        """
        Dérive un hash scrypt salé.

        Args:
            secret: Secret en clair

        Returns:
            Hash encodé
        """
        if not secret:
            raise CryptoProviderError("Secret vide")

        salt = os.urandom(self.SALT_BYTES)
        derived = self._kdf(salt, self.n, self.r, self.p).derive(secret.encode("utf-8"))
        return "$".join(
            [
                self.SCHEME,
                str(self.n),
                str(self.r),
                str(self.p),
                base64.b64encode(salt).decode("ascii"),
                base64.b64encode(derived).decode("ascii"),
            ]
        )

    def verify_secret(self, secret: str, encoded: str) -> bool:
        """
        Vérifie un secret contre son hash (temps constant).

        Les paramètres de coût sont lus depuis le hash encodé, un hash
        produit avec un autre coût reste donc vérifiable.

        Returns:
            True si le secret correspond, False sinon ou si hash illisible
        """
        try:
            scheme, n, r, p, salt_b64, hash_b64 = encoded.split("$")
            if scheme != self.SCHEME:
                return False
            salt = base64.b64decode(salt_b64)
            expected = base64.b64decode(hash_b64)
            if not salt or not expected:
                return False
            kdf = self._kdf(salt, int(n), int(r), int(p), length=len(expected))
            kdf.verify((secret or "").encode("utf-8"), expected)
            return True
        except InvalidKey:
            return False
        except (ValueError, TypeError):
            return False

    def hash(self, data: bytes) -> str:
        """
        Calcule hash SHA-384.

        Returns:
            Hash hex string (96 caractères)
        """
        return hashlib.sha384(data).hexdigest()

    def _kdf(self, salt: bytes, n: int, r: int, p: int, length: int = KEY_LENGTH) -> Scrypt:
        return Scrypt(salt=salt, length=length, n=n, r=r, p=p)
