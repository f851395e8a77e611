#!/usr/bin/env python3
"""
NEUROGUARD - Hash Secret
Produit la valeur secret_hash d'un compte local pour la configuration YAML.
"""

import getpass
import sys

from neuroguard.core.crypto_provider import CryptoProvider


def main():
    secret = getpass.getpass("Secret: ")
    confirmation = getpass.getpass("Confirmation: ")

    if not secret:
        print("✗ Secret vide", file=sys.stderr)
        sys.exit(1)
    if secret != confirmation:
        print("✗ Les secrets ne correspondent pas", file=sys.stderr)
        sys.exit(1)

    print(CryptoProvider().hash_secret(secret))


if __name__ == "__main__":
    main()
