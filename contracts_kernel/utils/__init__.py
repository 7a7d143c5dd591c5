"""Utility functions."""

from contracts_kernel.utils.hashing import canonicalize_json, hash_payload, hash_secret, secrets_match

__all__ = ["canonicalize_json", "hash_payload", "hash_secret", "secrets_match"]
