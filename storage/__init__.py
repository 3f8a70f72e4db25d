"""
storage - Device-local Storage Module

Key/value persistence for session bookkeeping and login conveniences,
with an encrypted variant for higher-sensitivity tokens.
Part of Roominate - Boarding-House Marketplace Client.
"""

from storage.kv_store import EncryptedKeyValueStore
from storage.kv_store import KeyValueStore

__all__ = ["EncryptedKeyValueStore", "KeyValueStore"]
