"""Harvest push service certificates and load keystores for TLS clients."""

from apns_keystore.exceptions import (
    ChainNotObtainedError,
    HarvestError,
    InvalidKeystoreFormatError,
    InvalidKeystorePasswordError,
    InvalidKeystoreReferenceError,
    KeystoreError,
)
from apns_keystore.keystore import Keystore
from apns_keystore.loader import load_keystore, load_server_keystore
from apns_keystore.models import Endpoint, PushServer
from apns_keystore.network import harvest_certificate

__version__ = "0.1.0"
