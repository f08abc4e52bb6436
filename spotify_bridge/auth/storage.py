"""
Goal: Persist the refresh token (and, for the CLI, the client ids) in the OS credential store.
So a restart can refresh silently instead of sending the user back through the browser.
"""

from typing import Optional, Tuple

import keyring

from spotify_bridge.settings import CLIENT_ID_KEY, CLIENT_SECRET_KEY, KEYRING_SERVICE


class KeyringStorage:
    """String storage on top of keyring; one service bucket for everything."""

    def __init__(self, service: str = KEYRING_SERVICE) -> None:
        if not service:
            raise ValueError("Keyring service name must be a non-empty string.")
        self.service = service

    def get_string(self, key: str) -> Optional[str]:
        # Empty strings are how a cleared value looks on backends without delete
        return keyring.get_password(self.service, key) or None

    def set_string(self, key: str, value: str) -> None:
        keyring.set_password(self.service, key, value)


def save_client_ids(storage: KeyringStorage, client_id: str, client_secret: str = "") -> None:
    """
    Save the Spotify client id (and secret, when given) for later CLI runs.
    """
    if not client_id or not isinstance(client_id, str):
        raise ValueError("Client ID must be a non-empty string.")
    storage.set_string(CLIENT_ID_KEY, client_id)
    if client_secret:
        storage.set_string(CLIENT_SECRET_KEY, client_secret)


def load_client_ids(storage: KeyringStorage) -> Tuple[str, str]:
    return (
        storage.get_string(CLIENT_ID_KEY) or "",
        storage.get_string(CLIENT_SECRET_KEY) or "",
    )
