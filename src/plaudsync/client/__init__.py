"""Client module - HTTP access to the Plaud web API and stored credentials."""

from plaudsync.client.api import APIError, AuthenticationError, HTTPClient, NotFoundError
from plaudsync.client.credentials import (
    StoredCredentials,
    is_expired,
    load_credentials,
    save_credentials,
)
from plaudsync.client.models import Recording, Transcript, TranscriptSegment
from plaudsync.client.remote import RecordingClient, RemoteClient

__all__ = [
    # HTTP
    "APIError",
    "AuthenticationError",
    "HTTPClient",
    "NotFoundError",
    # Credentials
    "StoredCredentials",
    "is_expired",
    "load_credentials",
    "save_credentials",
    # Models
    "Recording",
    "Transcript",
    "TranscriptSegment",
    # Remote
    "RecordingClient",
    "RemoteClient",
]
