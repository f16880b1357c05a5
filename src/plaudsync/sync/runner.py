"""High-level entry point: stored credentials plus one re-authentication.

This module provides:
- PlaudSync: sync / backfill / verify / export_dataset over a data directory

Acquiring fresh credentials (a browser login) is outside this package; the
caller passes an ``authenticate`` callable returning StoredCredentials. When
a run is rejected for authentication, it is called once, the credentials are
saved, and the run starts over. A second rejection propagates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from plaudsync.client.api import AuthenticationError
from plaudsync.client.credentials import (
    StoredCredentials,
    is_expired,
    load_credentials,
    save_credentials,
)
from plaudsync.client.remote import RecordingClient, RemoteClient
from plaudsync.core.config import SyncSettings
from plaudsync.core.types import RunMode
from plaudsync.storage.paths import DATASET_NAME, default_out_dir
from plaudsync.sync.engine import SyncEngine
from plaudsync.sync.types import SyncOptions, SyncResult, VerifyResult

ClientFactory = Callable[[StoredCredentials], RemoteClient]
Authenticator = Callable[[], StoredCredentials]


class PlaudSync:
    """Sync Plaud recordings into a local data directory.

    Usage:
        plaud = PlaudSync(SyncSettings(out_dir=Path("~/plaud")))
        result = plaud.sync(limit=10)
        if not result.ok:
            for error in result.errors:
                print(error.recording_id, error.error)
    """

    def __init__(
        self,
        settings: SyncSettings | None = None,
        authenticate: Authenticator | None = None,
        credentials_path: Path | None = None,
        client_factory: ClientFactory = RecordingClient,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the facade.

        Args:
            settings: Data directory and defaults (default: default_out_dir()).
            authenticate: Returns fresh credentials when a run is rejected.
            credentials_path: Credentials file (default: ~/.plaudsync/credentials.json).
            client_factory: Builds a remote client from credentials.
            logger: Logger passed to the engine and its components.
            sleep: Sleep function used between retries.
        """
        self.settings = settings or SyncSettings(out_dir=default_out_dir())
        self._authenticate = authenticate
        self._credentials_path = credentials_path
        self._client_factory = client_factory
        self._log = logger or logging.getLogger(__name__)
        self.engine = SyncEngine(self.settings.out_dir, logger=self._log, sleep=sleep)

    @property
    def out_dir(self) -> Path:
        return self.settings.out_dir

    def is_authenticated(self) -> bool:
        """Check that stored credentials exist and have not expired."""
        credentials = load_credentials(self._credentials_path)
        return credentials is not None and not is_expired(credentials)

    def build_options(
        self,
        since: datetime | None = None,
        limit: int | None = None,
        dry_run: bool = False,
        **overrides: Any,
    ) -> SyncOptions:
        """Build run options from the settings, with per-run overrides."""
        values: dict[str, Any] = {
            "concurrency": self.settings.concurrency,
            "formats": self.settings.formats,
            "include_dataset": self.settings.include_dataset,
        }
        values.update(overrides)
        return SyncOptions(since=since, limit=limit, dry_run=dry_run, **values)

    # === Operations ===

    def sync(self, **kwargs: Any) -> SyncResult:
        """Incremental sync: new or changed recordings since the last success.

        Keyword arguments are passed to build_options().
        """
        return self._run_with_reauth(self.build_options(**kwargs), RunMode.SYNC)

    def backfill(self, **kwargs: Any) -> SyncResult:
        """Process every recording (since the given date, if any)."""
        return self._run_with_reauth(self.build_options(**kwargs), RunMode.BACKFILL)

    def verify(self, repair: bool = False) -> VerifyResult:
        """Verify checksums of every tracked recording; optionally repair."""
        if not repair:
            return self.engine.verify()
        client = self._build_client()
        try:
            return self.engine.verify(repair=True, client=client)
        finally:
            client.close()

    def export_dataset(self, name: str = DATASET_NAME) -> Path:
        """Re-export every transcript on disk to the JSONL dataset."""
        return self.engine.export_dataset(name)

    # === Internals ===

    def _run_with_reauth(self, options: SyncOptions, mode: RunMode) -> SyncResult:
        try:
            return self._run(options, mode)
        except AuthenticationError as e:
            if self._authenticate is None:
                raise
            self._log.warning(f"Session rejected ({e}); re-authenticating and retrying once")

        credentials = self._authenticate()
        save_credentials(credentials, self._credentials_path)
        self._log.info("Re-authenticated, restarting run")
        return self._run(options, mode)

    def _run(self, options: SyncOptions, mode: RunMode) -> SyncResult:
        client = self._build_client()
        try:
            return self.engine.run(client, options, mode)
        finally:
            client.close()

    def _build_client(self) -> RemoteClient:
        """Build a remote client from stored credentials.

        Raises:
            AuthenticationError: If credentials are missing or expired.
        """
        credentials = load_credentials(self._credentials_path)
        if credentials is None:
            raise AuthenticationError("No stored credentials; authenticate first")
        if is_expired(credentials):
            raise AuthenticationError("Stored credentials have expired; authenticate again")
        return self._client_factory(credentials)
