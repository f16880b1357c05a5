"""Recording client for the Plaud web API.

This module provides:
- RemoteClient: The interface the sync engine consumes
- RecordingClient: Paged listing, transcript and audio URL lookups
- Payload adaptation from the service's response shapes

Response shapes handled here:

    GET /file/simple/web?skip=N&limit=50
        {"data_file_list": [{"id", "filename", "duration", "start_time",
                             "version_ms", "edit_time", "is_trans",
                             "filesize", "fullname", ...}]}

    POST /file/list  (body: ["<id>"])
        {"data_file_list": [{...above..., "trans_result": [
            {"speaker", "text", "start_time_ms", "end_time_ms"}]}]}

    GET /file/temp-url/<id>
        {"temp_url": "https://<bucket>/...?X-Amz-..."}

Durations arrive in milliseconds, timestamps as unix milliseconds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from plaudsync.client.api import APIError, HTTPClient, NotFoundError
from plaudsync.client.models import Recording, Transcript, TranscriptSegment
from plaudsync.core.timestamps import ensure_utc, from_epoch, utc_now

if TYPE_CHECKING:
    from plaudsync.client.credentials import StoredCredentials

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.plaud.ai"
PAGE_SIZE = 50

# Audio file extension -> MIME type reported for the recording
EXTENSION_MIME_TYPES = {
    "ogg": "audio/ogg",
    "m4a": "audio/m4a",
    "mp3": "audio/mpeg",
    "opus": "audio/ogg; codecs=opus",
}
DEFAULT_MIME_TYPE = "audio/mp4"


class RemoteClient(Protocol):
    """Interface of the remote service consumed by the sync engine.

    Attributes:
        http: Streaming download capability. None when the client cannot
            download audio, in which case audio is skipped.
    """

    http: HTTPClient | None

    def is_authenticated(self) -> bool: ...

    def list_recordings(
        self,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Iterator[Recording]: ...

    def get_transcript(self, recording_id: str) -> Transcript: ...

    def get_audio_download_url(self, recording_id: str) -> str | None: ...

    def close(self) -> None: ...


class RecordingClient:
    """Client for listing recordings and fetching transcripts and audio URLs."""

    def __init__(self, credentials: StoredCredentials, http: HTTPClient | None = None) -> None:
        """Initialize the recording client.

        Args:
            credentials: Stored session credentials.
            http: Optional HTTP client (created from credentials if omitted).
        """
        self.http: HTTPClient | None = http or HTTPClient(credentials)
        endpoints = credentials.endpoint_map
        self._api_base = (
            (endpoints.api_base_url if endpoints else None)
            or credentials.api_base_url
            or DEFAULT_API_BASE
        ).rstrip("/")
        self._endpoints = endpoints

    def close(self) -> None:
        """Close the HTTP client."""
        if self.http:
            self.http.close()

    def __enter__(self) -> RecordingClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def _http(self) -> HTTPClient:
        if self.http is None:
            raise RuntimeError("RecordingClient has no HTTP client")
        return self.http

    # === Endpoints ===

    def _endpoint(self, override: str | None, path: str) -> str:
        return (override or f"{self._api_base}{path}").replace("/{id}", "")

    def list_url(self) -> str:
        return self._endpoint(
            self._endpoints and self._endpoints.list_recordings, "/file/simple/web"
        )

    def batch_detail_url(self) -> str:
        return self._endpoint(self._endpoints and self._endpoints.batch_detail, "/file/list")

    def audio_url(self, recording_id: str) -> str:
        base = self._endpoint(self._endpoints and self._endpoints.get_audio_url, "/file/temp-url")
        return f"{base}/{recording_id}"

    def profile_url(self) -> str:
        return self._endpoint(self._endpoints and self._endpoints.user_profile, "/user/me")

    # === Operations ===

    def is_authenticated(self) -> bool:
        """Check whether the stored session is accepted by the service.

        A region-redirect response still means the session is valid.
        """
        try:
            data = self._http.get_json(self.profile_url())
        except APIError as e:
            logger.debug(f"Authentication check failed: {e}")
            return False
        if extract_regional_base_url(data) is not None:
            return True
        return isinstance(data, dict) and (
            data.get("status") == 0 or data.get("data_user") is not None
        )

    def list_recordings(
        self,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Iterator[Recording]:
        """Iterate over recordings, newest first.

        The service has no date filter, so `since` is applied locally.

        Args:
            since: Skip recordings recorded before this time.
            limit: Stop after yielding this many recordings.
        """
        since = ensure_utc(since) if since else None
        skip = 0
        count = 0

        while True:
            params = {
                "skip": str(skip),
                "limit": str(PAGE_SIZE),
                "is_trash": "0",
                "sort_by": "start_time",
                "is_desc": "true",
            }
            items = extract_file_list(self._http.get_json(self.list_url(), params=params))
            logger.debug(f"Fetched recording page (skip={skip}, items={len(items)})")
            if not items:
                return

            for item in items:
                try:
                    recording = normalize_recording(item)
                except ValidationError as e:
                    logger.warning(f"Skipping malformed recording payload: {e}")
                    continue

                if since and recording.recorded_at < since:
                    continue

                yield recording
                count += 1
                if limit and count >= limit:
                    return

            if len(items) < PAGE_SIZE:
                return
            skip += len(items)

    def get_transcript(self, recording_id: str) -> Transcript:
        """Fetch the transcript of a recording.

        Raises:
            NotFoundError: If the service returns no record for the id.
        """
        data = self._http.post_json(self.batch_detail_url(), [recording_id])
        items = extract_file_list(data)
        if not items:
            raise NotFoundError(f"Recording {recording_id} not found", 404, recording_id)
        return normalize_transcript(items[0], recording_id)

    def get_audio_download_url(self, recording_id: str) -> str | None:
        """Get a pre-signed audio download URL, or None if unavailable."""
        try:
            data = self._http.get_json(self.audio_url(recording_id))
        except APIError as e:
            logger.debug(f"Could not get audio download URL for {recording_id}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return _str_or_none(data.get("temp_url") or data.get("url") or data.get("downloadUrl"))


# === Payload adaptation ===


def extract_file_list(data: Any) -> list[dict[str, Any]]:
    """Extract the list of file records from a response."""
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = next(
            (data[k] for k in ("data_file_list", "data", "list") if isinstance(data.get(k), list)),
            [],
        )
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def extract_regional_base_url(data: Any) -> str | None:
    """Extract the regional API base from a region-redirect response.

    The global endpoint answers ``{"status": -302, "data": {"domains":
    {"api": "https://api-euc1.plaud.ai"}}}`` for accounts hosted elsewhere.
    """
    if not isinstance(data, dict) or data.get("status") != -302:
        return None
    domains = (data.get("data") or {}).get("domains") or {}
    api = domains.get("api") if isinstance(domains, dict) else None
    return api if isinstance(api, str) else None


def normalize_recording(raw: dict[str, Any]) -> Recording:
    """Adapt a raw file record into a Recording.

    Raises:
        ValidationError: If the record lacks required fields.
    """
    duration_ms = _number(raw.get("duration", raw.get("duration_ms")))
    start_ms = _number(raw.get("start_time"))
    recorded_at = from_epoch(start_ms) if start_ms > 0 else utc_now()

    version_ms = _number(raw.get("version_ms"))
    edit_time = _number(raw.get("edit_time"))
    updated_at = from_epoch(version_ms) if version_ms > 0 else recorded_at
    created_at = from_epoch(edit_time) if edit_time > 0 else recorded_at

    fullname = str(raw.get("fullname") or "")
    extension = fullname.rsplit(".", 1)[-1].lower() if "." in fullname else ""
    is_trans = raw.get("is_trans")

    return Recording(
        id=str(raw.get("id") or ""),
        title=_str_or_none(raw.get("filename") or raw.get("name") or raw.get("title")),
        duration=duration_ms / 1000,
        recorded_at=recorded_at,
        created_at=created_at,
        updated_at=updated_at,
        file_size=_int_or_none(raw.get("filesize", raw.get("file_size"))),
        mime_type=EXTENSION_MIME_TYPES.get(extension, DEFAULT_MIME_TYPE),
        has_transcript=bool(is_trans or raw.get("has_transcription") or raw.get("hasNote")),
        transcript_status="completed" if is_trans else None,
        language=_str_or_none(raw.get("language") or raw.get("lang")),
        device_id=_str_or_none(
            raw.get("serial_number") or raw.get("device_id") or raw.get("deviceId")
        ),
        tags=_str_list(raw.get("filetag_id_list") or raw.get("tags")),
        summary=_summary_text(raw.get("ai_content")),
        raw=raw,
    )


def normalize_transcript(raw: dict[str, Any], recording_id: str) -> Transcript:
    """Adapt a detailed file record into a Transcript."""
    segments_raw = raw.get("trans_result")
    if not isinstance(segments_raw, list):
        segments_raw = []

    segments = [
        TranscriptSegment(
            index=i,
            start_ms=int(_number(s.get("start_time_ms", s.get("startMs", s.get("startTime"))))),
            end_ms=int(_number(s.get("end_time_ms", s.get("endMs", s.get("endTime"))))),
            speaker=_str_or_none(s.get("speaker")),
            text=str(s.get("text") or "").strip(),
        )
        for i, s in enumerate(segments_raw)
        if isinstance(s, dict)
    ]

    created = raw.get("created_at") or raw.get("createTime")
    return Transcript.from_segments(
        recording_id,
        segments,
        language=_str_or_none(raw.get("language") or raw.get("lang")),
        duration=_number(raw.get("duration_ms", raw.get("duration"))) / 1000,
        created_at=_parse_time(created),
        raw=raw,
    )


def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, str) and value:
        if "T" in value or "-" in value:
            try:
                return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
            except ValueError:
                return None
        value = _number(value)
    if isinstance(value, (int, float)) and value > 0:
        return from_epoch(float(value))
    return None


def _summary_text(ai_content: Any) -> str | None:
    if not isinstance(ai_content, dict):
        return None
    return _str_or_none(
        ai_content.get("summary") or ai_content.get("text") or ai_content.get("content")
    )


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0  # NaN


def _int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    number = _number(value)
    return int(number) if number >= 0 else None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    result = [v for v in value if isinstance(v, str)]
    return result or None
