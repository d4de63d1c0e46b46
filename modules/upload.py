from __future__ import annotations

import asyncio
import hashlib
import logging
import random
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Optional

from core.persistence import PersistenceBridge


logger = logging.getLogger(__name__)


# ============================================
# 1. Upload state
# ============================================

UPLOAD_IDLE = "idle"
UPLOAD_UPLOADING = "uploading"
UPLOAD_SUCCESS = "success"
UPLOAD_ERROR = "error"

CSV_CONTENT_TYPE = "text/csv"


@dataclass(frozen=True)
class UploadState:
    """
    Status of one upload dialog.

    Attributes
    ----------
    status : str
        One of 'idle', 'uploading', 'success', 'error'.
    artifact_ref : Optional[str]
        Identifier of the uploaded artifact, only set on 'success'.
    error : Optional[str]
        Failure message, only set on 'error'.
    """
    status: str = UPLOAD_IDLE
    artifact_ref: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status not in (UPLOAD_IDLE, UPLOAD_UPLOADING, UPLOAD_SUCCESS, UPLOAD_ERROR):
            raise ValueError(f"Unknown upload status: {self.status!r}")
        if (self.artifact_ref is not None) != (self.status == UPLOAD_SUCCESS):
            raise ValueError("artifact_ref is carried by the success state only.")
        if (self.error is not None) != (self.status == UPLOAD_ERROR):
            raise ValueError("error is carried by the error state only.")

    @classmethod
    def idle(cls) -> "UploadState":
        return cls()

    @classmethod
    def uploading(cls) -> "UploadState":
        return cls(status=UPLOAD_UPLOADING)

    @classmethod
    def succeeded(cls, artifact_ref: str) -> "UploadState":
        return cls(status=UPLOAD_SUCCESS, artifact_ref=artifact_ref)

    @classmethod
    def failed(cls, message: str) -> "UploadState":
        return cls(status=UPLOAD_ERROR, error=message)


# ============================================
# 2. Errors and file handle
# ============================================

class InvalidFileTypeError(Exception):
    """Raised when the chosen file is not a CSV file."""
    pass


class TransferError(Exception):
    """Raised by a transport when the upload does not go through."""
    pass


class UploadFlowError(Exception):
    """Raised when the dialog is driven out of order."""
    pass


@dataclass
class UploadFile:
    name: str
    size: int = 0
    content_type: Optional[str] = None
    data: bytes = b""

    @classmethod
    def from_uploaded(cls, uploaded: Any) -> "UploadFile":
        """Build from a Streamlit UploadedFile (or anything with the same attributes)."""
        data = uploaded.getvalue() if hasattr(uploaded, "getvalue") else b""
        size = getattr(uploaded, "size", None)
        return cls(
            name=str(uploaded.name),
            size=int(size) if size is not None else len(data),
            content_type=getattr(uploaded, "type", None) or None,
            data=data,
        )


def is_csv_file(file: UploadFile) -> bool:
    if file.content_type:
        return file.content_type.split(";")[0].strip().lower() == CSV_CONTENT_TYPE
    return PurePath(file.name).suffix.lower() == ".csv"


def artifact_id_for(file: UploadFile) -> str:
    digest = hashlib.sha1()
    digest.update(file.name.encode("utf-8"))
    digest.update(str(file.size).encode("ascii"))
    digest.update(file.data)
    return f"{PurePath(file.name).stem}-{digest.hexdigest()[:12]}"


# ============================================
# 3. Transport
# ============================================

class SimulatedUploadTransport:
    """
    Stand-in for the forecasting API upload endpoint.

    Waits ``delay_seconds`` and then fails with probability
    ``failure_rate``. A real transport would post the file and the
    forecast type as multipart form data.
    """

    def __init__(
        self,
        delay_seconds: float = 1.5,
        failure_rate: float = 0.05,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1.")
        self.delay_seconds = delay_seconds
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    async def upload(self, file: UploadFile, forecast_type: str) -> str:
        logger.info(
            "Uploading file to API: file_name=%s file_size=%s forecast_type=%s",
            file.name,
            file.size,
            forecast_type,
        )
        await asyncio.sleep(self.delay_seconds)

        if self._rng.random() < self.failure_rate:
            raise TransferError("Network error")

        return artifact_id_for(file)


# ============================================
# 4. Dialog controller
# ============================================

class UploadDialog:
    """One upload dialog instance.

    The selected goal is resolved through the PersistenceBridge at the
    moment a file is chosen, so the dialog works even when no screen has
    touched the SelectionStore yet.
    """

    def __init__(self, bridge: PersistenceBridge, transport: Any) -> None:
        self._bridge = bridge
        self._transport = transport
        self._state = UploadState.idle()
        self._file: Optional[UploadFile] = None
        self._tagged_goal: Optional[str] = None
        self._generation = 0
        self._open = True

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def uploaded_file(self) -> Optional[UploadFile]:
        return self._file

    @property
    def tagged_goal(self) -> Optional[str]:
        return self._tagged_goal

    @property
    def is_open(self) -> bool:
        return self._open

    async def select_file(self, file: UploadFile) -> UploadState:
        if not self._open:
            raise UploadFlowError("The upload dialog has been closed.")
        if not is_csv_file(file):
            raise InvalidFileTypeError("Please upload a CSV file")
        if self._state.status != UPLOAD_IDLE:
            raise UploadFlowError(
                f"A file can only be chosen while idle, current status is {self._state.status!r}."
            )

        self._state = UploadState.uploading()
        self._file = file
        self._tagged_goal = self._bridge.resolve_primary_goal()
        generation = self._generation

        try:
            artifact_ref = await self._transport.upload(file, self._tagged_goal)
        except TransferError as exc:
            if self._is_stale(generation):
                logger.info("Discarding failed upload of %s, dialog no longer current", file.name)
                return self._state
            logger.warning("Upload of %s failed: %s", file.name, exc)
            self._state = UploadState.failed(str(exc))
            return self._state
        except asyncio.CancelledError:
            if not self._is_stale(generation):
                logger.info("Upload of %s was cancelled, returning to idle", file.name)
                self._state = UploadState.idle()
                self._file = None
                self._tagged_goal = None
            raise
        except Exception as exc:
            if self._is_stale(generation):
                logger.info("Discarding crashed upload of %s, dialog no longer current", file.name)
                return self._state
            logger.exception("Upload of %s crashed", file.name)
            self._state = UploadState.failed(str(exc) or type(exc).__name__)
            return self._state

        if self._is_stale(generation):
            logger.info("Discarding finished upload of %s, dialog no longer current", file.name)
            return self._state

        logger.info("Upload of %s finished as %s", file.name, artifact_ref)
        self._state = UploadState.succeeded(artifact_ref)
        return self._state

    def retry(self) -> None:
        if self._state.status == UPLOAD_UPLOADING:
            raise UploadFlowError("Cannot retry while an upload is in progress.")
        self._generation += 1
        self._state = UploadState.idle()
        self._file = None
        self._tagged_goal = None

    def dismiss(self) -> bool:
        """Close the dialog. Refused while an upload is in flight."""
        if self._state.status == UPLOAD_UPLOADING:
            return False
        self._open = False
        return True

    def dispose(self) -> None:
        """Tear the dialog down. A transfer still running is left to finish unseen."""
        self._generation += 1
        self._open = False

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation
