"""Error taxonomy shared by the capture and export pipelines.

Every error carries a stable ``kind`` (sent to clients), a human-readable
default message and the HTTP status the API answers with.
"""
from typing import Optional


class ESMError(Exception):
    kind = "error"
    message = "Unexpected error."
    status_code = 500

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.message
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.detail}


class MissingInput(ESMError):
    kind = "missing_input"
    message = "Please select your mood score (1-5) first."
    status_code = 400


class InvalidInput(ESMError):
    kind = "invalid_input"
    message = "Invalid input."
    status_code = 422


class DeviceNotReady(ESMError):
    kind = "device_not_ready"
    message = "The camera is still getting ready, please try again shortly."
    status_code = 409


class CaptureFailed(ESMError):
    kind = "capture_failed"
    message = "Video recording failed, check camera permissions and retry."
    status_code = 500


class LocationUnavailable(ESMError):
    kind = "location_unavailable"
    message = "Location could not be determined."
    status_code = 500


class StorageFailed(ESMError):
    kind = "storage_failed"
    message = "Saving the video failed."
    status_code = 500


class StoreUnavailable(ESMError):
    kind = "store_unavailable"
    message = "The database is unavailable."
    status_code = 503


class WriteFailed(ESMError):
    kind = "write_failed"
    message = "Saving the record failed."
    status_code = 500


class NothingToExport(ESMError):
    kind = "nothing_to_export"
    message = "Nothing to export yet, record some data first."
    status_code = 404


class SharingUnavailable(ESMError):
    kind = "sharing_unavailable"
    message = "Sharing is not supported on this device."
    status_code = 503

    def __init__(self, detail: Optional[str] = None, shared=None):
        super().__init__(detail)
        # Files handed off before sharing went away
        self.shared = list(shared or [])

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.shared:
            payload["shared"] = [p.name for p in self.shared]
        return payload


class ConfirmationRequired(ESMError):
    kind = "confirmation_required"
    message = "Deleting all data must be confirmed."
    status_code = 400
