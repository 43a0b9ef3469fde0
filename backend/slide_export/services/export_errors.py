from __future__ import annotations


class ExportError(Exception):
    """Base class for export failures that map onto an HTTP response."""

    status_code = 500
    public_message = "Export failed"

    def __init__(self, message: str | None = None, *, details: str | None = None):
        super().__init__(message or self.public_message)
        self.details = details

    def as_payload(self) -> dict[str, str]:
        payload = {"error": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class InputError(ExportError):
    status_code = 400
    public_message = "No slides provided"


class SessionLaunchError(ExportError):
    public_message = "Failed to launch render browser"


class SessionCrashedError(ExportError):
    public_message = "Render browser disconnected during export"


class ExportTimeoutError(ExportError):
    public_message = "Export exceeded the job time limit"


class AssemblyError(ExportError):
    public_message = "Failed to assemble export document"


class SlideRenderError(Exception):
    """Per-slide failure. Recovered at the slide boundary, never sent to the caller."""

    def __init__(self, message: str, *, slide_id: str, stage: str):
        super().__init__(message)
        self.slide_id = slide_id
        self.stage = stage


class SlideTimeoutError(SlideRenderError):
    pass


class CaptureError(SlideRenderError):
    pass
