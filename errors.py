class ViewTrackError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CaptureError(ViewTrackError):
    """The collector payload cannot become a snapshot."""

    status_code = 400


class CollectorError(ViewTrackError):
    """Fetching sketches from the site failed."""

    status_code = 502


class CaptureInProgressError(ViewTrackError):
    status_code = 409

    def __init__(self, message: str = "A capture is already running."):
        super().__init__(message)
