"""
agent_pulse/exceptions.py
Error taxonomy for content acquisition. Per-check failures never use these;
checks swallow their own network errors and report a default result.
"""


class FetchError(Exception):
    """Plain HTTP fetch could not produce a page."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message}: {url}")


class FetchTimeoutError(FetchError):
    def __init__(self, url: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(url, f"Timed out after {timeout_seconds:g}s")


class FetchNetworkError(FetchError):
    pass


class RenderError(Exception):
    """The external render service failed or is not configured."""


class ContentAcquisitionError(Exception):
    """Fatal: the submitted page could not be acquired at all."""
