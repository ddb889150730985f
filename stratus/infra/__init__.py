"""Internal machinery: the retrying HTTP executor."""

from .http import Auth, BearerAuth, HttpClient, Response

__all__ = ["Auth", "BearerAuth", "HttpClient", "Response"]
