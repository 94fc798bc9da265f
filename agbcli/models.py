"""Data carried between the command layer and the AgbCloud service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Tokens:
    """Authentication tokens stored after a successful login."""

    login_token: str = ""
    session_id: str = ""
    keep_alive_token: str = ""
    expires_at: str = ""

    def is_complete(self) -> bool:
        """Return True when both the login token and session id are present."""
        return bool(self.login_token) and bool(self.session_id)


@dataclass
class ApiResponse(Generic[T]):
    """Envelope returned by every service call."""

    success: bool
    data: Optional[T] = None
    code: str = ""
    request_id: str = ""
    trace_id: str = ""
    http_status_code: int = 0


@dataclass
class UploadCredential:
    """Where to upload a Dockerfile and the task that tracks the build."""

    oss_url: str
    task_id: str


@dataclass
class ImageTask:
    """Progress of an image creation task."""

    status: str
    task_msg: str = ""
    image_id: Optional[str] = None


@dataclass
class ImageInfo:
    """One image as reported by the image listing."""

    image_id: str
    image_name: str = ""
    status: str = ""
    type: str = ""
    cpu: Optional[int] = None
    memory: Optional[int] = None
    update_time: str = ""


@dataclass
class ImageList:
    """A page of images."""

    images: list[ImageInfo] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10

    def page_count(self) -> int:
        """Number of pages needed to hold ``total`` images."""
        if self.page_size <= 0:
            raise ValueError("page size must be positive")
        return (self.total + self.page_size - 1) // self.page_size


@dataclass
class LoginProvider:
    """OAuth login URL and the callback ports the server accepts."""

    invoke_url: str = ""
    alternative_ports: str = ""


@dataclass
class LoginTokens:
    """Tokens handed back when an authorization code is exchanged."""

    login_token: str = ""
    session_id: str = ""
    keep_alive_token: str = ""
    expires_at: str = ""


class ApiError(Exception):
    """The service answered, but with an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: bytes = b"",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        return self.message