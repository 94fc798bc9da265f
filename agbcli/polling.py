"""Waiting for image tasks and image status changes to finish."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TextIO

from agbcli.formatting import CommandError, format_image_status
from agbcli.models import ApiError, ImageInfo, ImageTask, Tokens


@dataclass
class PollSettings:
    """How often to poll and how long to keep trying, in seconds."""

    interval: float = 5.0
    timeout: float = 45 * 60.0
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def ticks(self) -> Iterator[None]:
        """Yield once per interval until the timeout has passed."""
        deadline = self.clock() + self.timeout
        while True:
            self.sleep(self.interval)
            if self.clock() >= deadline:
                return
            yield None


def _say(out: TextIO, text: str) -> None:
    print(text, file=out)


def _report_api_error(out: TextIO, what: str, exc: ApiError) -> None:
    _say(out, f"[WARN]  Warning: Failed to check {what} status: {exc}")
    if exc.status_code is not None:
        _say(out, f"[DATA] Status Code: {exc.status_code}")


def poll_image_task(
    api,
    tokens: Tokens,
    task_id: str,
    out: Optional[TextIO] = None,
    settings: Optional[PollSettings] = None,
) -> ImageTask:
    """Poll an image creation task until it finishes; return the final task."""
    out = sys.stdout if out is None else out
    settings = PollSettings() if settings is None else settings

    for _ in settings.ticks():
        try:
            response = api.get_image_task(tokens.login_token, tokens.session_id, task_id)
        except ApiError as exc:
            _report_api_error(out, "task", exc)
            _say(out, f"[DOC] Task ID: {task_id}")
            continue
        except Exception as exc:
            _say(out, f"[DOC] Task ID: {task_id}")
            raise CommandError(f"network error checking task status: {exc}") from exc

        if not response.success:
            _say(out, f"[WARN]  Warning: Task status check failed: {response.code}")
            _say(out, f"[DOC] Task ID: {task_id}")
            _say(out, f"[SEARCH] Request ID: {response.request_id}")
            continue

        task = response.data
        line = f"[DATA] Status: {task.status}"
        if task.task_msg:
            line += f" - {task.task_msg}"
        _say(out, line)

        if task.status == "Finished":
            if task.image_id is not None:
                _say(out, f"[SUCCESS] Image created successfully! Image ID: {task.image_id}")
            else:
                _say(out, "[SUCCESS] Image created successfully!")
            return task
        if task.status == "Failed":
            _say(out, f"[DOC] Task ID: {task_id}")
            _say(out, f"[SEARCH] Request ID: {response.request_id}")
            raise CommandError(f"image creation failed: {task.task_msg}")
        if task.status not in ("Inline", "Preparing"):
            _say(out, f"[REFRESH] Unknown status '{task.status}', continuing to monitor...")

    _say(out, f"[DOC] Task ID: {task_id}")
    raise CommandError("timeout waiting for image creation to complete")


def _poll_image_status(
    api,
    tokens: Tokens,
    image_id: str,
    out: TextIO,
    settings: PollSettings,
    handle: Callable[[ImageInfo, str, str], bool],
    action: str,
) -> ImageInfo:
    for _ in settings.ticks():
        try:
            response = api.list_images(
                tokens.login_token, tokens.session_id, "User", 1, 1, [image_id]
            )
        except ApiError as exc:
            _report_api_error(out, "image", exc)
            _say(out, f"[DOC] Image ID: {image_id}")
            continue
        except Exception as exc:
            _say(out, f"[DOC] Image ID: {image_id}")
            raise CommandError(f"network error checking image status: {exc}") from exc

        if not response.success:
            _say(out, f"[WARN]  Warning: Image status check failed: {response.code}")
            _say(out, f"[DOC] Image ID: {image_id}")
            _say(out, f"[SEARCH] Request ID: {response.request_id}")
            continue

        images = response.data.images if response.data is not None else []
        if not images:
            _say(out, f"[WARN]  Warning: Image not found: {image_id}")
            continue

        image = images[0]
        _say(out, f"[DATA] Status: {format_image_status(image.status)}")
        if handle(image, response.request_id, image_id):
            return image

    _say(out, f"[DOC] Image ID: {image_id}")
    raise CommandError(f"timeout waiting for image {action} to complete")


def poll_image_activation(
    api,
    tokens: Tokens,
    image_id: str,
    out: Optional[TextIO] = None,
    settings: Optional[PollSettings] = None,
) -> ImageInfo:
    """Poll until the image is activated; return its final listing."""
    out = sys.stdout if out is None else out
    settings = PollSettings() if settings is None else settings

    def handle(image: ImageInfo, request_id: str, wanted: str) -> bool:
        label = format_image_status(image.status)
        if image.status == "RESOURCE_PUBLISHED":
            _say(out, f"[SUCCESS] Image activated successfully! Image ID: {wanted}")
            _say(out, f"[DATA] Final Status: {label}")
            return True
        if image.status in ("RESOURCE_FAILED", "RESOURCE_CEASED"):
            _say(out, f"[DOC] Image ID: {wanted}")
            _say(out, f"[SEARCH] Request ID: {request_id}")
            raise CommandError(f"image activation failed with status: {label}")
        if image.status != "RESOURCE_DEPLOYING":
            _say(out, f"[REFRESH] Unknown status '{label}', continuing to monitor...")
        return False

    return _poll_image_status(api, tokens, image_id, out, settings, handle, "activation")


def poll_image_deactivation(
    api,
    tokens: Tokens,
    image_id: str,
    out: Optional[TextIO] = None,
    settings: Optional[PollSettings] = None,
) -> ImageInfo:
    """Poll until the image is deactivated; return its final listing."""
    out = sys.stdout if out is None else out
    settings = PollSettings() if settings is None else settings

    def handle(image: ImageInfo, request_id: str, wanted: str) -> bool:
        label = format_image_status(image.status)
        if image.status == "IMAGE_AVAILABLE":
            _say(out, f"[SUCCESS] Image deactivated successfully! Image ID: {wanted}")
            _say(out, f"[DATA] Final Status: {label}")
            return True
        if image.status == "RESOURCE_FAILED":
            _say(out, f"[DOC] Image ID: {wanted}")
            _say(out, f"[SEARCH] Request ID: {request_id}")
            raise CommandError(f"image deactivation failed with status: {label}")
        if image.status == "RESOURCE_PUBLISHED":
            _say(out, "[REFRESH] Image still activated, continuing to monitor deactivation...")
        elif image.status != "RESOURCE_DELETING":
            _say(out, f"[REFRESH] Unknown status '{label}', continuing to monitor...")
        return False

    return _poll_image_status(api, tokens, image_id, out, settings, handle, "deactivation")