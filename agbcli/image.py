"""The image commands: create, activate, deactivate and list."""

from __future__ import annotations

import os
import sys
import time
import urllib.error
import urllib.request
from typing import Callable, Optional, TextIO

from agbcli.formatting import (
    CommandError,
    error_message,
    format_image_status,
    format_resources,
    format_timestamp,
    truncate_string,
    validate_cpu_memory_combo,
)
from agbcli.models import ApiError, ImageInfo, ImageList, ImageTask, Tokens
from agbcli.polling import (
    PollSettings,
    poll_image_activation,
    poll_image_deactivation,
    poll_image_task,
)
from agbcli.retry import (
    RetryConfig,
    backoff_delays,
    is_retryable_error,
    is_retryable_http_status,
    upload_retry_config,
)

_NOT_AUTHENTICATED = "not authenticated. Please run 'agbcloud login' first"
_UPLOAD_TIMEOUT = 60.0
_ROW = "{:<25} {:<25} {:<20} {:<15} {:<12} {:<20}"

Put = Callable[[str, bytes], "tuple[int, bytes]"]


def _say(out: TextIO, text: str) -> None:
    print(text, file=out)


def _go_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    return f"{seconds:g}s"


def require_tokens(tokens: Optional[Tokens]) -> Tokens:
    """Return the tokens, or raise CommandError when the user is not logged in."""
    if tokens is None or not tokens.is_complete():
        raise CommandError(_NOT_AUTHENTICATED)
    return tokens


def _call(out: TextIO, action: str, call, *args, context: tuple[str, ...] = ()):
    """Run one service call, turning every kind of failure into a CommandError."""
    try:
        response = call(*args)
    except ApiError as exc:
        _say(out, f"[ERROR] API Error: {exc}")
        if exc.status_code is not None:
            _say(out, f"[DATA] Status Code: {exc.status_code}")
        for line in context:
            _say(out, line)
        raise CommandError(f"failed to {action}: {exc}") from exc
    except CommandError:
        raise
    except Exception as exc:
        for line in context:
            _say(out, line)
        raise CommandError(f"network error: {exc}") from exc
    if not response.success:
        for line in context:
            _say(out, line)
        _say(out, f"[SEARCH] Request ID: {response.request_id}")
        raise CommandError(f"failed to {action}: {response.code}")
    return response


def _http_put(url: str, data: bytes) -> tuple[int, bytes]:
    request = urllib.request.Request(
        url,
        data=data,
        method="PUT",
        headers={
            "Content-Type": "application/octet-stream",
            "Content-Length": str(len(data)),
        },
    )
    try:
        with urllib.request.urlopen(request, timeout=_UPLOAD_TIMEOUT) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


def upload_dockerfile(
    path: str,
    oss_url: str,
    out: Optional[TextIO] = None,
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
    put: Optional[Put] = None,
) -> None:
    """PUT the Dockerfile to the upload URL, retrying transient failures."""
    out = sys.stdout if out is None else out
    config = upload_retry_config() if config is None else config
    put = _http_put if put is None else put

    try:
        with open(path, "rb") as handle:
            content = handle.read()
    except OSError as exc:
        raise CommandError(f"failed to read dockerfile: {exc}") from exc

    total = config.max_retries + 1
    delays = backoff_delays(config)
    last_error = ""

    for attempt in range(1, total + 1):
        _say(out, f"[UPLOAD] Dockerfile upload attempt {attempt}/{total}...")
        try:
            status, body = put(oss_url, content)
        except OSError as exc:
            last_error = f"failed to upload dockerfile: {exc}"
            retryable = is_retryable_error(exc)
        else:
            if 200 <= status < 300:
                if attempt > 1:
                    _say(out, f"[OK] Dockerfile upload succeeded on attempt {attempt}")
                return None
            text = body.decode("utf-8", "replace")
            last_error = f"upload failed with status {status}: {text}"
            retryable = is_retryable_http_status(status)

        if attempt == total:
            break
        if not retryable:
            _say(out, "[WARN]  Upload error is not retryable, stopping attempts")
            break

        delay = next(delays)
        _say(
            out,
            f"[RETRY] Upload failed (attempt {attempt}/{total}), "
            f"retrying in {_duration(delay)}...",
        )
        sleep(delay)

    _say(out, f"[ERROR] All {total} upload attempts failed")
    raise CommandError(
        f"dockerfile upload failed after {total} attempts, last error: {last_error}"
    )


def _missing_flag(flag: str, image_name: str) -> CommandError:
    return error_message(
        f"[ERROR] Missing required flag: --{flag} for {image_name}",
        "",
        f"[TIP] Usage: agbcloud image create {image_name} --dockerfile <path> --imageId <id>",
        f"[NOTE] Example: agbcloud image create {image_name} "
        "--dockerfile ./Dockerfile --imageId agb-code-space-1",
        f"[NOTE] Short form: agbcloud image create {image_name} "
        "-f ./Dockerfile -i agb-code-space-1",
    )


def create_image(
    api,
    tokens: Optional[Tokens],
    image_name: str,
    dockerfile: str,
    source_image_id: str,
    out: Optional[TextIO] = None,
    settings: Optional[PollSettings] = None,
    uploader: Optional[Callable[[str, str], None]] = None,
) -> ImageTask:
    """Upload a Dockerfile, start an image build and wait for it to finish."""
    out = sys.stdout if out is None else out
    if not dockerfile:
        raise _missing_flag("dockerfile", image_name)
    if not source_image_id:
        raise _missing_flag("imageId", image_name)

    _say(out, f"[BUILD]  Creating image '{image_name}'...")
    tokens = require_tokens(tokens)

    path = os.path.abspath(dockerfile)
    if not os.path.exists(path):
        raise CommandError(f"dockerfile not found: {path}")

    if uploader is None:
        def uploader(file_path: str, url: str) -> None:
            upload_dockerfile(file_path, url, out)

    _say(out, "[SIGNAL] Getting upload credentials...")
    credential_response = _call(
        out,
        "get upload credentials",
        api.get_upload_credential,
        tokens.login_token,
        tokens.session_id,
    )
    credential = credential_response.data
    task_line = f"[DOC] Task ID: {credential.task_id}"
    _say(out, f"[OK] Upload credentials obtained (Task ID: {credential.task_id})")

    _say(out, "[UPLOAD] Uploading Dockerfile...")
    try:
        uploader(path, credential.oss_url)
    except Exception as exc:
        _say(out, task_line)
        raise CommandError(f"failed to upload dockerfile: {exc}") from exc
    _say(out, "[OK] Dockerfile uploaded successfully")

    _say(out, "[WORK] Creating image...")
    _call(
        out,
        "create image",
        api.create_image,
        tokens.login_token,
        tokens.session_id,
        image_name,
        credential.task_id,
        source_image_id,
        context=(task_line,),
    )
    _say(out, "[OK] Image creation initiated")

    _say(out, "[MONITOR] Monitoring image creation progress...")
    return poll_image_task(api, tokens, credential.task_id, out, settings)


def activate_image(
    api,
    tokens: Optional[Tokens],
    image_id: str,
    cpu: int = 0,
    memory: int = 0,
    out: Optional[TextIO] = None,
    settings: Optional[PollSettings] = None,
) -> ImageInfo:
    """Activate an image, or join an activation already in progress."""
    out = sys.stdout if out is None else out
    validate_cpu_memory_combo(cpu, memory)

    _say(out, f"[>>] Activating image '{image_id}'...")
    if cpu > 0 or memory > 0:
        _say(out, f"[SAVE] CPU: {cpu} cores, Memory: {memory} GB")
    tokens = require_tokens(tokens)

    _say(out, "[SEARCH] Checking current image status...")
    listing = _call(
        out,
        "check image status",
        api.list_images,
        tokens.login_token,
        tokens.session_id,
        "User",
        1,
        1,
        [image_id],
    )
    images = listing.data.images if listing.data is not None else []
    if not images:
        raise CommandError(f"image not found: {image_id}")

    image = images[0]
    label = format_image_status(image.status)
    _say(out, f"[DATA] Current Status: {label}")

    if image.status == "RESOURCE_PUBLISHED":
        _say(out, f"[OK] Image is already activated! Image ID: {image_id}")
        _say(out, f"[DATA] Status: {label}")
        return image
    if image.status == "RESOURCE_DEPLOYING":
        _say(out, "[REFRESH] Image is already activating, joining the activation process...")
        _say(out, "[MONITOR] Monitoring image activation status...")
        return poll_image_activation(api, tokens, image_id, out, settings)
    if image.status in ("RESOURCE_FAILED", "RESOURCE_CEASED"):
        _say(
            out,
            f"[WARN]  Image is in failed state ({label}), attempting to restart activation...",
        )
    elif image.status == "IMAGE_AVAILABLE":
        _say(out, "[OK] Image is available, proceeding with activation...")
    else:
        _say(out, f"[DATA] Image status: {label}, proceeding with activation...")

    _say(out, "[REFRESH] Starting image activation...")
    started = _call(
        out,
        "start image",
        api.start_image,
        tokens.login_token,
        tokens.session_id,
        image_id,
        cpu,
        memory,
    )
    _say(out, "[OK] Image activation initiated successfully!")
    _say(out, f"[DATA] Operation Status: {_go_value(started.data)}")
    _say(out, f"[SEARCH] Request ID: {started.request_id}")

    _say(out, "[MONITOR] Monitoring image activation status...")
    return poll_image_activation(api, tokens, image_id, out, settings)


def deactivate_image(
    api,
    tokens: Optional[Tokens],
    image_id: str,
    out: Optional[TextIO] = None,
    settings: Optional[PollSettings] = None,
) -> ImageInfo:
    """Deactivate a running image and wait until it is available again."""
    out = sys.stdout if out is None else out
    _say(out, f"[STOP] Deactivating image '{image_id}'...")
    tokens = require_tokens(tokens)

    _say(out, "[REFRESH] Deactivating image instance...")
    stopped = _call(
        out,
        "deactivate image",
        api.stop_image,
        tokens.login_token,
        tokens.session_id,
        image_id,
    )
    _say(out, "[OK] Image deactivation initiated successfully!")
    _say(out, f"[DATA] Operation Status: {_go_value(stopped.data)}")
    _say(out, f"[SEARCH] Request ID: {stopped.request_id}")

    _say(out, "[MONITOR] Monitoring image deactivation status...")
    return poll_image_deactivation(api, tokens, image_id, out, settings)


def list_images(
    api,
    tokens: Optional[Tokens],
    image_type: str = "User",
    page: int = 1,
    page_size: int = 10,
    out: Optional[TextIO] = None,
) -> ImageList:
    """Fetch one page of images and print it as a table."""
    out = sys.stdout if out is None else out
    _say(out, f"[DOC] Listing {image_type} images (Page {page}, Size {page_size})...")
    tokens = require_tokens(tokens)

    _say(out, "[SEARCH] Fetching image list...")
    response = _call(
        out,
        "list images",
        api.list_images,
        tokens.login_token,
        tokens.session_id,
        image_type,
        page,
        page_size,
        None,
    )
    data = response.data if response.data is not None else ImageList()

    _say(out, f"[OK] Found {len(data.images)} images (Total: {data.total})")
    _say(
        out,
        f"[PAGE] Page {data.page} of {data.page_count()} (Page Size: {data.page_size})\n",
    )

    if not data.images:
        _say(out, "[EMPTY] No images found.")
        return data

    _say(out, _ROW.format("IMAGE ID", "IMAGE NAME", "STATUS", "TYPE", "CPU/MEMORY", "UPDATED AT"))
    _say(out, _ROW.format("--------", "----------", "------", "----", "----------", "----------"))
    for image in data.images:
        _say(
            out,
            _ROW.format(
                truncate_string(image.image_id, 25),
                truncate_string(image.image_name, 25),
                format_image_status(image.status),
                truncate_string(image.type, 15),
                format_resources(image.cpu, image.memory),
                format_timestamp(image.update_time),
            ),
        )
    return data