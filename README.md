# agbcli

`agbcli` holds the workflows of a client for a cloud image service. It
builds custom images from a Dockerfile, activates and deactivates them,
lists them page by page, and signs in through a browser OAuth flow that
uses a local callback server. Progress is printed line by line to a text
stream, stdout unless you pass another one. Failures are raised as
`agbcli.formatting.CommandError`.

The package uses only the standard library.

## Modules

| Module | Contents |
| --- | --- |
| `agbcli.models` | Dataclasses `Tokens`, `ApiResponse`, `UploadCredential`, `ImageTask`, `ImageInfo`, `ImageList`, `LoginProvider`, `LoginTokens`, and the exception `ApiError` |
| `agbcli.formatting` | `CommandError`, `error_message`, `format_image_status`, `format_cpu`, `format_memory`, `format_resources`, `truncate_string`, `format_timestamp`, `validate_cpu_memory_combo` |
| `agbcli.retry` | `RetryConfig`, `default_retry_config`, `upload_retry_config`, `is_retryable_error`, `is_retryable_http_status`, `backoff_delays` |
| `agbcli.ports` | `parse_alternative_ports`, `is_valid_port`, `is_port_occupied`, `select_available_port` |
| `agbcli.polling` | `PollSettings`, `poll_image_task`, `poll_image_activation`, `poll_image_deactivation` |
| `agbcli.image` | `require_tokens`, `upload_dockerfile`, `create_image`, `activate_image`, `deactivate_image`, `list_images` |
| `agbcli.session` | `TokenStore`, `wait_for_callback`, `login`, `logout` |
| `agbcli.version` | `version_text` |

## Formatting and validation

```python
from agbcli.formatting import format_image_status, format_resources, truncate_string

format_image_status("RESOURCE_PUBLISHED")   # "Activated"
format_image_status("IMAGE_AVAILABLE")      # "Available"
format_image_status("SOMETHING_ELSE")       # "SOMETHING_ELSE"
format_resources(2, 4)                      # "2/4G"
format_resources(None, None)                # "-"
truncate_string("abcdefgh", 5)              # "ab..."
```

`format_timestamp` shows an RFC 3339 timestamp in local time as
`YYYY-MM-DD HH:MM`. It returns `-` for an empty string and cuts any other
text to 20 characters.

Three CPU/memory pairs are accepted: 2 cores with 4 GB, 4 with 8, and 8
with 16. Passing zero for both means the service default. Any other pair
prints the reason to stderr and raises `CommandError`:

```python
from agbcli.formatting import CommandError, validate_cpu_memory_combo

validate_cpu_memory_combo(0, 0)     # accepted
validate_cpu_memory_combo(4, 8)     # accepted
try:
    validate_cpu_memory_combo(2, 8)
except CommandError as exc:
    print(exc.lines[0])             # "[ERROR] Invalid CPU/Memory combination: 2c8g"
```

## Retries

`RetryConfig` holds delays in seconds. `default_retry_config()` gives 3
retries, starting at 0.5 s and capped at 5 s. `upload_retry_config()`
gives 3 retries, starting at 1 s and capped at 10 s. Both use a backoff
factor of 2. `backoff_delays(config)` yields the wait before each retry.

```python
from agbcli.retry import backoff_delays, is_retryable_http_status, upload_retry_config

list(backoff_delays(upload_retry_config()))   # [1.0, 2.0, 4.0]
is_retryable_http_status(503)                 # True
is_retryable_http_status(404)                 # False
```

`is_retryable_error` returns true for:

- connection and timeout exceptions;
- the usual transient `errno` values;
- messages such as "connection refused", "i/o timeout" or "no such host".

## Callback ports

```python
from agbcli.ports import is_valid_port, parse_alternative_ports, select_available_port

parse_alternative_ports("51152, 53152 ,,55152")   # ["51152", "53152", "55152"]
is_valid_port("65535")                            # True
is_valid_port("65536")                            # False
port = select_available_port("3000", "51152,53152")
```

`select_available_port` returns the default port if it can be bound.
Otherwise it returns the first free valid alternative. If no port is free
it raises `RuntimeError`.

## Image workflows

The functions in `agbcli.image` and `agbcli.polling` take an `api`
object that you supply. It needs these methods:

- `get_upload_credential(login_token, session_id)`
- `create_image(login_token, session_id, image_name, task_id, source_image_id)`
- `get_image_task(login_token, session_id, task_id)`
- `list_images(login_token, session_id, image_type, page, page_size, image_ids)`
- `start_image(login_token, session_id, image_id, cpu, memory)`
- `stop_image(login_token, session_id, image_id)`

Each method returns an `ApiResponse` or raises `ApiError`. Any other
exception is reported as a network error.

### Creating an image

`create_image` runs these steps:

1. Get an upload credential.
2. Upload the Dockerfile with `upload_dockerfile`, or with the `uploader` you pass.
3. Start the build.
4. Poll the task until it is `Finished` or `Failed`.

By default `upload_dockerfile` sends an HTTP `PUT` with `urllib`. It
retries transient failures according to `upload_retry_config()`. You can
pass your own `put(url, data) -> (status, body)` and `sleep`.

### Activating, deactivating and listing

- `activate_image` checks the current status first. It returns at once
  if the image is already activated, and joins an activation that is
  already running.
- `deactivate_image` waits until the image is available again.
- `list_images` prints one page of images as a table and returns the
  `ImageList`.

All of these require complete `Tokens`. See `require_tokens`.

### Polling

`PollSettings` sets the interval (5 s) and the overall timeout
(45 minutes). It also takes the `sleep` and `clock` functions, so polling
can be driven without real waiting.

## Login and logout

`TokenStore` keeps tokens in a JSON file. The default file is
`~/.agbcloud/config.json`. `save_tokens` and `clear_tokens` change only
the `token` entry and keep any other keys in the file.

`login(oauth_api, store, ...)` runs the browser OAuth flow:

1. Ask for a login URL.
2. Pick a callback port, falling back to the server's alternative ports.
3. Wait for the authorization code. By default `wait_for_callback` serves
   `http://localhost:<port>/callback`.
4. Exchange the code for tokens and save them in the store.

The `oauth_api` object needs these methods:

- `get_login_provider_url`
- `get_login_provider_url_with_port`
- `login_translate_with_port`
- `logout`

`open_browser` is an optional callable that receives the URL. Without
it, the URL is printed for the user to open.

`logout(oauth_api, store)` ends the server session if tokens are stored.
It always clears the local tokens, and returns whether a session was
found.

## Version

```python
from agbcli.version import version_text

print(version_text("1.2.0", "abc1234", "2025-01-01"), end="")
```

## What the package does not do

The package has no command-line entry point and no argument parsing. Its
workflows are plain functions to call from your own program. It also
contains no HTTP client for the image and OAuth services: the `api` and
`oauth_api` objects described above must be provided by the caller. The
only network code included is the Dockerfile upload and the local OAuth
callback server.