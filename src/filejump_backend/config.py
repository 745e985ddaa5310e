"""Backend configuration loaded from environment variables."""

import os
import re
from dataclasses import dataclass, field

from filejump_backend.api.client import DEFAULT_API_BASE_URL, DEFAULT_TIMEOUT
from filejump_backend.api.pacer import DEFAULT_MAX_SLEEP, DEFAULT_MIN_SLEEP
from filejump_backend.api.pacer import DEFAULT_RETRIES as DEFAULT_LOW_LEVEL_RETRIES
from filejump_backend.obscure import reveal
from filejump_backend.remote.encoding import DEFAULT_ENCODING, parse_encoding

DEFAULT_UPLOAD_CUTOFF = 50 * 1024 * 1024
DEFAULT_LIST_CHUNK = 1000

# Sentinel cutoff meaning "never switch strategy"
UPLOAD_CUTOFF_OFF = -1

_SIZE_SUFFIXES = {
    "b": 1,
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
    "t": 1024**4,
    "p": 1024**5,
}
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([bkmgtp])?(?:ib?|b)?\s*$", re.IGNORECASE)


def parse_size(value: str) -> int:
    """Parse an rclone-style size suffix into a byte count.

    A bare number is interpreted as KiB. ``off`` returns ``UPLOAD_CUTOFF_OFF``.

    Args:
        value: Size string such as ``"50M"``, ``"50Mi"``, ``"1.5G"``, ``"512b"`` or ``"off"``.

    Returns:
        Size in bytes.

    Raises:
        ValueError: If the string is not a recognised size.
    """
    if value.strip().lower() == "off":
        return UPLOAD_CUTOFF_OFF
    match = _SIZE_RE.match(value)
    if match is None:
        raise ValueError(f"invalid size: {value!r}")
    number, suffix = match.groups()
    multiplier = _SIZE_SUFFIXES[(suffix or "k").lower()]
    return int(float(number) * multiplier)


@dataclass(frozen=True)
class BackendConfig:
    """Configuration for one FileJump remote.

    Only the access token is required. Everything else has a default matching
    the vendor's documented limits and can be overridden via environment
    variables.
    """

    # Required, no default: fail at startup if missing
    access_token: str = field(repr=False)

    api_base_url: str = DEFAULT_API_BASE_URL
    upload_cutoff: int = DEFAULT_UPLOAD_CUTOFF
    encoding: str = DEFAULT_ENCODING
    list_chunk: int = DEFAULT_LIST_CHUNK
    min_sleep: float = DEFAULT_MIN_SLEEP
    max_sleep: float = DEFAULT_MAX_SLEEP
    low_level_retries: int = DEFAULT_LOW_LEVEL_RETRIES
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("access_token must not be empty")
        if self.upload_cutoff == 0 or self.upload_cutoff < UPLOAD_CUTOFF_OFF:
            raise ValueError(f"upload_cutoff must be positive or off; got {self.upload_cutoff}")
        parse_encoding(self.encoding)
        if self.list_chunk <= 0:
            raise ValueError(f"list_chunk must be positive; got {self.list_chunk}")
        if self.min_sleep < 0 or self.max_sleep < self.min_sleep:
            raise ValueError(
                f"invalid pacer bounds; min_sleep:{self.min_sleep};max_sleep:{self.max_sleep}"
            )
        if self.low_level_retries < 1:
            raise ValueError(f"low_level_retries must be >= 1; got {self.low_level_retries}")


def load_config() -> BackendConfig:
    """Construct a BackendConfig from environment variables.

    Required environment variables (one of):
        FJ_ACCESS_TOKEN: FileJump API access token.
        FJ_OBSCURED_ACCESS_TOKEN: The same token, obscured with ``filejump-backend obscure``.

    Optional environment variables (with defaults):
        FJ_API_BASE_URL: API root (default: https://drive.filejump.com/api/v1).
        FJ_UPLOAD_CUTOFF: Size at which uploads switch to the pre-signed strategy (default: 50M).
        FJ_ENCODING: Comma-separated filename encoding flags.
        FJ_LIST_CHUNK: Entries requested per listing page (default: 1000).
        FJ_MIN_SLEEP: Minimum retry delay in seconds (default: 0.01).
        FJ_MAX_SLEEP: Maximum retry delay in seconds (default: 2.0).
        FJ_LOW_LEVEL_RETRIES: Attempts per API call (default: 10).
        FJ_TIMEOUT: HTTP timeout in seconds (default: 60).

    Returns:
        Configured BackendConfig instance.

    Raises:
        KeyError: If no access token variable is set.
        ValueError: If an optional variable holds an invalid value.
    """
    if "FJ_ACCESS_TOKEN" in os.environ:
        access_token = os.environ["FJ_ACCESS_TOKEN"]
    else:
        access_token = reveal(os.environ["FJ_OBSCURED_ACCESS_TOKEN"])

    return BackendConfig(
        access_token=access_token,
        api_base_url=os.environ.get("FJ_API_BASE_URL", DEFAULT_API_BASE_URL),
        upload_cutoff=parse_size(os.environ.get("FJ_UPLOAD_CUTOFF", "50M")),
        encoding=os.environ.get("FJ_ENCODING", DEFAULT_ENCODING),
        list_chunk=int(os.environ.get("FJ_LIST_CHUNK", str(DEFAULT_LIST_CHUNK))),
        min_sleep=float(os.environ.get("FJ_MIN_SLEEP", str(DEFAULT_MIN_SLEEP))),
        max_sleep=float(os.environ.get("FJ_MAX_SLEEP", str(DEFAULT_MAX_SLEEP))),
        low_level_retries=int(
            os.environ.get("FJ_LOW_LEVEL_RETRIES", str(DEFAULT_LOW_LEVEL_RETRIES))
        ),
        timeout=float(os.environ.get("FJ_TIMEOUT", str(DEFAULT_TIMEOUT))),
    )
