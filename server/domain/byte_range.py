"""Range header parsing for partial content responses."""

import re
from dataclasses import dataclass

RANGE_PATTERN = re.compile(r"bytes=([0-9]*)-([0-9]*)")


class UnsatisfiableRange(Exception):
    """Raised when a Range header is malformed or outside the resource."""

    def __init__(self, total_size: int) -> None:
        super().__init__(f"Range not satisfiable for {total_size} bytes")
        self.total_size = total_size


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte interval inside a resource."""

    start: int
    end: int

    @property
    def length(self) -> int:
        """Number of bytes covered by the interval."""
        return self.end - self.start + 1

    def content_range(self, total_size: int) -> str:
        """Format the Content-Range header value for this interval."""
        return f"bytes {self.start}-{self.end}/{total_size}"


def unsatisfied_content_range(total_size: int) -> str:
    """Format the Content-Range header value used by 416 responses."""
    return f"bytes */{total_size}"


def parse_range(range_header: str, total_size: int) -> ByteRange:
    """Translate a ``bytes=start-end`` header into a validated ByteRange.

    Only the first range of a multi-range header is honored. A suffix longer
    than the resource selects the whole resource, and an end offset equal to
    the size is clamped to the last byte.
    """
    match = RANGE_PATTERN.search(range_header)
    if match is None:
        raise UnsatisfiableRange(total_size)
    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        raise UnsatisfiableRange(total_size)

    if not raw_start:
        start = max(0, total_size - int(raw_end))
        end = total_size - 1
    elif not raw_end:
        start = int(raw_start)
        end = total_size - 1
    else:
        start = int(raw_start)
        end = int(raw_end)
        if end == total_size:
            end = total_size - 1

    if start > total_size or end > total_size or start > end:
        raise UnsatisfiableRange(total_size)
    return ByteRange(start, end)
