"""Network stats scraper module.

Turns the text of a kernel network-device stats file (``/proc/net/dev``)
into a typed counter pair for a single interface. Parsing only; opening
the file is the sampler's job.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import IO, Iterable, Optional, Union


logger = logging.getLogger(__name__)

DEFAULT_INTERFACE = "eth0"

# Column offsets after splitting a /proc/net/dev line on whitespace.
# Field 0 is "<iface>:", fields 1-8 are receive counters, 9-16 transmit.
RECEIVED_BYTES_FIELD = 1
TRANSMITTED_BYTES_FIELD = 9

MAX_UINT64 = 2**64 - 1


class ParseError(ValueError):
    """Raised when a stats blob cannot be turned into NetworkStats."""
    pass


@dataclass(frozen=True)
class NetworkStats:
    """Received and transmitted byte counters for one interface."""
    received_bytes: int
    transmitted_bytes: int


class NetworkStatsScraper(ABC):
    """Base class for scrapers that read network stats from a stream."""

    @abstractmethod
    def scrape(self, data: IO) -> NetworkStats:
        """Scrape network stats from a readable stream.

        Args:
            data: Binary or text stream positioned at the start of the blob

        Returns:
            NetworkStats: The scraped counters

        Raises:
            ParseError: If the stream does not contain usable stats
        """
        raise NotImplementedError


def parse_uint64(raw: str, field_name: str) -> int:
    """Parse a base-10 unsigned 64-bit integer.

    Only ASCII digits are accepted, so signs, underscores and other forms
    int() would tolerate are rejected.

    Args:
        raw: The raw field text
        field_name: Name of the field for error messages

    Returns:
        The parsed value

    Raises:
        ParseError: If raw is not a valid unsigned 64-bit integer
    """
    if not raw or not raw.isascii() or not raw.isdigit():
        raise ParseError(f"{field_name} is not an unsigned integer: {raw!r}")
    value = int(raw)
    if value > MAX_UINT64:
        raise ParseError(f"{field_name} overflows uint64: {raw!r}")
    return value


def _iter_lines(data: IO) -> Iterable[str]:
    for line in data:
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        yield line


class LinuxNetworkDevicesScraper(NetworkStatsScraper):
    """Scraper for the Linux ``/proc/net/dev`` format.

    The interface is located by substring: the first line containing
    ``"<interface_name>:"`` wins. A selector of ``eth0`` therefore also
    matches a ``veth0:`` line that appears before the ``eth0:`` line.
    """

    def __init__(self, interface_name: Optional[str] = None) -> None:
        """Initialize the scraper.

        Args:
            interface_name: Interface to extract; empty or None selects eth0
        """
        self.interface_name = interface_name or DEFAULT_INTERFACE

    def scrape(self, data: Union[IO[str], IO[bytes]]) -> NetworkStats:
        marker = f"{self.interface_name}:"

        for line in _iter_lines(data):
            if marker not in line:
                continue

            fields = line.split()
            if len(fields) <= TRANSMITTED_BYTES_FIELD:
                raise ParseError(
                    f"interface '{self.interface_name}' line has {len(fields)} fields, "
                    f"expected at least {TRANSMITTED_BYTES_FIELD + 1}"
                )

            return NetworkStats(
                received_bytes=parse_uint64(
                    fields[RECEIVED_BYTES_FIELD], "received bytes"
                ),
                transmitted_bytes=parse_uint64(
                    fields[TRANSMITTED_BYTES_FIELD], "transmitted bytes"
                ),
            )

        raise ParseError(f"interface '{self.interface_name}' not found in stats data")
