"""Sampler module for network usage counters.

FileBasedSampler reads the cumulative byte counter (received + transmitted)
from a stats file. DeltaSampler wraps it with a CounterStorage and turns the
cumulative value into the amount used since the previous sample, surviving
process restarts through the stored last value.

Counter decrease:
    The OS counter only goes down when the interface is reset or the counter
    rolls over. The default WRAP policy does not special-case this: the
    subtraction is done modulo 2**64, so a decrease yields a value close to
    2**64. CLAMP and RESET are available for owners who want a different
    product behaviour, but WRAP remains the default.
"""

import enum
import logging
from abc import ABC, abstractmethod

from scraper import NetworkStatsScraper
from storage import CounterStorage


logger = logging.getLogger(__name__)

UINT64_MODULUS = 2**64

START_AT_BEGINNING = "beginning"
START_AT_END = "end"
START_AT_VALUES = (START_AT_BEGINNING, START_AT_END)


class SamplerIOError(OSError):
    """Raised when the stats resource cannot be opened or read."""
    pass


class DeltaPolicy(enum.Enum):
    """How DeltaSampler handles a current value lower than the stored one."""
    WRAP = "wrap"
    CLAMP = "clamp"
    RESET = "reset"


class Sampler(ABC):
    """Returns a single usage counter per call."""

    @abstractmethod
    def sample(self) -> int:
        raise NotImplementedError


class FileBasedSampler(Sampler):
    """Sampler that scrapes a stats file on every call."""

    def __init__(self, uri: str, scraper: NetworkStatsScraper) -> None:
        """Initialize the sampler.

        Args:
            uri: Path of the stats file (e.g. /proc/net/dev)
            scraper: Scraper used to parse the file contents
        """
        self.uri = uri
        self.scraper = scraper

    def sample(self) -> int:
        """Read the file and return received + transmitted bytes.

        Returns:
            The cumulative counter, reduced modulo 2**64

        Raises:
            SamplerIOError: If the file cannot be opened or read
            ParseError: If the scraper cannot parse the contents
        """
        try:
            f = open(self.uri, "rb")
        except OSError as e:
            raise SamplerIOError(e.errno, f"open {self.uri}: {e.strerror}") from e

        with f:
            try:
                stats = self.scraper.scrape(f)
            except OSError as e:
                raise SamplerIOError(e.errno, f"read {self.uri}: {e.strerror}") from e

        return (stats.received_bytes + stats.transmitted_bytes) % UINT64_MODULUS


def compute_delta(current: int, last: int, policy: DeltaPolicy = DeltaPolicy.WRAP) -> int:
    """Compute the usage between two cumulative counter values.

    Args:
        current: Current cumulative value
        last: Previously stored cumulative value
        policy: Handling of current < last

    Returns:
        The delta as an unsigned 64-bit value
    """
    if current >= last:
        return current - last

    if policy is DeltaPolicy.CLAMP:
        return 0
    if policy is DeltaPolicy.RESET:
        # Counter restarted from zero, everything seen since then is new usage.
        return current
    return (current - last) % UINT64_MODULUS


class DeltaSampler(Sampler):
    """Sampler that returns the change since the previously stored value.

    The wrapped sampler and the storage are called from one thread only;
    see the storage module for the single-writer requirement.
    """

    def __init__(
        self,
        sampler: Sampler,
        storage: CounterStorage,
        policy: DeltaPolicy = DeltaPolicy.WRAP,
        start_at: str = START_AT_BEGINNING,
    ) -> None:
        """Initialize the delta sampler.

        Args:
            sampler: Sampler producing the cumulative value
            storage: CounterStorage holding the last observed value
            policy: Counter decrease handling (default WRAP)
            start_at: "beginning" reports the whole counter on the very first
                sample, "end" only records it as the baseline and reports 0

        Raises:
            ValueError: If start_at is not a known value
        """
        if start_at not in START_AT_VALUES:
            raise ValueError(f"invalid start_at location '{start_at}'")
        self.sampler = sampler
        self.storage = storage
        self.policy = policy
        self.start_at = start_at

    def sample(self) -> int:
        """Sample, persist the cumulative value and return the delta.

        Nothing is persisted when sampling fails.

        Returns:
            Usage since the previous sample

        Raises:
            StorageError: If the stored value cannot be loaded or saved
            SamplerIOError: If the stats resource cannot be read
            ParseError: If the stats cannot be parsed
        """
        bootstrap = self.start_at == START_AT_END and self.storage.is_empty()
        last = self.storage.load()
        current = self.sampler.sample()

        if bootstrap:
            logger.info(f"No stored counter, recording {current} as baseline")
            delta = 0
        else:
            delta = compute_delta(current, last, self.policy)
            if current < last:
                logger.warning(
                    f"Counter decreased from {last} to {current} "
                    f"(policy={self.policy.value}), reporting delta {delta}"
                )

        self.storage.save(current)
        logger.debug(f"Sampled current={current} last={last} delta={delta}")
        return delta
