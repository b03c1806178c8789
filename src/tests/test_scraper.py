"""Tests for scraper.py module."""

import io

import pytest

from scraper import (
    DEFAULT_INTERFACE,
    LinuxNetworkDevicesScraper,
    NetworkStats,
    ParseError,
    parse_uint64,
)


def scrape_text(text: str, interface: str = "eth0") -> NetworkStats:
    return LinuxNetworkDevicesScraper(interface).scrape(io.StringIO(text))


class TestLinuxNetworkDevicesScraper:
    """Tests for parsing /proc/net/dev contents."""

    @pytest.mark.parametrize(
        "interface, received, transmitted",
        [
            ("", 3862937603, 281882792),
            ("eth0", 3862937603, 281882792),
            ("eth1", 2247549264, 255567044),
            ("lo", 1982736, 1982736),
        ],
    )
    def test_parses_interfaces_from_captured_file(
        self, net_dev_path, interface, received, transmitted
    ):
        """Each interface in a captured file yields its own counters."""
        with open(net_dev_path, "rb") as f:
            stats = LinuxNetworkDevicesScraper(interface).scrape(f)

        assert stats == NetworkStats(received_bytes=received, transmitted_bytes=transmitted)

    def test_received_is_field_1_and_transmitted_is_field_9(self):
        """The fixed column offsets pick bytes, not packets or other counters."""
        stats = scrape_text("eth0: 100 1 2 3 4 5 6 7 200 9 10 11 12 13 14 15\n")

        assert stats.received_bytes == 100
        assert stats.transmitted_bytes == 200

    def test_ten_column_line_reads_transmitted_from_field_9(self):
        """Field 0 is the name, 1-8 the receive block, 9 the transmitted bytes.

        With eight zeros between them, "100" sits at field 1 and "200" at
        field 10, so the transmitted value read from field 9 is 0.
        """
        stats = scrape_text("eth0: 100 0 0 0 0 0 0 0 0 200\n")

        assert stats == NetworkStats(received_bytes=100, transmitted_bytes=0)

    def test_text_and_binary_streams_agree(self):
        """Scraping accepts both text and bytes streams."""
        line = "  eth0: 100 0 0 0 0 0 0 0 200 0 0 0 0 0 0 0\n"
        scraper = LinuxNetworkDevicesScraper("eth0")

        from_text = scraper.scrape(io.StringIO(line))
        from_bytes = scraper.scrape(io.BytesIO(line.encode()))

        assert from_text == from_bytes == NetworkStats(100, 200)

    def test_default_interface_when_none(self):
        """None and empty string both select the default interface."""
        assert LinuxNetworkDevicesScraper(None).interface_name == DEFAULT_INTERFACE
        assert LinuxNetworkDevicesScraper("").interface_name == DEFAULT_INTERFACE
        assert DEFAULT_INTERFACE == "eth0"

    def test_first_substring_match_wins(self):
        """Matching is by substring, so veth0 listed first satisfies eth0."""
        text = (
            " veth0: 7 0 0 0 0 0 0 0 8 0 0 0 0 0 0 0\n"
            "  eth0: 100 0 0 0 0 0 0 0 200 0 0 0 0 0 0 0\n"
        )

        assert scrape_text(text, "eth0") == NetworkStats(7, 8)

    def test_exact_line_used_when_no_earlier_substring_match(self):
        """With eth0 listed first, veth0 still finds its own line."""
        text = (
            "  eth0: 100 0 0 0 0 0 0 0 200 0 0 0 0 0 0 0\n"
            " veth0: 7 0 0 0 0 0 0 0 8 0 0 0 0 0 0 0\n"
        )

        assert scrape_text(text, "veth0") == NetworkStats(7, 8)

    def test_prefix_interface_does_not_match_longer_name(self):
        """eth0 does not match an eth01 line, the colon must follow the name."""
        text = "eth01: 5 0 0 0 0 0 0 0 6 0 0 0 0 0 0 0\n"

        with pytest.raises(ParseError):
            scrape_text(text, "eth0")

    def test_missing_interface_raises_parse_error(self, net_dev_path):
        """An interface absent from the file raises ParseError naming it."""
        with open(net_dev_path, "rb") as f:
            with pytest.raises(ParseError) as exc_info:
                LinuxNetworkDevicesScraper("eth2").scrape(f)

        assert "eth2" in str(exc_info.value)

    def test_empty_stream_raises_parse_error(self):
        with pytest.raises(ParseError):
            scrape_text("", "eth0")

    def test_short_line_raises_parse_error(self):
        """A matching line without a transmit column is rejected."""
        with pytest.raises(ParseError) as exc_info:
            scrape_text("eth0: 100 0 0 0\n")

        assert "fields" in str(exc_info.value)

    @pytest.mark.parametrize(
        "line",
        [
            "eth0: abc 0 0 0 0 0 0 0 200 0\n",
            "eth0: 100 0 0 0 0 0 0 0 -200 0\n",
            "eth0: +100 0 0 0 0 0 0 0 200 0\n",
            "eth0: 1_00 0 0 0 0 0 0 0 200 0\n",
            "eth0: 18446744073709551616 0 0 0 0 0 0 0 200 0\n",
        ],
    )
    def test_undecodable_counter_raises_parse_error(self, line):
        """Counters must be plain base-10 unsigned 64-bit integers."""
        with pytest.raises(ParseError):
            scrape_text(line)

    def test_max_uint64_counter_is_accepted(self):
        stats = scrape_text("eth0: 18446744073709551615 0 0 0 0 0 0 0 0 0\n")

        assert stats.received_bytes == 2**64 - 1

    def test_network_stats_is_immutable(self):
        stats = NetworkStats(1, 2)

        with pytest.raises(AttributeError):
            stats.received_bytes = 5


class TestParseUint64:
    """Tests for the uint64 field parser."""

    def test_parses_digits(self):
        assert parse_uint64("0", "f") == 0
        assert parse_uint64("12345", "f") == 12345

    @pytest.mark.parametrize("raw", ["", " 1", "1.5", "١٢"])
    def test_rejects_non_ascii_digit_input(self, raw):
        with pytest.raises(ParseError) as exc_info:
            parse_uint64(raw, "received bytes")

        assert "received bytes" in str(exc_info.value)
