"""Helpers for chat archives: time parsing, .dat image decoding, decompression, file snapshots, monitoring and config."""

__version__ = "0.1.0"