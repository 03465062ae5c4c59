"""Decoding, scraping and serving of kubelet resource metrics for nodes and pods."""

__version__ = "0.1.0"