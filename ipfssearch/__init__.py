"""IPFS search engine building blocks: configuration, IPFS API access and DHT provider sniffing."""

__version__ = "0.1.0"