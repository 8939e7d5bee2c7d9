"""Redis wire protocol toolkit: RESP2/RESP3 codecs, negotiation, pipelines and pub/sub."""

__version__ = "0.2.2"