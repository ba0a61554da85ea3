"""Building blocks for .hum pieces: parsing, pipe expansion, playback state, reconciliation, transport protocol and an scsynth OSC client."""

__version__ = "0.1.0"