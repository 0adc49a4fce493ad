"""
tts-gateway: text-to-speech gateway with a two-tier audio cache.

Turns text into audio plus time-aligned speech marks by dispatching to a
priority-ordered list of vendor backends, caching results by content hash
in an ephemeral key-value store and a durable object store, and enforcing
a per-user daily character budget.
"""

__version__ = "0.1.0"
