"""
Synthesis building blocks.

    ssml.py         SSML envelope and HTML conversion
    keys.py         content keys and durable object names
    backend.py      backend base class and priority dispatcher
    backends/       OpenAI, Azure and ElevenLabs backends
    cache.py        ephemeral key-value stores
    storage.py      durable object stores
    coordinator.py  two-tier get-or-synthesize
    ratelimit.py    per-user character budget
    status.py       document job status reports
"""
