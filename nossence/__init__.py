"""
nossence — Engagement-Ranked Nostr Digests
===========================================
Ingests Nostr events into a social graph, ranks recent notes by how much
engagement they draw (replies, likes, zaps), and delivers an hourly
personalized digest to every subscriber over a dedicated channel key.

Package layout::

    nossence/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Event kinds, score weights, message templates
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session boundary, async helper
    │   └── models.py      # Graph tables: users, posts, interactions, follows
    ├── engine/
    │   ├── events.py      # NostrEvent envelope + kind classification
    │   └── invoice.py     # bolt11 amount decoding
    ├── services/
    │   ├── graph_service.py         # Event → idempotent graph mutations
    │   ├── feed_service.py          # Weighted engagement ranking
    │   ├── subscription_service.py  # Subscriber lifecycle
    │   └── delivery_service.py      # Batch digest delivery
    ├── bot/
    │   ├── core.py        # NossenceBot: task supervisor + shutdown
    │   ├── transport.py   # Relay transport protocol + filters
    │   ├── dispatcher.py  # #subscribe / #unsubscribe mention commands
    │   ├── ingest.py      # Content event ingestion loop
    │   └── schedule.py    # Hourly delivery schedule
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Feed endpoint
"""

__version__ = "0.1.0"
