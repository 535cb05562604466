"""
gallerysync — Discord Gallery Mirror
=====================================
Keeps a persisted list of approved images consistent with a Discord
channel.  An image is approved when someone holding one of the configured
roles reacts to its message with the approval emoji.  Approved
attachments are copied into an object store and listed in a single JSON
snapshot that the website reads.

Package layout::

    gallerysync/
    ├── config.py          # YAML + .env → typed Python config
    ├── constants.py       # Schema version, title + filename helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # stored_objects table
    ├── engine/
    │   ├── models.py      # GalleryItem, SyncState, SyncResult
    │   ├── state.py       # Snapshot load/save + schema upgrade
    │   ├── freshness.py   # Staleness clocks
    │   ├── approval.py    # Role approval cache + resolver
    │   ├── reconcile.py   # keep / remove / new diffing
    │   ├── lock.py        # In-process sync lock
    │   └── retry.py       # Retry policy + batch runner
    ├── storage/
    │   ├── base.py        # ObjectStore interface
    │   ├── local.py       # Filesystem store
    │   └── database.py    # SQLAlchemy store
    ├── services/
    │   ├── discord_api.py    # Discord REST client (httpx)
    │   ├── asset_service.py  # Download, upload, audit, orphan sweep
    │   └── gallery_service.py # GallerySynchronizer
    ├── api/
    │   ├── main.py        # FastAPI app
    │   └── routes/        # /api/gallery, /api/blobs
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/relay.py  # Gateway events → webhook
"""

__version__ = "0.1.0"
