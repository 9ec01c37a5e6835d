"""
Card Nexus ingestion.

Fetching card records from upstream APIs, normalizing them and
checkpointing them to disk.
"""

from cardnexus.ingest.chunks import ChunkMergeError, ChunkStore, CheckpointError
from cardnexus.ingest.client import (
    CardPage,
    PokemonTcgClient,
    RawFileClient,
    is_last_page,
    iter_pages,
)
from cardnexus.ingest.normalize import (
    NormalizedBatch,
    SourceKind,
    normalize_page,
    normalize_pokemon_api,
    normalize_pokemon_github,
    normalize_record,
    normalize_ygoprodeck,
)
from cardnexus.ingest.pipeline import FetchSummary, fetch_group_chunked
from cardnexus.ingest.retry import (
    FetchErrorKind,
    PageFetchError,
    RetryPolicy,
    classify_github_error,
    classify_http_error,
)

__all__ = [
    "CardPage",
    "CheckpointError",
    "ChunkMergeError",
    "ChunkStore",
    "FetchErrorKind",
    "FetchSummary",
    "NormalizedBatch",
    "PageFetchError",
    "PokemonTcgClient",
    "RawFileClient",
    "RetryPolicy",
    "SourceKind",
    "classify_github_error",
    "classify_http_error",
    "fetch_group_chunked",
    "is_last_page",
    "iter_pages",
    "normalize_page",
    "normalize_pokemon_api",
    "normalize_pokemon_github",
    "normalize_record",
    "normalize_ygoprodeck",
]
