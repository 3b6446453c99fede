"""External engine clients."""

from .lilith import DEFAULT_DATASET, Engine, LilithClient, parse_engine_output

__all__ = ["DEFAULT_DATASET", "Engine", "LilithClient", "parse_engine_output"]
