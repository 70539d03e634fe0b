"""Entity slices and the store that owns them."""

from pyapistore.state.slice import ActionQueue, EntitySlice

__all__ = ["ActionQueue", "EntitySlice"]
