"""
pyclouds: portable compute and blobstore APIs over many cloud providers.

Obtain services through a context::

    from pyclouds import ContextBuilder

    with ContextBuilder("transient").build() as context:
        context.blobstore.create_container_in_location("photos")
"""

from pyclouds.context import CloudContext, ContextBuilder, ContextSettings

__version__ = "0.1.0"

__all__ = ["CloudContext", "ContextBuilder", "ContextSettings", "__version__"]
