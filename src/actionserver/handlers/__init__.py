"""
Demo handlers, wired up by `python -m actionserver`.

    /action/foo         FooHandler         single response
    /action/foostream   FooStreamHandler   chunked stream
"""

from .foo import FooHandler, FooStreamHandler

__all__ = ["FooHandler", "FooStreamHandler"]
