"""httpwire - synchronous HTTP client with a pluggable transport.

See DESIGN.md for the component map.
"""

__version__ = "0.1.0"
