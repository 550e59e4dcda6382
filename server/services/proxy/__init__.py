"""Caching forward proxy.

Resolves the origin URL embedded in a request path, replays a captured
response when the read policy allows it, and otherwise fetches, stores and
serves the origin response.
"""
