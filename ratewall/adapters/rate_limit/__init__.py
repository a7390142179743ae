"""Window counter store adapters.

This package provides the store abstraction used for rate limiting and abuse
blocking, with a shared remote backend (Upstash Redis REST API) and an
in-process backend that doubles as the guaranteed fallback.
"""
