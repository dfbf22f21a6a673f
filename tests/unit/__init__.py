"""
tests.unit
==========

Unit tests for the SDK. Shared fakes live in `tests.fakes`.
"""
