"""
Integration tests for the exoquic library.

These tests open real sockets on the loopback interface.
"""
