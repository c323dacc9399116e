"""Composite analyses built on the Babbar client.

Each pipeline takes a client and returns a JSON-ready dict. Only critical
early stages abort a pipeline; later per-item failures degrade its output.
"""
