"""Core business logic: API client, normalization, scoring, pipelines and data models.

This module is framework-agnostic. It has no dependency on MCP, FastMCP,
or any server framework; the FastMCP server in ``babbar_intelligence.server``
imports from here.
"""
