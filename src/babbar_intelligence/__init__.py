"""Babbar Intelligence MCP Server.

SEO intelligence on top of the Babbar API: competitors, content gap,
backlink opportunities, duplication triage and on-site audits.
"""

__version__ = "0.1.0"
