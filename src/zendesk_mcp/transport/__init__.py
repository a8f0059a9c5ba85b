"""Transports: stdio and streamable HTTP (Starlette)."""
