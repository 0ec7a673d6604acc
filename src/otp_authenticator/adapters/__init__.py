"""Adapters for the authenticator ports."""
