"""Aftersales API package."""
