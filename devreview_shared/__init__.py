"""Schemas shared by the review server and its client library."""
