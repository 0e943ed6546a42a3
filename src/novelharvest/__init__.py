"""Serialized-novel harvester: fetch, extract and reconcile chapter lists from mirror sites."""
