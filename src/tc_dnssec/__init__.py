"""
tc_dnssec — DNSSEC key lifecycle manager for a Traffic Control CDN.

Rotates the KSK/ZSK material of a CDN and of each of its HTTP/DNS delivery
services, keeps the whole bundle in Riak, and records every change in the
Traffic Ops change log.

Built on the Railway-Oriented Programming (ROP) primitives in
tc_dnssec.railway for explicit, composable error handling.
"""

__version__ = "0.1.0"
