"""
Paygate: pay-per-request access control for HTTP resources.

A FastAPI application that protects routes behind the x402 payment protocol,
issuing a fresh deposit address per payment attempt and settling client
payment proofs through a remote facilitator before serving the resource.
"""

__version__ = "0.1.0"
