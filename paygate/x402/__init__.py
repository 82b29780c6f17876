# paygate/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

This module implements the x402 payment protocol for the gateway, enabling
pay-per-request access to protected routes with a fresh deposit address per
payment attempt.

Key components:
- middleware: FastAPI middleware gating protected routes (402 / verify / settle)
- server: requirement building and proof-to-requirement matching
- resolver: reuse-or-provision deposit address resolution
- cache: TTL cache of issued deposit addresses
- proof: payment header decoding
- provisioning: Stripe crypto PaymentIntent deposit addresses
- facilitator: remote verify/settle client with lifecycle events
- schemes: per-network payment schemes and their registry
- audit: JSON-lines audit trail

Configuration is loaded from environment variables via paygate.core.config.
"""
