"""
Durable Notification Dispatch

A Redis-backed job queue that delivers outbound SMS notifications to an
external gateway with at-least-once delivery, bounded retries and backoff.
"""

__version__ = "1.0.0"
