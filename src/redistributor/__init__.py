"""Webhook Redistributor.

Receives webhooks on named routes and fans each event out to the
route's active destinations concurrently.
"""

__version__ = "1.0.0"
