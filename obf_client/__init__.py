"""OBF Client - mutual-TLS client for the Open Badge Factory API.

Enrolls a client certificate from a signed OBF token and sends
authenticated badge and event requests with it.
"""

__version__ = "0.1.0"
