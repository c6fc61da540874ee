"""
connectors — OAuth integration with the cloud identity provider.

Provides:
  • OAuth2 auth-URL generation and a loopback callback listener
  • Callback handling (code → token exchange)
  • Credential storage in the OS secret store, optionally Fernet-wrapped
  • httpx clients that refresh expired access tokens and persist them
  • Disconnect / revocation

The provider (Google) is a subclass of BaseConnector.
"""
