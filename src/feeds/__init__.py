"""Feed access package.

- locator.py: feed URL parsing
- models.py: feed configuration, package source identifiers, credentials
- context.py: named sources/resources/credentials built from configuration
- resolver.py: package source -> complete feed configuration
- client.py: download streams and version listing against a feed
"""
