"""Infrastructure layer — cipher, key services, stores, and file loading.

This layer depends on stdlib, domain, and third-party libs (cryptography,
ruamel.yaml). It must never import from services, commands, or output.
"""
