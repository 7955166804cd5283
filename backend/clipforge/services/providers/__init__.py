"""Video provider implementations.

Each provider module implements the async generation pattern:
  upload asset → create job → poll status → read result URL
"""
