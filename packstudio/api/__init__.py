"""
API Layer

RESPONSIBILITY: HTTP transport for the studio backend
MUST NOT: hold graph state between requests
"""
