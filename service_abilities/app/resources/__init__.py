"""
Resources package.

Request-scoped loading and authorization of the records a handler works on.
Skip configuration is passed in explicitly per request.
"""
