"""Business services for familytree.

Each service takes a ``Database`` and opens its own connection or transaction
per call; repositories below them never commit.
"""
