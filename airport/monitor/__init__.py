"""Airport progress monitor: Rich rendering of run snapshots.

The monitor never holds state of its own; it renders the frozen
``MigrationRunState`` and ``VerificationStatus`` models it is given.
"""
