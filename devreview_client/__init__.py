"""
Developer Review client library.

Talks to the review API, keeps a local view of submissions in sync with the
server's change stream, and runs the evaluator's decide-then-notify flow.
"""

__version__ = "0.1.0"
