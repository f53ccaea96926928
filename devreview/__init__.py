"""
MoonDev developer application review platform.

Developers submit an application; evaluators accept or reject it with
feedback, and the developer is notified by email.
"""

__version__ = "0.1.0"
