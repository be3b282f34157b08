"""
Campaign Execution Governor for the outbound AI dialer.

Decides whether an account's autodialer campaign may run, why it is not
running, and which remedial action is available.
"""

__version__ = "0.1.0"
