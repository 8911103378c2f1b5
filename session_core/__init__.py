"""
Session core for the loan-origination dashboard.

Bootstraps the signed-in user's identity and profile, expires idle
sessions, and keeps asynchronous sign-in/sign-out work from racing into
an inconsistent state.  ``services.create_services`` is the composition
root; ``SessionStateMachine`` is the only object the rest of the
dashboard should talk to.
"""

__version__ = "1.0.0"
