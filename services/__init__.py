"""Service-layer wrappers.

The polling engine lives under the `postmeet/` package. Modules here glue it
to request-handling code (enabling a bot for a calendar event, cancelling
it) and should stay thin: they delegate to `postmeet.*` and `database.*`.
"""
