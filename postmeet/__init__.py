"""Post-meeting notetaker engine.

Polls dispatched meeting bots until they finish and stores the resulting
transcript on the meeting record.
"""
