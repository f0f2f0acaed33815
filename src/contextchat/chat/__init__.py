"""Conversation formatting, tool dispatch, and the tool loop."""
