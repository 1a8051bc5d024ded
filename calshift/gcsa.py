"""Google Calendar integration for calshift.

This module provides a clean public API for the Google Calendar store.
It re-exports the implementation from `calshift.store.gcsa`.

Example:
    >>> from calshift import DropResolutionWorkflow
    >>> from calshift.gcsa import GoogleCalendarStore
    >>>
    >>> store = GoogleCalendarStore("primary", chooser=ask_user)
    >>> workflow = DropResolutionWorkflow(store)
    >>> result = await workflow.drop(gesture)
"""

# Re-export public API from store.gcsa
from calshift.store.gcsa import GoogleCalendarStore

__all__ = ["GoogleCalendarStore"]
