"""Git status wrapper.

Wraps a unit of build work with GitHub commit-status notifications: a
pending status before the work runs, and a single success or failure
status once it completes.
"""

__version__ = "0.1.0"
