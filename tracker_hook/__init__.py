"""GitHub push webhook -> IRC announcements + Pivotal Tracker story updates."""

__version__ = "0.2.0"
