"""Reconcile hospital surgery-list and surgery-detail exports into one dataset."""

__version__ = "0.3.0"
