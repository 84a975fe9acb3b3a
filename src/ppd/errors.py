"""Errors allowed to reach the user-visible surface."""

from __future__ import annotations


class DatasetLoadError(RuntimeError):
    """The dataset snapshot could not be loaded; the message is shown to the user."""


class DataShapeError(DatasetLoadError):
    """A source returned a payload that does not have the expected shape."""
