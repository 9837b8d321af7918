"""
Extension infrastructure for registering accessors on TidyExperiment.

This module provides a descriptor-based accessor pattern similar to xarray/pandas,
allowing workflow steps to be chained as methods of the experiment.

Example:
    # In accessor.py
    from .extensions import register_experiment_accessor

    @register_experiment_accessor("bulk")
    class BulkAccessor:
        def __init__(self, se):
            self._se = se

        def keep_abundant(self, ...):
            ...

    # Then users can do:
    se.bulk.keep_abundant(factor_of_interest="dex")
"""

from __future__ import annotations

import warnings
from typing import Type


class AccessorRegistrationWarning(Warning):
    """Warning for conflicts in accessor registration."""


class _CachedAccessor:
    """
    Custom property-like descriptor for caching accessors.

    Modeled after xarray's CachedAccessor. When accessed on an instance,
    creates the accessor object once and caches it for future access.

    Attributes:
        _name: Name of the accessor.
        _accessor: Accessor class to instantiate.
    """

    def __init__(self, name: str, accessor: Type) -> None:
        self._name = name
        self._accessor = accessor

    def __get__(self, obj, cls):
        if obj is None:
            return self._accessor

        try:
            cache = obj._accessor_cache
        except AttributeError:
            cache = obj._accessor_cache = {}

        # shallow copies share the cache dict; only reuse an accessor bound to obj
        cached = cache.get(self._name)
        if cached is not None and getattr(cached, "_se", None) is obj:
            return cached

        try:
            accessor_obj = self._accessor(obj)
        except AttributeError as err:
            # Raise as RuntimeError to avoid being swallowed by __getattr__
            raise RuntimeError(f"Error initializing {self._name!r} accessor.") from err

        cache[self._name] = accessor_obj
        return accessor_obj


def register_experiment_accessor(name: str):
    """
    Register a custom accessor on TidyExperiment.

    Parameters
    ----------
    name : str
        Name under which the accessor should be registered (e.g., "bulk").
        A warning is issued if this name conflicts with a preexisting attribute.

    Returns
    -------
    decorator
        A decorator that adds the accessor to TidyExperiment.
    """
    def decorator(accessor):
        from .experiment import TidyExperiment

        if hasattr(TidyExperiment, name):
            warnings.warn(
                f"Registration of accessor {accessor!r} under name {name!r} for type "
                f"TidyExperiment is overriding a preexisting attribute with the same name.",
                AccessorRegistrationWarning,
                stacklevel=2,
            )

        setattr(TidyExperiment, name, _CachedAccessor(name, accessor))
        return accessor

    return decorator
