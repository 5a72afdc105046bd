from __future__ import annotations


class NavigationError(Exception):
    """Base class for failures coming from the navigation collaborators."""


class LocationStreamError(NavigationError):
    pass


class AddressLookupError(NavigationError, LookupError):
    """Geocoder network or service failure. Zero matches is not an error."""


class RouteError(NavigationError):
    pass
