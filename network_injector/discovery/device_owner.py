"""Device-owner identity stamped on, and used to find, injector ports."""

from __future__ import annotations


def device_owner(network_tag: str) -> str:
    """Return the device owner for ports owned by the injector of ``network_tag``.

    Neutron ports have no free-form metadata field, so this string is the only
    marker that ties a port to the injector. The same value is used as the list
    filter and as the create-time stamp.
    """
    return f"network:{network_tag}-injector"
