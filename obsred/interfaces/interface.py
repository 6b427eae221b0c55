from abc import ABCMeta


class Interface(object, metaclass=ABCMeta):
    """Base class for all device interfaces used by obsred."""

    __module__ = "obsred.interfaces"
    pass


__all__ = ["Interface"]
