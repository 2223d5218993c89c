from .hub import ChangeEvent, ChangeHub

__all__ = ["ChangeEvent", "ChangeHub"]
